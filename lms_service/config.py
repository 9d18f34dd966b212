from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import FrozenSet, Optional

from dotenv import load_dotenv

# Variables already present in the environment win over the .env file.
load_dotenv(dotenv_path=Path(__file__).resolve().parent / ".env", override=False)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./lms.db"
DEFAULT_GATED_ACTIONS = "view_lesson,view_quiz,view_assignment,submit_quiz,submit_assignment"


def normalize_database_url(url: str) -> str:
    """Ensure we use the async driver for Postgres."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    return url


def _env_flag(name: str, default: str = "false") -> bool:
    toggle = os.getenv(name, default).strip().lower()
    return toggle in {"1", "true", "on", "yes"}


def parse_action_list(raw: Optional[str]) -> FrozenSet[str]:
    if raw is None:
        raw = DEFAULT_GATED_ACTIONS
    text = raw.strip().lower()
    if not text or text == "none":
        return frozenset()
    return frozenset(part.strip() for part in text.split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    sql_echo: bool = False
    secret_key: str = "default_fallback_secret_key_if_not_set"
    log_level: str = "INFO"
    enrollment_gated_actions: FrozenSet[str] = field(
        default_factory=lambda: parse_action_list(DEFAULT_GATED_ACTIONS)
    )
    late_grade_precision: int = 2
    clear_completed_at: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=normalize_database_url(os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)),
            sql_echo=_env_flag("SQL_ECHO"),
            secret_key=os.getenv("SECRET_KEY", "default_fallback_secret_key_if_not_set"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            enrollment_gated_actions=parse_action_list(os.getenv("ENROLLMENT_GATED_ACTIONS")),
            late_grade_precision=int(os.getenv("LATE_GRADE_PRECISION", "2")),
            clear_completed_at=_env_flag("CLEAR_COMPLETED_AT_ON_REGRESSION", "true"),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
