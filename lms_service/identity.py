from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from lms_service.errors import ValidationError


class Role(str, Enum):
    STUDENT = "student"
    INSTRUCTOR = "instructor"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: str) -> "Role":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            allowed = ", ".join(role.value for role in cls)
            raise ValidationError(f"Invalid role '{value}'. Must be one of: {allowed}") from None


@dataclass(frozen=True)
class Principal:
    """The authenticated actor for one request."""

    id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def satisfies(self, roles: Iterable[Role]) -> bool:
        # admin satisfies any role gate; instructor and student are incomparable
        return self.is_admin or self.role in set(roles)
