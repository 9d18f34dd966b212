from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import NullPool

from lms_service.config import get_settings, normalize_database_url

Base = declarative_base()

engine = None
AsyncSessionLocal = None


def configure_engine(database_url: str, *, echo: bool = False) -> None:
    """(Re)bind the module-level engine and session factory to ``database_url``."""
    global engine, AsyncSessionLocal

    database_url = normalize_database_url(database_url)
    options = {"echo": echo, "future": True}
    if database_url.startswith("sqlite"):
        # aiosqlite connections are tied to the loop that opened them.
        options["poolclass"] = NullPool
    engine = create_async_engine(database_url, **options)
    AsyncSessionLocal = sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )


_settings = get_settings()
configure_engine(_settings.database_url, echo=_settings.sql_echo)


async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Commit on success, roll back on any exception raised inside the block."""
    try:
        yield session
        await session.commit()
    except BaseException:
        await session.rollback()
        raise


async def init_db():
    # Import for side effects: registers every table on Base.metadata.
    from lms_service import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
