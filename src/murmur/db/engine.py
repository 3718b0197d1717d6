"""Async SQLAlchemy engine and session factory.

One engine per process. PostgreSQL (asyncpg) gets a sized connection
pool; a SQLite URL (local runs) keeps the dialect's default pool, which
doesn't take sizing arguments.
"""

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from murmur.config import settings


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    kwargs: dict = {"echo": echo}
    if not url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
        )
    return create_async_engine(url, **kwargs)


# echo=True in debug to see SQL queries.
engine = build_engine(settings.database_url, echo=settings.debug)

# Objects stay usable after commit: services build responses from them.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: one session per request.

    Whatever the handler left uncommitted when it raised is rolled back.
    """
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
