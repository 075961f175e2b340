"""
Async SQLAlchemy engine and session wiring.

Postgres (asyncpg) in deployments, SQLite (aiosqlite) for tests and demos.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from survey_ivr.config import get_settings


class Base(DeclarativeBase):
    pass


def engine_options(database_url: str, *, echo: bool = False) -> dict[str, Any]:
    """Keyword arguments for create_async_engine; SQLite takes no pool sizing."""
    options: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
    if not database_url.startswith("sqlite"):
        options.update(pool_size=5, max_overflow=10)
    return options


class DatabaseManager:
    """Lazily built engine plus a session factory bound to it."""

    def __init__(self, database_url: str | None = None) -> None:
        self._database_url = database_url or get_settings().database_url
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_async_engine(
                self._database_url,
                **engine_options(self._database_url, echo=get_settings().debug),
            )
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        # expire_on_commit=False: the engine reads ids after committing an answer
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(
                bind=self.engine,
                expire_on_commit=False,
                autoflush=False,
            )
        return self._session_factory

    async def create_tables(self) -> None:
        """create_all for every model module (dev and demo databases)."""
        import survey_ivr.responses.models  # noqa: F401
        import survey_ivr.surveys.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._session_factory = None


_db_manager: DatabaseManager | None = None


def get_database_manager() -> DatabaseManager:
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request, rolled back if left dirty.

    The IVR engine commits its own writes; anything still pending when the
    request fails is discarded.
    """
    async with get_database_manager().session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
