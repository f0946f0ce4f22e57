"""Async database engine and session helpers.

The DSN comes from ``settings.database_url``. The engine is created lazily on
first use so tests can point ``DATABASE_URL`` elsewhere before touching it.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from config import get_settings
from invoicing.app.obs import add_query_logger

from ..models import Base

_engine: AsyncEngine | None = None
_sessionmaker: async_sessionmaker[AsyncSession] | None = None


def configure_sqlite(engine: AsyncEngine) -> None:
    """Make SQLite transactions take the write lock up front.

    ``BEGIN IMMEDIATE`` serialises writers on the database lock instead of
    failing with "database is locked" when two transactions try to upgrade
    from a read lock at the same time. Foreign keys are enforced as well.
    """

    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def get_engine() -> AsyncEngine:
    """Return a singleton async engine for the configured database."""
    global _engine, _sessionmaker
    if _engine is None:
        _engine = create_async_engine(get_settings().database_url, future=True)
        configure_sqlite(_engine)
        add_query_logger(_engine, "invoicing")
        _sessionmaker = async_sessionmaker(
            _engine, expire_on_commit=False, class_=AsyncSession
        )
    return _engine


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session and ensure it is closed afterwards."""
    if _sessionmaker is None:
        get_engine()
    assert _sessionmaker is not None  # for type checkers
    session = _sessionmaker()
    try:
        yield session
    finally:
        await session.close()


async def session_dep() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a request-scoped session."""

    async with get_session() as session:
        yield session


async def init_models(engine: AsyncEngine | None = None) -> None:
    """Create all tables without migrations; used by the test suites."""

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """Dispose the singleton engine, if any."""
    global _engine, _sessionmaker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _sessionmaker = None


__all__ = [
    "configure_sqlite",
    "dispose_engine",
    "get_engine",
    "get_session",
    "init_models",
    "session_dep",
]
