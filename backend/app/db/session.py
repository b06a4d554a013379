"""Async engine and session factories for the booking row store."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import get_settings

_engines: dict[str, AsyncEngine] = {}
_sessionmakers: dict[str, async_sessionmaker[AsyncSession]] = {}


def _database_url(override: str | None = None) -> str:
    return override or get_settings().database_url


def _engine_options(url: str) -> dict[str, Any]:
    if make_url(url).get_backend_name() == "sqlite":
        return {}
    # Postgres connections may be recycled by the pooler between requests.
    return {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _create_engine(url: str) -> AsyncEngine:
    engine = create_async_engine(url, echo=False, future=True, **_engine_options(url))
    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def get_sessionmaker(
    database_url: str | None = None,
) -> async_sessionmaker[AsyncSession]:
    """Return (and cache) a sessionmaker bound to the given database URL."""
    url = _database_url(database_url)
    sessionmaker = _sessionmakers.get(url)
    if sessionmaker is None:
        engine = _create_engine(url)
        # Records are read back after commit, so attributes must stay loaded.
        sessionmaker = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
        _engines[url] = engine
        _sessionmakers[url] = sessionmaker
    return sessionmaker


async def get_session() -> AsyncIterator[AsyncSession]:
    """Yield a session for one request; uncommitted work is rolled back on close."""
    async with get_sessionmaker()() as session:
        yield session


async def dispose_engine(database_url: str | None = None) -> None:
    """Close pooled connections for a URL and forget its factories."""
    url = _database_url(database_url)
    _sessionmakers.pop(url, None)
    engine = _engines.pop(url, None)
    if engine is not None:
        await engine.dispose()
