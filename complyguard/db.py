"""SQL engine helpers for the evidence backend."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from config.settings import settings

# One engine per normalized URL for the life of the process.
_engines: dict[str, AsyncEngine] = {}


def _normalize_db_url(url: str) -> str:
    """Point plain Postgres URLs at the asyncpg driver."""
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://"):]
    return url


def get_async_engine(database_url: str | None = None) -> AsyncEngine:
    """Return the shared engine for a database URL.

    Args:
        database_url: Connection URL; defaults to ``DATABASE_URL``.

    Raises:
        RuntimeError: If no URL is given or configured.
    """
    url = database_url or settings.database_url
    if not url:
        raise RuntimeError("DATABASE_URL is not set")
    url = _normalize_db_url(url)
    if url not in _engines:
        _engines[url] = create_async_engine(url, pool_pre_ping=True)
    return _engines[url]


def get_sessionmaker(database_url: str | None = None) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(get_async_engine(database_url), expire_on_commit=False)
