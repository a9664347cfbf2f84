"""Process-wide async engine and session factory for the survey store.

Both are built on first use from :func:`load_database_settings` and shared
by the API server and the maintenance CLI.  Every connection identifies
itself with ``application_name`` and carries a ``statement_timeout`` so a
stuck query fails the request (a retryable 503) instead of holding a pool
slot.  Call ``dispose_engine()`` on shutdown.
"""

from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from survey_db.config import DatabaseSettings, get_async_url, load_database_settings

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def engine_options(settings: DatabaseSettings) -> dict[str, Any]:
    """Keyword arguments for ``create_async_engine``."""
    server_settings = {"application_name": settings.application_name}
    if settings.statement_timeout_ms > 0:
        server_settings["statement_timeout"] = str(settings.statement_timeout_ms)
    return {
        "echo": settings.echo,
        "pool_size": settings.pool_size,
        "max_overflow": settings.max_overflow,
        "pool_recycle": settings.pool_recycle,
        "pool_pre_ping": True,
        # asyncpg applies these per connection
        "connect_args": {"server_settings": server_settings},
    }


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_async_engine(get_async_url(), **engine_options(load_database_settings()))
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Sessions keep loaded rows usable after commit; repositories only flush."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
