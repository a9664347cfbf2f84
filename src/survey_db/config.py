"""Database settings for the survey store.

The connection URL comes from ``DATABASE_URL`` when set, otherwise it is
assembled from ``PG_HOST`` / ``PG_PORT`` / ``PG_USER`` / ``PG_PASSWORD`` /
``PG_DATABASE``.  Any of the common spellings is accepted
(``postgres://``, ``postgresql://``, ``postgresql+asyncpg://``,
``postgresql+psycopg2://``); the driver is swapped per consumer:

  asyncpg  — the application engine (``get_async_url``)
  psycopg2 — Alembic migrations (``get_sync_url``)

Pool and session tuning is read from ``SURVEY_DB_*`` variables.  Autosave
traffic is many short transactions, so the defaults favour a small pool
with pre-ping and a per-statement timeout rather than long-lived sessions.
"""

import os
from dataclasses import dataclass

from sqlalchemy.engine import URL, make_url

ASYNC_DRIVER = "postgresql+asyncpg"
SYNC_DRIVER = "postgresql+psycopg2"

APPLICATION_NAME = "survey-flow"


@dataclass(frozen=True)
class DatabaseSettings:
    """Engine tuning read from the environment at first use."""

    pool_size: int = 5
    max_overflow: int = 10
    # Seconds before a pooled connection is replaced
    pool_recycle: int = 1800
    # Server-side limit per statement, in milliseconds (0 = no limit)
    statement_timeout_ms: int = 15000
    echo: bool = False
    application_name: str = APPLICATION_NAME


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def load_database_settings() -> DatabaseSettings:
    return DatabaseSettings(
        pool_size=int(os.getenv("SURVEY_DB_POOL_SIZE", "5")),
        max_overflow=int(os.getenv("SURVEY_DB_MAX_OVERFLOW", "10")),
        pool_recycle=int(os.getenv("SURVEY_DB_POOL_RECYCLE", "1800")),
        statement_timeout_ms=int(os.getenv("SURVEY_DB_STATEMENT_TIMEOUT_MS", "15000")),
        echo=_flag("SURVEY_DB_ECHO"),
        application_name=os.getenv("SURVEY_DB_APPLICATION_NAME", APPLICATION_NAME),
    )


def _base_url() -> URL:
    raw = os.getenv("DATABASE_URL")
    if raw:
        if raw.startswith("postgres://"):
            raw = "postgresql://" + raw[len("postgres://"):]
        return make_url(raw)
    return URL.create(
        "postgresql",
        username=os.getenv("PG_USER", "survey"),
        password=os.getenv("PG_PASSWORD", "survey"),
        host=os.getenv("PG_HOST", "localhost"),
        port=int(os.getenv("PG_PORT", "5432")),
        database=os.getenv("PG_DATABASE", "survey"),
    )


def _with_driver(driver: str) -> str:
    return _base_url().set(drivername=driver).render_as_string(hide_password=False)


def get_async_url() -> str:
    """Connection URL for the asyncpg application engine."""
    return _with_driver(ASYNC_DRIVER)


def get_sync_url() -> str:
    """Connection URL for Alembic, which runs synchronously over psycopg2."""
    return _with_driver(SYNC_DRIVER)
