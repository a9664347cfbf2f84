"""SQLAlchemy declarative base shared by all ORM models."""

from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


def utcnow() -> datetime:
    """Timezone-aware current time used for every timestamp column."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all ORM models in survey_db."""

    pass
