"""Respondent ORM model — one row per person, keyed by normalized phone."""

import uuid
from datetime import datetime

from sqlalchemy import Index, String, Text, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from survey_db.models.base import Base, utcnow
from survey_db.models.enums import RespondentStatus


class Respondent(Base):
    """A survey participant.

    ``phone_normalized`` is the natural key and never changes once set.
    ``current_phase`` is a display cache rewritten on every phase completion;
    the progress rows are authoritative.
    """

    __tablename__ = "respondents"

    # --- Primary key ---
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # --- Identity ---
    # Last-write-wins on every login
    full_name: Mapped[str] = mapped_column(Text, nullable=False)
    # As typed at first registration
    phone_raw: Mapped[str] = mapped_column(Text, nullable=False)
    phone_normalized: Mapped[str] = mapped_column(Text, nullable=False, unique=True)

    # --- Flow ---
    # Phase code, or "completed" once every phase is done
    current_phase: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[RespondentStatus] = mapped_column(
        String(20),
        nullable=False,
        default=RespondentStatus.ACTIVE,
        server_default=text("'active'"),
    )

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
    last_seen_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    __table_args__ = (
        # Dashboard lists are always filtered by status, newest first
        Index("ix_respondent_status_created", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Respondent(id={self.id!s}, phone={self.phone_normalized!r}, "
            f"phase={self.current_phase!r}, status={self.status!r})>"
        )
