"""ResponseSession ORM model — the respondent's opaque bearer token."""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from survey_db.models.base import Base, utcnow
from survey_db.models.enums import SessionStatus


class ResponseSession(Base):
    """One login-spanning session per respondent.

    The token is reused across logins while the session stays active, so a
    respondent can resume on another device by signing in with the same
    phone number.
    """

    __tablename__ = "response_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    respondent_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("respondents.id", ondelete="CASCADE"),
        nullable=False,
    )
    session_token: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    status: Mapped[SessionStatus] = mapped_column(
        String(20),
        nullable=False,
        default=SessionStatus.ACTIVE,
        server_default=text("'active'"),
    )

    # --- Last known position (informational; progress rows are authoritative) ---
    last_phase: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_step: Mapped[int | None] = mapped_column(Integer, nullable=True)

    started_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow
    )
    last_activity_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    __table_args__ = (
        # Partial unique index: at most one active session per respondent
        Index(
            "ux_active_session_per_respondent",
            "respondent_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ResponseSession(respondent={self.respondent_id!s}, "
            f"status={self.status!r}, phase={self.last_phase!r})>"
        )
