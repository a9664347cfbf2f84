"""PhaseProgress ORM model — authoritative resume state per (respondent, phase)."""

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Integer,
    SmallInteger,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from survey_db.models.base import Base, utcnow
from survey_db.models.enums import ProgressStatus


class PhaseProgress(Base):
    """How far one respondent got in one phase."""

    __tablename__ = "phase_progress"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    respondent_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("respondents.id", ondelete="CASCADE"),
        nullable=False,
    )
    phase_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("survey_phases.id", ondelete="CASCADE"),
        nullable=False,
    )
    status: Mapped[ProgressStatus] = mapped_column(
        String(20),
        nullable=False,
        default=ProgressStatus.NOT_STARTED,
        server_default=text("'not_started'"),
    )
    # Index of the last visited step within the phase
    last_step: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completion_percent: Mapped[int] = mapped_column(
        SmallInteger, nullable=False, default=0
    )
    started_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("respondent_id", "phase_id", name="uq_progress_respondent_phase"),
        CheckConstraint(
            "completion_percent BETWEEN 0 AND 100", name="ck_progress_percent"
        ),
        CheckConstraint(
            "status != 'completed' OR completed_at IS NOT NULL",
            name="ck_completed_has_timestamp",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<PhaseProgress(respondent={self.respondent_id!s}, "
            f"phase={self.phase_id!s}, status={self.status!r}, step={self.last_step})>"
        )
