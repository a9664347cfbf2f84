"""SurveyResponse ORM model — one stored answer per (respondent, question)."""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, ForeignKey, Index, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from survey_db.models.base import Base, utcnow


class SurveyResponse(Base):
    """The latest answer a respondent gave to a question.

    Only ever upserted on (respondent_id, question_id).  Once
    ``is_finalized`` is set by phase completion the row is immutable.
    """

    __tablename__ = "survey_responses"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    respondent_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("respondents.id", ondelete="CASCADE"),
        nullable=False,
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("survey_questions.id", ondelete="CASCADE"),
        nullable=False,
    )
    phase_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("survey_phases.id", ondelete="CASCADE"),
        nullable=False,
    )
    session_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("response_sessions.id", ondelete="SET NULL"),
        nullable=True,
    )
    # Denormalised so exports and analytics need no join
    question_code: Mapped[str] = mapped_column(Text, nullable=False)

    # --- Answer ---
    # str | int | list[str], shaped by the question type
    answer_value: Mapped[Any] = mapped_column(JSONB, nullable=True)
    # Flattened text form for search / export
    answer_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_finalized: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )

    answered_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("respondent_id", "question_id", name="uq_response_respondent_question"),
        Index("ix_response_respondent_phase", "respondent_id", "phase_id"),
        Index("ix_response_question_code", "question_code"),
    )

    def __repr__(self) -> str:
        return (
            f"<SurveyResponse(respondent={self.respondent_id!s}, "
            f"question={self.question_code!r}, final={self.is_finalized})>"
        )
