"""Questionnaire ORM models — phases and their questions.

Rows are seeded from ``v1/questionnaire.yaml`` by ``survey-admin seed``.
Conditional display rules are stored as JSONB in the same shape the SDK's
``ShowIfRule`` / ``FollowUp`` models expect.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from survey_db.models.base import Base, utcnow


class SurveyPhase(Base):
    """An ordered stage ("panel") of the questionnaire."""

    __tablename__ = "survey_phases"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    phase_code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    phase_name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow
    )

    def __repr__(self) -> str:
        return f"<SurveyPhase(code={self.phase_code!r}, order={self.sort_order})>"


class SurveyQuestion(Base):
    """A single question belonging to one phase."""

    __tablename__ = "survey_questions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    phase_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("survey_phases.id", ondelete="CASCADE"),
        nullable=False,
    )
    # Stable business key used for every answer lookup
    question_code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    section_code: Mapped[str | None] = mapped_column(Text, nullable=True)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    help_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    question_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # --- Choice configuration ---
    # ["Academia", "Industry", ...] for single_choice / multi_select
    options: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    selection_min: Mapped[int | None] = mapped_column(Integer, nullable=True)
    selection_max: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_required: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )

    # --- Conditional display ---
    # {"question_code": "...", "answer_in": ["..."]}
    show_if: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    # {"option": "Other", "question_code": "..._other"}
    follow_up: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "question_type IN ('single_choice', 'multi_select', 'likert', "
            "'short_text', 'long_text')",
            name="ck_question_type",
        ),
        Index("ix_question_phase_order", "phase_id", "sort_order"),
    )

    def __repr__(self) -> str:
        return (
            f"<SurveyQuestion(code={self.question_code!r}, "
            f"type={self.question_type!r}, order={self.sort_order})>"
        )
