"""AiInsight ORM model — generated dashboard summaries, newest wins."""

import uuid
from datetime import datetime

from sqlalchemy import Index, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from survey_db.models.base import Base, utcnow


class AiInsight(Base):
    __tablename__ = "ai_insights"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    summary_text: Mapped[str] = mapped_column(Text, nullable=False)
    model: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("ix_ai_insights_created", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<AiInsight(model={self.model!r}, created_at={self.created_at})>"
