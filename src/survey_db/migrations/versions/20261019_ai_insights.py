"""Add the ai_insights table for generated dashboard summaries.

Revision ID: 20261019_ai_insights
Revises: 20261019_initial
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID

# revision identifiers, used by Alembic.
revision = "20261019_ai_insights"
down_revision = "20261019_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "ai_insights",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("summary_text", sa.Text, nullable=False),
        sa.Column("model", sa.Text, nullable=True),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_ai_insights_created", "ai_insights", ["created_at"])


def downgrade() -> None:
    op.drop_table("ai_insights")
