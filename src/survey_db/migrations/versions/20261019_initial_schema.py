"""Create the survey schema.

Questionnaire tables (survey_phases, survey_questions), respondent tables
(respondents, response_sessions, survey_responses, phase_progress) and the
append-only audit_logs table.

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID

# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- Questionnaire ---
    op.create_table(
        "survey_phases",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("phase_code", sa.Text, nullable=False, unique=True),
        sa.Column("phase_name", sa.Text, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("sort_order", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_table(
        "survey_questions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "phase_id",
            UUID(as_uuid=True),
            sa.ForeignKey("survey_phases.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("question_code", sa.Text, nullable=False, unique=True),
        sa.Column("section_code", sa.Text, nullable=True),
        sa.Column("prompt", sa.Text, nullable=False),
        sa.Column("help_text", sa.Text, nullable=True),
        sa.Column("question_type", sa.String(20), nullable=False),
        # Choice configuration
        sa.Column("options", JSONB, nullable=True),
        sa.Column("selection_min", sa.Integer, nullable=True),
        sa.Column("selection_max", sa.Integer, nullable=True),
        sa.Column("is_required", sa.Boolean, nullable=False, server_default=sa.text("false")),
        # Conditional display
        sa.Column("show_if", JSONB, nullable=True),
        sa.Column("follow_up", JSONB, nullable=True),
        sa.Column("sort_order", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint(
            "question_type IN ('single_choice', 'multi_select', 'likert', "
            "'short_text', 'long_text')",
            name="ck_question_type",
        ),
    )
    op.create_index(
        "ix_question_phase_order", "survey_questions", ["phase_id", "sort_order"]
    )

    # --- Respondents ---
    op.create_table(
        "respondents",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("full_name", sa.Text, nullable=False),
        sa.Column("phone_raw", sa.Text, nullable=False),
        sa.Column("phone_normalized", sa.Text, nullable=False, unique=True),
        sa.Column("current_phase", sa.Text, nullable=True),
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'active'"),
        ),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("last_seen_at", TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_respondent_status_created", "respondents", ["status", "created_at"]
    )

    op.create_table(
        "response_sessions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "respondent_id",
            UUID(as_uuid=True),
            sa.ForeignKey("respondents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("session_token", sa.Text, nullable=False, unique=True),
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'active'"),
        ),
        sa.Column("last_phase", sa.Text, nullable=True),
        sa.Column("last_step", sa.Integer, nullable=True),
        sa.Column("started_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("last_activity_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("completed_at", TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index(
        "ux_active_session_per_respondent",
        "response_sessions",
        ["respondent_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "survey_responses",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "respondent_id",
            UUID(as_uuid=True),
            sa.ForeignKey("respondents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "question_id",
            UUID(as_uuid=True),
            sa.ForeignKey("survey_questions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "phase_id",
            UUID(as_uuid=True),
            sa.ForeignKey("survey_phases.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "session_id",
            UUID(as_uuid=True),
            sa.ForeignKey("response_sessions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("question_code", sa.Text, nullable=False),
        sa.Column("answer_value", JSONB, nullable=True),
        sa.Column("answer_text", sa.Text, nullable=True),
        sa.Column("is_finalized", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("answered_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", TIMESTAMP(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "respondent_id", "question_id", name="uq_response_respondent_question"
        ),
    )
    op.create_index(
        "ix_response_respondent_phase", "survey_responses", ["respondent_id", "phase_id"]
    )
    op.create_index("ix_response_question_code", "survey_responses", ["question_code"])

    op.create_table(
        "phase_progress",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "respondent_id",
            UUID(as_uuid=True),
            sa.ForeignKey("respondents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "phase_id",
            UUID(as_uuid=True),
            sa.ForeignKey("survey_phases.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'not_started'"),
        ),
        sa.Column("last_step", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column(
            "completion_percent", sa.SmallInteger, nullable=False, server_default=sa.text("0")
        ),
        sa.Column("started_at", TIMESTAMP(timezone=True), nullable=True),
        sa.Column("completed_at", TIMESTAMP(timezone=True), nullable=True),
        sa.Column("updated_at", TIMESTAMP(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "respondent_id", "phase_id", name="uq_progress_respondent_phase"
        ),
        sa.CheckConstraint(
            "completion_percent BETWEEN 0 AND 100", name="ck_progress_percent"
        ),
        sa.CheckConstraint(
            "status != 'completed' OR completed_at IS NOT NULL",
            name="ck_completed_has_timestamp",
        ),
    )

    # --- Audit ---
    op.create_table(
        "audit_logs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("actor_type", sa.String(20), nullable=False),
        sa.Column("actor_id", sa.Text, nullable=True),
        sa.Column("event_type", sa.Text, nullable=False),
        sa.Column("entity_type", sa.Text, nullable=True),
        sa.Column("entity_id", sa.Text, nullable=True),
        sa.Column(
            "payload",
            JSONB,
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_event_created", "audit_logs", ["event_type", "created_at"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("phase_progress")
    op.drop_table("survey_responses")
    op.drop_table("response_sessions")
    op.drop_table("respondents")
    op.drop_table("survey_questions")
    op.drop_table("survey_phases")
