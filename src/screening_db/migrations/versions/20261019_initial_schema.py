"""Create the screening catalog and session tables.

Catalog: screenings, screening_versions, screening_questions,
screening_answer_options, screening_flows, screening_flow_versions and the
screening_institution link table.  Session state: accounts,
screening_sessions, screening_session_screenings, screening_answers.

The two ``active_*_version_id`` pointers reference tables created after
their owners, so their foreign keys are added at the end.

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID

# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- Accounts ---
    op.create_table(
        "accounts",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("institution_id", sa.Text, nullable=False),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_accounts_institution_id", "accounts", ["institution_id"])

    # --- Screening catalog ---
    op.create_table(
        "screenings",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.Text, nullable=False, unique=True),
        sa.Column("active_screening_version_id", UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_table(
        "screening_versions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("screening_id", UUID(as_uuid=True), sa.ForeignKey("screenings.id"), nullable=False),
        sa.Column("version_number", sa.Integer, nullable=False),
        sa.Column("scoring_rule", sa.Text, nullable=False),
        sa.Column("frozen_at", TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
        sa.UniqueConstraint("screening_id", "version_number", name="uq_screening_version_number"),
    )
    op.create_index("ix_screening_versions_screening_id", "screening_versions", ["screening_id"])

    op.create_table(
        "screening_questions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "screening_version_id",
            UUID(as_uuid=True),
            sa.ForeignKey("screening_versions.id"),
            nullable=False,
        ),
        sa.Column("question_text", sa.Text, nullable=False),
        sa.Column(
            "answer_format",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'single_select'"),
        ),
        sa.Column(
            "content_hint",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'none'"),
        ),
        sa.Column("display_order", sa.SmallInteger, nullable=False),
        sa.UniqueConstraint("screening_version_id", "display_order", name="uq_question_display_order"),
    )
    op.create_index(
        "ix_screening_questions_screening_version_id",
        "screening_questions",
        ["screening_version_id"],
    )

    op.create_table(
        "screening_answer_options",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "screening_question_id",
            UUID(as_uuid=True),
            sa.ForeignKey("screening_questions.id"),
            nullable=False,
        ),
        sa.Column("answer_option_text", sa.Text, nullable=False),
        sa.Column("score", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("indicates_crisis", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("display_order", sa.SmallInteger, nullable=False),
    )
    op.create_index(
        "ix_screening_answer_options_screening_question_id",
        "screening_answer_options",
        ["screening_question_id"],
    )

    op.create_table(
        "screening_institution",
        sa.Column(
            "screening_id",
            UUID(as_uuid=True),
            sa.ForeignKey("screenings.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("institution_id", sa.Text, primary_key=True),
    )

    # --- Flow catalog ---
    op.create_table(
        "screening_flows",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("institution_id", sa.Text, nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("active_screening_flow_version_id", UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_screening_flows_institution_id", "screening_flows", ["institution_id"])

    op.create_table(
        "screening_flow_versions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "screening_flow_id",
            UUID(as_uuid=True),
            sa.ForeignKey("screening_flows.id"),
            nullable=False,
        ),
        sa.Column("version_number", sa.Integer, nullable=False),
        sa.Column(
            "initial_screening_id",
            UUID(as_uuid=True),
            sa.ForeignKey("screenings.id"),
            nullable=False,
        ),
        sa.Column("orchestration_rule", sa.Text, nullable=False),
        sa.Column("frozen_at", TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
        sa.UniqueConstraint("screening_flow_id", "version_number", name="uq_flow_version_number"),
    )
    op.create_index(
        "ix_screening_flow_versions_screening_flow_id",
        "screening_flow_versions",
        ["screening_flow_id"],
    )

    # --- Active-version pointers ---
    op.create_foreign_key(
        "fk_screening_active_version",
        "screenings",
        "screening_versions",
        ["active_screening_version_id"],
        ["id"],
    )
    op.create_foreign_key(
        "fk_flow_active_version",
        "screening_flows",
        "screening_flow_versions",
        ["active_screening_flow_version_id"],
        ["id"],
    )

    # --- Session state ---
    op.create_table(
        "screening_sessions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "screening_flow_version_id",
            UUID(as_uuid=True),
            sa.ForeignKey("screening_flow_versions.id"),
            nullable=False,
        ),
        sa.Column("target_account_id", UUID(as_uuid=True), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("created_by_account_id", UUID(as_uuid=True), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("completed", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("crisis_indicated", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("completed_at", TIMESTAMP(timezone=True), nullable=True),
        sa.Column("crisis_indicated_at", TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint(
            "NOT completed OR completed_at IS NOT NULL",
            name="ck_completed_has_timestamp",
        ),
        sa.CheckConstraint(
            "NOT crisis_indicated OR crisis_indicated_at IS NOT NULL",
            name="ck_crisis_has_timestamp",
        ),
    )
    op.create_index(
        "ix_screening_sessions_screening_flow_version_id",
        "screening_sessions",
        ["screening_flow_version_id"],
    )
    op.create_index(
        "ix_screening_sessions_target_account_id",
        "screening_sessions",
        ["target_account_id"],
    )

    op.create_table(
        "screening_session_screenings",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "screening_session_id",
            UUID(as_uuid=True),
            sa.ForeignKey("screening_sessions.id"),
            nullable=False,
        ),
        sa.Column(
            "screening_version_id",
            UUID(as_uuid=True),
            sa.ForeignKey("screening_versions.id"),
            nullable=False,
        ),
        sa.Column("screening_order", sa.Integer, nullable=False),
        sa.Column("completed", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("score", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
        sa.UniqueConstraint("screening_session_id", "screening_order", name="uq_session_screening_order"),
        sa.CheckConstraint("screening_order >= 1", name="ck_screening_order_positive"),
    )

    op.create_table(
        "screening_answers",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "screening_answer_option_id",
            UUID(as_uuid=True),
            sa.ForeignKey("screening_answer_options.id"),
            nullable=False,
        ),
        sa.Column(
            "screening_session_screening_id",
            UUID(as_uuid=True),
            sa.ForeignKey("screening_session_screenings.id"),
            nullable=False,
        ),
        sa.Column("created_by_account_id", UUID(as_uuid=True), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("text", sa.Text, nullable=True),
        sa.Column("answer_batch", sa.Integer, nullable=False),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_answer_session_screening_batch",
        "screening_answers",
        ["screening_session_screening_id", "answer_batch"],
    )


def downgrade() -> None:
    op.drop_table("screening_answers")
    op.drop_table("screening_session_screenings")
    op.drop_table("screening_sessions")
    op.drop_constraint("fk_flow_active_version", "screening_flows", type_="foreignkey")
    op.drop_constraint("fk_screening_active_version", "screenings", type_="foreignkey")
    op.drop_table("screening_flow_versions")
    op.drop_table("screening_flows")
    op.drop_table("screening_institution")
    op.drop_table("screening_answer_options")
    op.drop_table("screening_questions")
    op.drop_table("screening_versions")
    op.drop_table("screenings")
    op.drop_table("accounts")
