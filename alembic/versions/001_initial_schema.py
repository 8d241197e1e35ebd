"""initial schema

Revision ID: 001
Revises:
Create Date: 2025-01-01 00:00:00.000000
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "001"
down_revision = None
branch_labels = None
depends_on = None

UUID = postgresql.UUID(as_uuid=True)
JSONB = postgresql.JSONB


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # ── users ──
    op.create_table(
        "users",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=True),
        *_timestamps(),
    )

    # ── access_tokens ──
    op.create_table(
        "access_tokens",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("token", sa.String(255), unique=True, nullable=False),
        sa.Column("label", sa.String(255), server_default="default"),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    # ── jobs ──
    op.create_table(
        "jobs",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("job_type", sa.String(32), nullable=False),
        sa.Column("status", sa.String(32), server_default="pending", nullable=False),
        sa.Column("input_data", JSONB, server_default="{}", nullable=False),
        sa.Column("result_data", JSONB, nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("idempotency_key", sa.String(255), nullable=True),
        sa.Column("attempts", sa.Integer, server_default="0", nullable=False),
        sa.Column("max_attempts", sa.Integer, server_default="3", nullable=False),
        sa.Column("run_after", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", JSONB, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "idempotency_key", name="uq_jobs_user_idempotency_key"),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')",
            name="ck_jobs_status",
        ),
    )
    op.create_index("ix_jobs_user_id", "jobs", ["user_id"])
    op.create_index("ix_jobs_status_created_at", "jobs", ["status", "created_at"])
    op.create_index(
        "ix_jobs_extend_in_flight",
        "jobs",
        ["user_id", sa.text("(input_data->>'pathId')")],
        postgresql_where=sa.text("job_type = 'extend_path' AND status IN ('pending', 'processing')"),
    )

    # ── rate_limits ──
    op.create_table(
        "rate_limits",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("action_type", sa.String(64), nullable=False),
        sa.Column("count", sa.Integer, server_default="0", nullable=False),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("window_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("metadata", JSONB, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "action_type", name="uq_rate_limits_user_action"),
    )

    # ── learning_paths ──
    op.create_table(
        "learning_paths",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(512), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("difficulty", sa.String(32), nullable=False),
        sa.Column("topics", JSONB, server_default="[]", nullable=False),
        sa.Column("total_lessons", sa.Integer, nullable=False),
        sa.Column("current_lesson", sa.Integer, server_default="1", nullable=False),
        sa.Column("source_job_id", UUID, unique=True, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_learning_paths_user_id", "learning_paths", ["user_id"])

    # ── lessons ──
    op.create_table(
        "lessons",
        sa.Column("id", UUID, primary_key=True),
        sa.Column(
            "learning_path_id",
            UUID,
            sa.ForeignKey("learning_paths.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("lesson_number", sa.Integer, nullable=False),
        sa.Column("title", sa.String(512), nullable=False),
        sa.Column("topic", sa.String(512), nullable=False),
        sa.Column("explanations", JSONB, server_default="[]", nullable=False),
        sa.Column("quizzes", JSONB, server_default="[]", nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("learning_path_id", "lesson_number", name="uq_lessons_path_number"),
    )

    # ── events ──
    op.create_table(
        "events",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("event_type", sa.String(128), nullable=False),
        sa.Column("level", sa.String(16), server_default="info"),
        sa.Column("source", sa.String(128), nullable=True),
        sa.Column("job_id", UUID, nullable=True),
        sa.Column("message", sa.Text, nullable=True),
        sa.Column("metadata", JSONB, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_events_type", "events", ["event_type"])
    op.create_index("ix_events_job_id", "events", ["job_id"])


def downgrade() -> None:
    for table in [
        "events", "lessons", "learning_paths", "rate_limits",
        "jobs", "access_tokens", "users",
    ]:
        op.drop_table(table)
