"""initial webinar engine schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _enum(*values: str) -> sa.Enum:
    return sa.Enum(*values, native_enum=False, length=32)


def upgrade() -> None:
    op.create_table(
        "schedule_configs",
        sa.Column("webinar_id", sa.String(), nullable=False),
        sa.Column("mode", _enum("FIXED", "INTERVAL"), nullable=False),
        sa.Column("interval_minutes", sa.Integer(), nullable=True),
        sa.Column("anchor_time", sa.DateTime(), nullable=False),
        sa.Column("timezone", sa.String(), nullable=False, server_default="UTC"),
        sa.Column("horizon_days", sa.Integer(), nullable=False, server_default="7"),
        sa.Column("duration_seconds", sa.Integer(), nullable=False, server_default="3600"),
        sa.Column("session_type", _enum("LIVE", "EVERGREEN"), nullable=True),
        sa.Column("replay_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("blackout_dates", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("webinar_id"),
    )

    op.create_table(
        "webinar_sessions",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("webinar_id", sa.String(), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(), nullable=False),
        sa.Column("session_type", _enum("LIVE", "EVERGREEN"), nullable=False),
        sa.Column("duration_seconds", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("uq_webinar_session_start", "webinar_sessions", ["webinar_id", "scheduled_at"], unique=True)

    op.create_table(
        "webinar_registrations",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("webinar_id", sa.String(), nullable=False),
        sa.Column("session_id", sa.BigInteger(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("access_token", sa.String(), nullable=False),
        sa.Column("max_video_position", sa.Float(), nullable=False, server_default="0"),
        sa.Column("registered_at", sa.DateTime(), nullable=False),
        sa.Column("attended_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["session_id"], ["webinar_sessions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("access_token"),
    )
    op.create_index("uq_registration_webinar_email", "webinar_registrations", ["webinar_id", "email"], unique=True)
    op.create_index("idx_registration_session", "webinar_registrations", ["session_id"], unique=False)

    op.create_table(
        "chat_script_entries",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("webinar_id", sa.String(), nullable=False),
        sa.Column("sender_name", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("appears_at", sa.Integer(), nullable=False),
        sa.Column("is_from_moderator", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_chat_script_window", "chat_script_entries", ["webinar_id", "appears_at"], unique=False)

    op.create_table(
        "notification_jobs",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("registration_id", sa.BigInteger(), nullable=False),
        sa.Column(
            "trigger",
            _enum("REGISTERED", "REMINDER_BEFORE", "STARTED", "NO_SHOW", "COMPLETED"),
            nullable=False,
        ),
        sa.Column("due_at", sa.DateTime(), nullable=False),
        sa.Column("status", _enum("PENDING", "SENT", "FAILED", "SKIPPED"), nullable=False, server_default="PENDING"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("retry_at", sa.DateTime(), nullable=True),
        sa.Column("locked_at", sa.DateTime(), nullable=True),
        sa.Column("locked_by", sa.String(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["registration_id"], ["webinar_registrations.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("uq_notification_job_trigger", "notification_jobs", ["registration_id", "trigger"], unique=True)
    op.create_index("idx_notification_jobs_due", "notification_jobs", ["status", "due_at"], unique=False)


def downgrade() -> None:
    op.drop_index("idx_notification_jobs_due", table_name="notification_jobs")
    op.drop_index("uq_notification_job_trigger", table_name="notification_jobs")
    op.drop_table("notification_jobs")

    op.drop_index("idx_chat_script_window", table_name="chat_script_entries")
    op.drop_table("chat_script_entries")

    op.drop_index("idx_registration_session", table_name="webinar_registrations")
    op.drop_index("uq_registration_webinar_email", table_name="webinar_registrations")
    op.drop_table("webinar_registrations")

    op.drop_index("uq_webinar_session_start", table_name="webinar_sessions")
    op.drop_table("webinar_sessions")

    op.drop_table("schedule_configs")
