"""create events, scheduled_jobs and notifications tables

Revision ID: 3b7e1c2a9d40
Revises:
Create Date: 2026-10-19 09:12:31.402118

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3b7e1c2a9d40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # Event store
    op.create_table(
        "events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("type", sa.Text, nullable=False, comment="Event type tag"),
        sa.Column(
            "payload", sa.JSON, nullable=False, comment="Typed payload for the tag"
        ),
        sa.Column(
            "processed",
            sa.Boolean,
            nullable=False,
            server_default=sa.false(),
            comment="Delivery attempted to every listener",
        ),
        sa.Column("user_id", sa.Text, nullable=True, comment="Acting or target user"),
        sa.Column(
            "landlord_id", sa.Text, nullable=True, comment="Owning landlord scope"
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_events_processed_created_at", "events", ["processed", "created_at"]
    )
    op.create_index("ix_events_type_created_at", "events", ["type", "created_at"])

    # Job queue
    op.create_table(
        "scheduled_jobs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("type", sa.Text, nullable=False, comment="Job type identifier"),
        sa.Column(
            "payload", sa.JSON, nullable=False, comment="Job-specific parameters"
        ),
        sa.Column(
            "scheduled_for",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            comment="Earliest time to run job",
        ),
        sa.Column(
            "priority",
            sa.Integer,
            nullable=False,
            server_default="0",
            comment="Higher runs first among due jobs",
        ),
        sa.Column(
            "status",
            sa.Text,
            nullable=False,
            server_default="pending",
            comment="Job status: pending|processing|completed|failed",
        ),
        sa.Column(
            "retry_count",
            sa.Integer,
            nullable=False,
            server_default="0",
            comment="Failed attempts so far",
        ),
        sa.Column(
            "max_retries",
            sa.Integer,
            nullable=False,
            server_default="3",
            comment="Attempts before terminal failure",
        ),
        sa.Column("last_error", sa.Text, nullable=True, comment="Last error message"),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        # Worker coordination fields
        sa.Column(
            "locked_at",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="When job was claimed",
        ),
        sa.Column(
            "locked_by",
            sa.Text,
            nullable=True,
            comment="Worker ID that claimed the job",
        ),
        sa.Column("result", sa.JSON, nullable=True, comment="Handler result data"),
        sa.Column(
            "dedupe_key",
            sa.Text,
            nullable=True,
            comment="Deduplication key for active jobs",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="scheduled_jobs_status_check",
        ),
        sa.CheckConstraint(
            "retry_count >= 0", name="scheduled_jobs_retry_count_check"
        ),
    )

    # Worker selection: status = pending ordered by priority and due time
    op.create_index(
        "ix_scheduled_jobs_due",
        "scheduled_jobs",
        ["status", "priority", "scheduled_for"],
    )
    op.create_index("ix_scheduled_jobs_dedupe_key", "scheduled_jobs", ["dedupe_key"])

    # In-app notifications
    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Text, nullable=False),
        sa.Column("type", sa.Text, nullable=False),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("action_url", sa.Text, nullable=True),
        sa.Column("metadata", sa.JSON, nullable=False),
        sa.Column("landlord_id", sa.Text, nullable=True),
        sa.Column(
            "is_read", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_notifications_user_id_created_at",
        "notifications",
        ["user_id", "created_at"],
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_notifications_user_id_created_at", table_name="notifications")
    op.drop_table("notifications")

    op.drop_index("ix_scheduled_jobs_dedupe_key", table_name="scheduled_jobs")
    op.drop_index("ix_scheduled_jobs_due", table_name="scheduled_jobs")
    op.drop_table("scheduled_jobs")

    op.drop_index("ix_events_type_created_at", table_name="events")
    op.drop_index("ix_events_processed_created_at", table_name="events")
    op.drop_table("events")
