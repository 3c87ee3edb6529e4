"""create_time_tracking_tables

Revision ID: 3f9c2a71d5e4
Revises:
Create Date: 2026-09-28 10:14:05.412870

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9c2a71d5e4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "users",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("full_name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("department", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_department", "users", ["department"])

    op.create_table(
        "shift_types",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("shift_pattern", sa.String(20), nullable=False),
        sa.Column("start_time", sa.String(8), nullable=False),
        sa.Column("end_time", sa.String(8), nullable=False),
        sa.Column("duration_hours", sa.Numeric(4, 2), nullable=False),
        sa.Column("is_night_shift", sa.Boolean(), nullable=False),
    )

    op.create_table(
        "work_schedules",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("department", sa.String(), nullable=True),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
    )
    op.create_index("ix_work_schedules_period_status", "work_schedules", ["year", "month", "status"])

    op.create_table(
        "schedule_assignments",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("work_schedule_id", sa.String(), sa.ForeignKey("work_schedules.id"), nullable=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("shift_type_id", sa.String(), sa.ForeignKey("shift_types.id"), nullable=True),
        sa.Column("shift_date", sa.Date(), nullable=False),
        sa.Column("is_rest_day", sa.Boolean(), nullable=False),
        sa.Column("leave_type", sa.String(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
    )
    op.create_index("ix_schedule_assignments_work_schedule_id", "schedule_assignments", ["work_schedule_id"])
    op.create_index("ix_schedule_assignments_user_id", "schedule_assignments", ["user_id"])
    op.create_index("ix_schedule_assignments_shift_date", "schedule_assignments", ["shift_date"])

    op.create_table(
        "time_entries",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("task_id", sa.String(), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("is_manual", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("manual_adjustment_reason", sa.Text(), nullable=True),
        sa.Column("auto_stopped", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("approval_status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("approved_by", sa.String(), nullable=True),
        sa.Column("gps_status", sa.String(20), nullable=True),
        sa.Column("last_gps_error", sa.String(255), nullable=True),
        sa.Column("gps_status_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_time_entries_id", "time_entries", ["id"])
    op.create_index("ix_time_entries_user_id", "time_entries", ["user_id"])
    op.create_index("ix_time_entries_task_id", "time_entries", ["task_id"])
    op.create_index("ix_time_entries_start_time", "time_entries", ["start_time"])
    op.create_index("ix_time_entries_user_start", "time_entries", ["user_id", "start_time"])

    op.create_table(
        "location_logs",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("time_entry_id", sa.String(), sa.ForeignKey("time_entries.id"), nullable=False),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("latitude", sa.Numeric(10, 8), nullable=False),
        sa.Column("longitude", sa.Numeric(11, 8), nullable=False),
        sa.Column("accuracy", sa.Numeric(10, 2), nullable=True),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_auto_recorded", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_location_logs_id", "location_logs", ["id"])
    op.create_index("ix_location_logs_time_entry_id", "location_logs", ["time_entry_id"])
    op.create_index("ix_location_logs_user_id", "location_logs", ["user_id"])
    op.create_index("ix_location_logs_entry_recorded", "location_logs", ["time_entry_id", "recorded_at"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_type", "notifications", ["type"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("notifications")
    op.drop_table("location_logs")
    op.drop_table("time_entries")
    op.drop_table("schedule_assignments")
    op.drop_table("work_schedules")
    op.drop_table("shift_types")
    op.drop_table("users")
