"""add habit streak and someday nudge fields"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0003_add_habit_and_someday_fields"
down_revision = "0002_add_recurrences"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("tasks", sa.Column("target_frequency", sa.JSON(), nullable=True))
    op.add_column(
        "tasks",
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
    )
    op.add_column(
        "tasks",
        sa.Column("longest_streak", sa.Integer(), nullable=False, server_default="0"),
    )
    op.add_column("tasks", sa.Column("streak_safe_until", sa.DateTime(), nullable=True))
    op.add_column(
        "tasks",
        sa.Column("streak_locked", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )
    op.add_column("tasks", sa.Column("nudge_threshold_days", sa.Integer(), nullable=True))
    op.add_column("tasks", sa.Column("last_nudged_at", sa.DateTime(), nullable=True))


def downgrade() -> None:
    op.drop_column("tasks", "last_nudged_at")
    op.drop_column("tasks", "nudge_threshold_days")
    op.drop_column("tasks", "streak_locked")
    op.drop_column("tasks", "streak_safe_until")
    op.drop_column("tasks", "longest_streak")
    op.drop_column("tasks", "current_streak")
    op.drop_column("tasks", "target_frequency")
