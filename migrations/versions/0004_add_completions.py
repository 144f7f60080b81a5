"""add completions table"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0004_add_completions"
down_revision = "0003_add_habit_and_someday_fields"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "completions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "task_id",
            sa.String(length=36),
            sa.ForeignKey("tasks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("completed_at", sa.DateTime(), nullable=False),
        sa.Column("was_late", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("was_retroactive", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )
    op.create_index("ix_completions_task_id", "completions", ["task_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_completions_task_id", table_name="completions")
    op.drop_table("completions")
