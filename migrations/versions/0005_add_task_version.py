"""add task version counter for optimistic locking"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0005_add_task_version"
down_revision = "0004_add_completions"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "tasks",
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
    )


def downgrade() -> None:
    op.drop_column("tasks", "version")
