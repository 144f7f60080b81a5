"""add recurrences table"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0002_add_recurrences"
down_revision = "0001_create_tasks"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "recurrences",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("frequency", sa.JSON(), nullable=False),
        sa.Column("anchor_date", sa.DateTime(), nullable=True),
        sa.Column("next_due_date", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "type IN ('fixed_schedule', 'after_completion')", name="recurrences_valid_type"
        ),
        sa.CheckConstraint(
            "type <> 'fixed_schedule' OR anchor_date IS NOT NULL",
            name="recurrences_fixed_has_anchor",
        ),
    )
    with op.batch_alter_table("tasks") as batch:
        batch.add_column(sa.Column("recurrence_id", sa.String(length=36), nullable=True))
        batch.create_foreign_key(
            "fk_tasks_recurrence_id", "recurrences", ["recurrence_id"], ["id"], ondelete="SET NULL"
        )
        batch.create_index("ix_tasks_recurrence_id", ["recurrence_id"], unique=False)


def downgrade() -> None:
    with op.batch_alter_table("tasks") as batch:
        batch.drop_index("ix_tasks_recurrence_id")
        batch.drop_constraint("fk_tasks_recurrence_id", type_="foreignkey")
        batch.drop_column("recurrence_id")
    op.drop_table("recurrences")
