"""canvas_tasks table — generation jobs with claim lease columns

Revision ID: 0001
Revises: None
Create Date: 2026-10-17 10:00:00
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "canvas_tasks",
        sa.Column("task_id", sa.String(36), primary_key=True),
        sa.Column("canvas_id", sa.String(64), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending",
                  comment="pending | in_progress | succeeded | failed"),
        sa.Column("status_code", sa.String(64), nullable=True),
        sa.Column("payload", sa.JSON, nullable=False),
        sa.Column("claim_token", sa.String(36), nullable=True),
        sa.Column("claimed_at", sa.DateTime, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        mysql_charset="utf8mb4",
        mysql_collate="utf8mb4_unicode_ci",
    )
    op.create_index("ix_canvas_tasks_canvas_id", "canvas_tasks", ["canvas_id"])
    op.create_index("ix_canvas_tasks_status", "canvas_tasks", ["status"])


def downgrade() -> None:
    op.drop_index("ix_canvas_tasks_status", table_name="canvas_tasks")
    op.drop_index("ix_canvas_tasks_canvas_id", table_name="canvas_tasks")
    op.drop_table("canvas_tasks")
