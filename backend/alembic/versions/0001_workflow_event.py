"""Create the workflow event log.

Revision ID: 0001_workflow_event
Revises:
Create Date: 2024-12-01 09:00:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_workflow_event"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "workflow_event",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("instance_id", sa.String(length=255), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(length=50), nullable=False),
        sa.Column("payload_json", sa.JSON(), nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("instance_id", "sequence", name="uq_workflow_event_sequence"),
    )
    op.create_index("ix_workflow_event_instance_id", "workflow_event", ["instance_id"])
    op.create_index("ix_workflow_event_type", "workflow_event", ["event_type"])


def downgrade() -> None:
    op.drop_index("ix_workflow_event_type", table_name="workflow_event")
    op.drop_index("ix_workflow_event_instance_id", table_name="workflow_event")
    op.drop_table("workflow_event")
