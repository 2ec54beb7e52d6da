# ruff: noqa: TC003
from __future__ import annotations

from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from leave_approval.models.base import UUIDBase, now_utc


class WorkflowEventRecord(UUIDBase, table=True):
    """Append-only log entry for one workflow instance.

    ``(instance_id, sequence)`` is unique, so each instance log is a single
    linear history and a second ``STARTED`` at sequence 0 is rejected.
    """

    __tablename__ = "workflow_event"
    __table_args__ = (
        sa.UniqueConstraint("instance_id", "sequence", name="uq_workflow_event_sequence"),
        sa.Index("ix_workflow_event_type", "event_type"),
    )

    instance_id: str = Field(max_length=255, index=True)
    sequence: int
    event_type: str = Field(max_length=50)
    payload_json: dict[str, Any] = Field(sa_type=sa.JSON)
    recorded_at: datetime = Field(
        default_factory=now_utc,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
        sa_column_kwargs={"server_default": sa.func.now()},
    )
