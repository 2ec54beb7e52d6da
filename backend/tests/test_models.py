from __future__ import annotations

import uuid
from datetime import UTC, datetime

import sqlalchemy as sa

from leave_approval.models import SQLModel, WorkflowEventRecord

EXPECTED_TABLES = {"workflow_event"}


def test_all_tables_registered() -> None:
    table_names = set(SQLModel.metadata.tables.keys())
    assert EXPECTED_TABLES.issubset(table_names)


def test_workflow_event_unique_sequence_per_instance() -> None:
    table = SQLModel.metadata.tables["workflow_event"]
    unique_columns = [
        {c.name for c in constraint.columns}
        for constraint in table.constraints
        if isinstance(constraint, sa.UniqueConstraint)
    ]
    assert {"instance_id", "sequence"} in unique_columns


def test_workflow_event_record_instantiation() -> None:
    record = WorkflowEventRecord(
        instance_id="leave-test-1",
        sequence=0,
        event_type="STARTED",
        payload_json={"type": "STARTED"},
        recorded_at=datetime(2024, 12, 1, 9, 0, tzinfo=UTC),
    )
    assert isinstance(record.id, uuid.UUID)
    assert record.sequence == 0
    assert record.payload_json["type"] == "STARTED"


def test_workflow_event_record_defaults_recorded_at() -> None:
    record = WorkflowEventRecord(instance_id="leave-test-1", sequence=1, event_type="TIMED_OUT", payload_json={})
    assert record.recorded_at.tzinfo is not None
