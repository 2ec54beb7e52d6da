from sqlmodel import SQLModel

from leave_approval.models.base import UUIDBase
from leave_approval.models.enums import (
    ActivityName,
    WakeReason,
    WorkflowStatus,
)
from leave_approval.models.event import WorkflowEventRecord

__all__ = [
    "ActivityName",
    "SQLModel",
    "UUIDBase",
    "WakeReason",
    "WorkflowEventRecord",
    "WorkflowStatus",
]
