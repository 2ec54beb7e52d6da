# ruff: noqa: TC001, TC003
"""Event payloads stored in the workflow log.

The log is the only durable artifact of an instance. Every timestamp the
state fold needs is carried inside these payloads so that folding the log is
a pure function of its contents.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from leave_approval.models.enums import ActivityName, WorkflowStatus
from leave_approval.schemas.workflow import LeaveRequest, WorkflowConfig, WorkflowResult, WorkflowSignal


class StartedEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["STARTED"] = "STARTED"
    request: LeaveRequest
    submitted_at: datetime
    config: WorkflowConfig


class SignalAppliedEvent(BaseModel):
    """Receipt of a signal. Recorded even when it has no effect on state."""

    model_config = ConfigDict(frozen=True)

    type: Literal["SIGNAL_APPLIED"] = "SIGNAL_APPLIED"
    signal: WorkflowSignal
    resulting_status: WorkflowStatus
    applied_at: datetime


class ReminderSentEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["REMINDER_SENT"] = "REMINDER_SENT"
    sequence_number: int = Field(ge=1)
    sent_at: datetime


class TimedOutEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["TIMED_OUT"] = "TIMED_OUT"
    timed_out_at: datetime


class ActivityCompletedEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["ACTIVITY_COMPLETED"] = "ACTIVITY_COMPLETED"
    activity_name: ActivityName
    sequence_number: int = Field(ge=0)


class ActivityFailedEvent(BaseModel):
    """An activity occurrence that gave up after exhausting its retry budget."""

    model_config = ConfigDict(frozen=True)

    type: Literal["ACTIVITY_FAILED"] = "ACTIVITY_FAILED"
    activity_name: ActivityName
    sequence_number: int = Field(ge=0)
    error: str
    attempts: int = Field(ge=1)


class CompletedEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["COMPLETED"] = "COMPLETED"
    result: WorkflowResult


WorkflowEvent = Annotated[
    StartedEvent
    | SignalAppliedEvent
    | ReminderSentEvent
    | TimedOutEvent
    | ActivityCompletedEvent
    | ActivityFailedEvent
    | CompletedEvent,
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[WorkflowEvent] = TypeAdapter(WorkflowEvent)


def event_to_payload(event: WorkflowEvent) -> dict[str, Any]:
    """Serialize an event to a JSON-safe dict for storage."""
    return event.model_dump(mode="json")


def event_from_payload(payload: dict[str, Any]) -> WorkflowEvent:
    """Parse a stored payload back into its event model."""
    return _event_adapter.validate_python(payload)


@dataclass(frozen=True)
class RecordedEvent:
    """An event together with its position in the instance log."""

    instance_id: str
    sequence: int
    event: WorkflowEvent
    recorded_at: datetime
