# ruff: noqa: TC003
"""Core value types of the leave-approval workflow.

Everything here is immutable: a request never changes after submission and
state snapshots are replaced, never mutated.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Annotated, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from leave_approval.models.enums import WorkflowStatus

if TYPE_CHECKING:
    from leave_approval.config import Settings

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class LeaveRequest(BaseModel):
    """A submitted leave request. Owned by its workflow instance."""

    model_config = ConfigDict(frozen=True)

    request_id: str = Field(min_length=1, max_length=255)
    employee_name: str = Field(min_length=1, max_length=255)
    employee_email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    start_date: date
    end_date: date
    reason: str = Field(min_length=1, max_length=1000)
    approver_email: str = Field(max_length=255, pattern=EMAIL_PATTERN)

    @model_validator(mode="after")
    def _validate_dates(self) -> Self:
        if self.end_date < self.start_date:
            msg = "end_date must not be before start_date"
            raise ValueError(msg)
        return self


class Decision(BaseModel):
    """An approver's verdict. At most one is ever accepted per instance."""

    model_config = ConfigDict(frozen=True)

    approved: bool
    comment: str | None = Field(default=None, max_length=1000)
    decided_by: str = Field(min_length=1, max_length=255)


class WorkflowConfig(BaseModel):
    """Timing and placement of one instance, fixed at creation time."""

    model_config = ConfigDict(frozen=True)

    reminder_interval_seconds: int = Field(gt=0)
    approval_timeout_seconds: int = Field(gt=0)
    task_queue: str = Field(min_length=1, max_length=255)

    @classmethod
    def from_settings(cls, settings: Settings) -> WorkflowConfig:
        return cls(
            reminder_interval_seconds=settings.reminder_interval_seconds,
            approval_timeout_seconds=settings.approval_timeout_seconds,
            task_queue=settings.task_queue,
        )

    def timeout_deadline(self, submitted_at: datetime) -> datetime:
        """Absolute deadline after which a pending instance times out."""
        return submitted_at + timedelta(seconds=self.approval_timeout_seconds)

    def reminder_deadline(self, submitted_at: datetime, sequence_number: int) -> datetime | None:
        """Deadline of the ``sequence_number``-th reminder (1-based).

        Returns None when that reminder would not fall strictly inside the
        approval window.
        """
        deadline = submitted_at + timedelta(seconds=self.reminder_interval_seconds * sequence_number)
        if deadline >= self.timeout_deadline(submitted_at):
            return None
        return deadline

    @property
    def max_reminders(self) -> int:
        """Number of whole reminder intervals strictly inside the approval window."""
        return (self.approval_timeout_seconds - 1) // self.reminder_interval_seconds


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------


class DecisionSignal(BaseModel):
    """Approve or reject."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["decision"] = "decision"
    decision: Decision


class CancelSignal(BaseModel):
    """Withdraw the request."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["cancel"] = "cancel"
    reason: str = Field(min_length=1, max_length=1000)


WorkflowSignal = Annotated[DecisionSignal | CancelSignal, Field(discriminator="kind")]


# ---------------------------------------------------------------------------
# Results and snapshots
# ---------------------------------------------------------------------------


class WorkflowResult(BaseModel):
    """Terminal outcome handed to ``notify_employee`` and stored in Completed."""

    model_config = ConfigDict(frozen=True)

    request_id: str
    status: WorkflowStatus
    decision: Decision | None = None
    cancel_reason: str | None = None
    completed_at: datetime


class InstanceState(BaseModel):
    """Point-in-time snapshot of an instance, as returned by queries."""

    model_config = ConfigDict(frozen=True)

    workflow_id: str
    request: LeaveRequest
    status: WorkflowStatus
    submitted_at: datetime
    decision: Decision | None = None
    cancel_reason: str | None = None
    reminders_sent: int = 0
    completed: bool = False
    completed_at: datetime | None = None


class SignalAck(BaseModel):
    """Acknowledgement returned to the caller that delivered a signal.

    ``effective`` is True when the signal changed the instance, False when it
    arrived after a terminal status and was ignored, and None when it was
    queued but not yet applied within the acknowledgement window.
    """

    workflow_id: str
    effective: bool | None
    status: WorkflowStatus
