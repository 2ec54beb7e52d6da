# ruff: noqa: TC001, TC003
"""Pure transition function of the approval workflow.

``apply`` maps (state, event) to (state', effects) and performs no I/O.
Folding an instance's log through it reconstructs exactly the state the
scheduler held when it appended those events.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import NamedTuple, assert_never

from pydantic import BaseModel, ConfigDict

from leave_approval.models.enums import ActivityName, WorkflowStatus
from leave_approval.schemas.events import (
    ActivityCompletedEvent,
    ActivityFailedEvent,
    CompletedEvent,
    RecordedEvent,
    ReminderSentEvent,
    SignalAppliedEvent,
    StartedEvent,
    TimedOutEvent,
    WorkflowEvent,
)
from leave_approval.schemas.workflow import (
    CancelSignal,
    Decision,
    DecisionSignal,
    InstanceState,
    LeaveRequest,
    WorkflowConfig,
    WorkflowResult,
    WorkflowSignal,
)


class InvalidEventError(ValueError):
    """The event cannot follow the current state (corrupt or foreign log)."""


class WorkflowState(BaseModel):
    """Everything the scheduler knows about an instance, derived from its log."""

    model_config = ConfigDict(frozen=True)

    request: LeaveRequest
    config: WorkflowConfig
    submitted_at: datetime
    status: WorkflowStatus = WorkflowStatus.PENDING
    decision: Decision | None = None
    cancel_reason: str | None = None
    decided_at: datetime | None = None
    reminders_sent: int = 0
    resolved_activities: frozenset[tuple[ActivityName, int]] = frozenset()
    result: WorkflowResult | None = None

    @property
    def completed(self) -> bool:
        return self.result is not None

    @property
    def timeout_deadline(self) -> datetime:
        return self.config.timeout_deadline(self.submitted_at)

    @property
    def next_reminder_deadline(self) -> datetime | None:
        """Deadline of the next unsent reminder, or None if none remain."""
        return self.config.reminder_deadline(self.submitted_at, self.reminders_sent + 1)

    def is_resolved(self, activity: ActivityName, sequence_number: int) -> bool:
        """Whether the activity occurrence already completed or gave up."""
        return (activity, sequence_number) in self.resolved_activities

    def build_result(self) -> WorkflowResult:
        if not self.status.is_terminal or self.decided_at is None:
            msg = f"Instance {self.request.request_id} has no outcome yet"
            raise InvalidEventError(msg)
        return WorkflowResult(
            request_id=self.request.request_id,
            status=self.status,
            decision=self.decision,
            cancel_reason=self.cancel_reason,
            completed_at=self.decided_at,
        )

    def to_instance_state(self) -> InstanceState:
        """Project the read-only snapshot served to queries."""
        return InstanceState(
            workflow_id=self.request.request_id,
            request=self.request,
            status=self.status,
            submitted_at=self.submitted_at,
            decision=self.decision,
            cancel_reason=self.cancel_reason,
            reminders_sent=self.reminders_sent,
            completed=self.completed,
            completed_at=self.result.completed_at if self.result is not None else None,
        )


@dataclass(frozen=True)
class Effect:
    """An activity occurrence the scheduler must run after a transition."""

    activity: ActivityName
    sequence_number: int


class Transition(NamedTuple):
    state: WorkflowState
    effects: tuple[Effect, ...]


def next_status(state: WorkflowState, signal: WorkflowSignal) -> WorkflowStatus:
    """Status the instance would have after ``signal``. Terminal states never change."""
    if state.status.is_terminal:
        return state.status
    if isinstance(signal, DecisionSignal):
        return WorkflowStatus.APPROVED if signal.decision.approved else WorkflowStatus.REJECTED
    if isinstance(signal, CancelSignal):
        return WorkflowStatus.CANCELLED
    assert_never(signal)


def _apply_signal(state: WorkflowState, event: SignalAppliedEvent) -> WorkflowState:
    if state.status.is_terminal:
        # First writer wins; later receipts are audit-only.
        return state
    signal = event.signal
    if isinstance(signal, DecisionSignal):
        return state.model_copy(
            update={
                "status": next_status(state, signal),
                "decision": signal.decision,
                "decided_at": event.applied_at,
            }
        )
    if isinstance(signal, CancelSignal):
        return state.model_copy(
            update={
                "status": WorkflowStatus.CANCELLED,
                "cancel_reason": signal.reason,
                "decided_at": event.applied_at,
            }
        )
    assert_never(signal)


def _resolve_activity(state: WorkflowState, activity: ActivityName, sequence_number: int) -> WorkflowState:
    return state.model_copy(
        update={"resolved_activities": state.resolved_activities | {(activity, sequence_number)}}
    )


def apply(state: WorkflowState | None, event: WorkflowEvent) -> Transition:
    """Apply one event. Pure: the same inputs always give the same outputs."""
    if isinstance(event, StartedEvent):
        if state is not None:
            msg = f"Instance {state.request.request_id} was already started"
            raise InvalidEventError(msg)
        started = WorkflowState(request=event.request, config=event.config, submitted_at=event.submitted_at)
        return Transition(started, (Effect(ActivityName.NOTIFY_APPROVER, 0),))

    if state is None:
        msg = f"{event.type} cannot precede STARTED"
        raise InvalidEventError(msg)
    if state.completed:
        msg = f"Instance {state.request.request_id} is completed; {event.type} rejected"
        raise InvalidEventError(msg)

    if isinstance(event, SignalAppliedEvent):
        return Transition(_apply_signal(state, event), ())

    if isinstance(event, ReminderSentEvent):
        reminders = max(state.reminders_sent, event.sequence_number)
        return Transition(state.model_copy(update={"reminders_sent": reminders}), ())

    if isinstance(event, TimedOutEvent):
        if state.status.is_terminal:
            return Transition(state, ())
        timed_out = state.model_copy(update={"status": WorkflowStatus.TIMEOUT, "decided_at": event.timed_out_at})
        return Transition(timed_out, ())

    if isinstance(event, ActivityCompletedEvent | ActivityFailedEvent):
        return Transition(_resolve_activity(state, event.activity_name, event.sequence_number), ())

    if isinstance(event, CompletedEvent):
        if not state.status.is_terminal:
            msg = f"Instance {state.request.request_id} cannot complete while {state.status}"
            raise InvalidEventError(msg)
        return Transition(state.model_copy(update={"result": event.result}), ())

    assert_never(event)


def fold(events: Iterable[WorkflowEvent]) -> WorkflowState | None:
    """Reconstruct state from events in order. None for an empty log."""
    state: WorkflowState | None = None
    for event in events:
        state = apply(state, event).state
    return state


def replay(records: Iterable[RecordedEvent]) -> WorkflowState | None:
    """Fold a stored log."""
    return fold(record.event for record in records)


def replay_with_effects(records: Iterable[RecordedEvent]) -> tuple[WorkflowState | None, tuple[Effect, ...]]:
    """Fold a stored log and return the emitted effects that never resolved."""
    state: WorkflowState | None = None
    effects: list[Effect] = []
    for record in records:
        transition = apply(state, record.event)
        state = transition.state
        effects.extend(transition.effects)
    if state is None:
        return None, ()
    return state, tuple(e for e in effects if not state.is_resolved(e.activity, e.sequence_number))
