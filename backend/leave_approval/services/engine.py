"""Entry point of the workflow core: submit, signal, query, recover.

A ``WorkflowEngine`` is constructed explicitly with its event log and
notification handle, started once (which resumes every unfinished instance
of its task queue) and shut down at process exit. Each running instance is
one asyncio task driving a ``WorkflowScheduler``; instances share nothing but
the event log.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from fastapi import status
from pydantic import ValidationError

from leave_approval.exceptions import (
    AppError,
    DurabilityError,
    InstanceActiveError,
    InvalidSubmissionError,
    NotFoundError,
)
from leave_approval.schemas.events import StartedEvent
from leave_approval.schemas.workflow import LeaveRequest, SignalAck
from leave_approval.services.activity_invoker import ActivityInvoker, RetryPolicy
from leave_approval.services.clock import SystemClock
from leave_approval.services.query import QueryService
from leave_approval.services.scheduler import WorkflowScheduler
from leave_approval.services.state_machine import apply, replay, replay_with_effects

if TYPE_CHECKING:
    from leave_approval.models.enums import WorkflowStatus
    from leave_approval.schemas.workflow import InstanceState, WorkflowConfig, WorkflowSignal
    from leave_approval.services.clock import Clock
    from leave_approval.services.event_log import EventLog
    from leave_approval.services.notifications import NotificationService
    from leave_approval.services.state_machine import Effect, WorkflowState

logger = logging.getLogger(__name__)


def new_request_id() -> str:
    """Generate an instance id for submissions that do not bring their own."""
    return f"leave-{uuid.uuid4().hex[:16]}"


class WorkflowEngine:
    """Hosts the workflow instances of one task queue."""

    def __init__(
        self,
        event_log: EventLog,
        notifications: NotificationService,
        *,
        config: WorkflowConfig,
        retry_policy: RetryPolicy | None = None,
        clock: Clock | None = None,
        signal_ack_timeout_seconds: float = 5.0,
    ) -> None:
        self._event_log = event_log
        self._notifications = notifications
        self._config = config
        self._clock = clock or SystemClock()
        self._invoker = ActivityInvoker(self._clock, retry_policy)
        self._signal_ack_timeout = signal_ack_timeout_seconds
        self._schedulers: dict[str, WorkflowScheduler] = {}
        self._tasks: dict[str, asyncio.Task[Any]] = {}
        self.queries = QueryService(event_log, self._live_state)

    @property
    def config(self) -> WorkflowConfig:
        return self._config

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    def _live_state(self, instance_id: str) -> WorkflowState | None:
        scheduler = self._schedulers.get(instance_id)
        return scheduler.state if scheduler is not None else None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> int:
        """Resume unfinished instances. Returns how many were resumed."""
        resumed = 0
        for instance_id in await self._event_log.list_instance_ids():
            if instance_id in self._schedulers:
                continue
            records = await self._event_log.read(instance_id)
            state, effects = replay_with_effects(records)
            if state is None or state.completed:
                continue
            if state.config.task_queue != self._config.task_queue:
                continue
            logger.info(
                "Resuming %s at sequence %d (status %s, %d reminder(s) sent)",
                instance_id,
                len(records),
                state.status,
                state.reminders_sent,
            )
            self._launch(state, len(records), effects)
            resumed += 1
        logger.info("Workflow engine started on %s: %d instance(s) resumed", self._config.task_queue, resumed)
        return resumed

    async def shutdown(self) -> None:
        """Stop every scheduler. Their logs allow a later ``start`` to resume them."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._schedulers.clear()

    def _launch(self, state: WorkflowState, next_sequence: int, effects: tuple[Effect, ...]) -> None:
        scheduler = WorkflowScheduler(
            state,
            next_sequence,
            event_log=self._event_log,
            notifications=self._notifications,
            invoker=self._invoker,
            clock=self._clock,
            pending_effects=effects,
        )
        instance_id = scheduler.instance_id
        task = asyncio.create_task(scheduler.run(), name=f"workflow:{instance_id}")
        self._schedulers[instance_id] = scheduler
        self._tasks[instance_id] = task
        task.add_done_callback(lambda t: self._on_done(instance_id, t))

    def _on_done(self, instance_id: str, task: asyncio.Task[Any]) -> None:
        self._tasks.pop(instance_id, None)
        if task.cancelled():
            return
        scheduler = self._schedulers.get(instance_id)
        if scheduler is None:
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Instance %s crashed", instance_id, exc_info=exc)
            scheduler.halt(exc)
        # Halted schedulers stay registered so later signals are refused.
        if not scheduler.halted:
            del self._schedulers[instance_id]

    async def wait_for_completion(self, instance_id: str) -> None:
        """Wait until the instance's scheduler has stopped, if it is running."""
        task = self._tasks.get(instance_id)
        if task is not None:
            await asyncio.shield(task)

    # ------------------------------------------------------------------
    # External interface
    # ------------------------------------------------------------------

    async def submit(
        self,
        request: LeaveRequest | Mapping[str, Any],
        *,
        config: WorkflowConfig | None = None,
    ) -> str:
        """Create and start a new instance. Returns its id.

        Raises InvalidSubmissionError for malformed input and
        DuplicateInstanceError if the id belongs to a retained instance.
        """
        leave_request = _coerce_request(request)
        started = StartedEvent(
            request=leave_request,
            submitted_at=self._clock.now(),
            config=config or self._config,
        )
        instance_id = leave_request.request_id
        recorded = await self._event_log.append(instance_id, 0, started, started.submitted_at)
        transition = apply(None, recorded.event)
        self._launch(transition.state, 1, transition.effects)
        logger.info(
            "Submitted %s for %s (%s to %s)",
            instance_id,
            leave_request.employee_name,
            leave_request.start_date.isoformat(),
            leave_request.end_date.isoformat(),
        )
        return instance_id

    async def signal(self, instance_id: str, signal: WorkflowSignal, *, wait: bool = True) -> SignalAck:
        """Deliver a decision or cancellation.

        Waits up to the acknowledgement window for the signal to be logged.
        Signals to completed instances are acknowledged and ignored.
        """
        scheduler = self._schedulers.get(instance_id)
        if scheduler is not None and scheduler.halted:
            msg = f"Request {instance_id} is halted: its event log is unavailable"
            raise DurabilityError(msg)

        if scheduler is None or not scheduler.accepting:
            state = self._live_state(instance_id) or replay(await self._event_log.read(instance_id))
            if state is None:
                raise NotFoundError(instance_id)
            if not state.status.is_terminal:
                msg = f"Request {instance_id} is owned by task queue {state.config.task_queue}"
                raise AppError(msg, status_code=status.HTTP_409_CONFLICT)
            logger.info("Signal %s to %s ignored: already %s", signal.kind, instance_id, state.status)
            return SignalAck(workflow_id=instance_id, effective=False, status=state.status)

        receipt = scheduler.deliver(signal)
        if scheduler.state.status.is_terminal:
            # Only a receipt remains to be logged; the outcome is already known.
            return SignalAck(workflow_id=instance_id, effective=False, status=scheduler.state.status)
        if not wait:
            return SignalAck(workflow_id=instance_id, effective=None, status=scheduler.state.status)
        try:
            result = await asyncio.wait_for(asyncio.shield(receipt), timeout=self._signal_ack_timeout)
        except TimeoutError:
            return SignalAck(workflow_id=instance_id, effective=None, status=scheduler.state.status)
        return SignalAck(workflow_id=instance_id, effective=result.changed, status=result.status)

    async def get_state(self, instance_id: str) -> InstanceState:
        return await self.queries.get_state(instance_id)

    async def list_states(self, status_filter: WorkflowStatus | None = None) -> list[InstanceState]:
        return await self.queries.list_states(status_filter)

    async def archive(self, instance_id: str) -> int:
        """Prune a completed instance's log. Its id then answers NotFound."""
        if instance_id in self._schedulers:
            raise InstanceActiveError(instance_id)
        state = replay(await self._event_log.read(instance_id))
        if state is None:
            raise NotFoundError(instance_id)
        if not state.completed:
            raise InstanceActiveError(instance_id)
        removed = await self._event_log.prune(instance_id)
        logger.info("Archived %s (%d events)", instance_id, removed)
        return removed


def _coerce_request(request: LeaveRequest | Mapping[str, Any]) -> LeaveRequest:
    if isinstance(request, LeaveRequest):
        return request
    data = dict(request)
    data.setdefault("request_id", new_request_id())
    try:
        return LeaveRequest.model_validate(data)
    except ValidationError as exc:
        raise InvalidSubmissionError(str(exc)) from exc
