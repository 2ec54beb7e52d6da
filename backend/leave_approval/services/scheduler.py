"""Drives one workflow instance from STARTED to COMPLETED.

The scheduler is the single writer of its instance's log. Signals are queued
in an inbox and applied one at a time from inside the wait loop, so a signal
and a timer can never be applied concurrently. Each transition is appended to
the log before the in-memory state (and therefore any query) reflects it.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, assert_never

from leave_approval.exceptions import DurabilityError
from leave_approval.models.enums import ActivityName, WakeReason, WorkflowStatus
from leave_approval.schemas.events import (
    CompletedEvent,
    ReminderSentEvent,
    SignalAppliedEvent,
    TimedOutEvent,
)
from leave_approval.services.state_machine import apply, next_status

if TYPE_CHECKING:
    from datetime import datetime

    from leave_approval.schemas.events import WorkflowEvent
    from leave_approval.schemas.workflow import WorkflowResult, WorkflowSignal
    from leave_approval.services.activity_invoker import ActivityInvoker
    from leave_approval.services.clock import Clock
    from leave_approval.services.event_log import EventLog
    from leave_approval.services.notifications import NotificationService
    from leave_approval.services.state_machine import Effect, WorkflowState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignalReceipt:
    """Outcome of applying one signal."""

    changed: bool
    status: WorkflowStatus


@dataclass
class PendingSignal:
    signal: WorkflowSignal
    receipt: asyncio.Future[SignalReceipt] = field(default_factory=lambda: asyncio.get_running_loop().create_future())

    def resolve(self, receipt: SignalReceipt) -> None:
        if not self.receipt.done():
            self.receipt.set_result(receipt)

    def fail(self, exc: BaseException) -> None:
        if not self.receipt.done():
            self.receipt.set_exception(exc)
            # Callers may have stopped waiting; mark the exception as retrieved.
            self.receipt.add_done_callback(lambda f: f.exception())


class SignalInbox:
    """FIFO of delivered signals with an awaitable "not empty" condition."""

    def __init__(self) -> None:
        self._items: deque[PendingSignal] = deque()
        self._arrived = asyncio.Event()

    def __len__(self) -> int:
        return len(self._items)

    def put(self, item: PendingSignal) -> None:
        self._items.append(item)
        self._arrived.set()

    def pop(self) -> PendingSignal:
        item = self._items.popleft()
        if not self._items:
            self._arrived.clear()
        return item

    def drain(self) -> list[PendingSignal]:
        items = list(self._items)
        self._items.clear()
        self._arrived.clear()
        return items

    async def wait(self) -> None:
        await self._arrived.wait()


async def wait_for_first(
    inbox: SignalInbox,
    clock: Clock,
    *,
    timeout_at: datetime,
    reminder_at: datetime | None = None,
) -> WakeReason:
    """Block until a signal is queued or a deadline passes; report which.

    A queued signal always wins, even over deadlines that have already
    expired. Between the two deadlines, the timeout wins.
    """
    while True:
        if inbox:
            return WakeReason.SIGNAL
        now = clock.now()
        if now >= timeout_at:
            return WakeReason.TIMEOUT
        if reminder_at is not None and now >= reminder_at:
            return WakeReason.REMINDER

        deadline = timeout_at if reminder_at is None else min(reminder_at, timeout_at)
        signal_waiter = asyncio.ensure_future(inbox.wait())
        timer = asyncio.ensure_future(clock.sleep_until(deadline))
        try:
            await asyncio.wait({signal_waiter, timer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            signal_waiter.cancel()
            timer.cancel()
            await asyncio.gather(signal_waiter, timer, return_exceptions=True)


class WorkflowScheduler:
    """Owns one running instance."""

    def __init__(
        self,
        state: WorkflowState,
        next_sequence: int,
        *,
        event_log: EventLog,
        notifications: NotificationService,
        invoker: ActivityInvoker,
        clock: Clock,
        pending_effects: tuple[Effect, ...] = (),
    ) -> None:
        self._state = state
        self._next_sequence = next_sequence
        self._event_log = event_log
        self._notifications = notifications
        self._invoker = invoker
        self._clock = clock
        self._pending_effects = pending_effects
        self._inbox = SignalInbox()
        self._closed = False
        self._halted = False

    @property
    def instance_id(self) -> str:
        return self._state.request.request_id

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def accepting(self) -> bool:
        """Whether delivered signals will still be applied by this scheduler."""
        return not self._closed and not self._halted

    @property
    def halted(self) -> bool:
        return self._halted

    def halt(self, exc: BaseException) -> None:
        """Stop accepting signals and fail any that are queued."""
        self._halted = True
        for pending in self._inbox.drain():
            pending.fail(exc)

    def deliver(self, signal: WorkflowSignal) -> asyncio.Future[SignalReceipt]:
        """Queue a signal; the returned future resolves once it is logged."""
        pending = PendingSignal(signal)
        self._inbox.put(pending)
        return pending.receipt

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self) -> WorkflowResult | None:
        """Run the instance to completion. Returns None if it halted."""
        try:
            await self._run_effects()
            if not self._state.status.is_terminal:
                await self._wait_loop()
            return await self._finish()
        except DurabilityError as exc:
            logger.exception("Instance %s halted: event log unavailable", self.instance_id)
            self.halt(exc)
            return None
        except asyncio.CancelledError:
            for pending in self._inbox.drain():
                pending.receipt.cancel()
            raise

    async def _record(self, event: WorkflowEvent) -> WorkflowState:
        try:
            recorded = await self._event_log.append(self.instance_id, self._next_sequence, event, self._clock.now())
        except DurabilityError:
            self._halted = True
            raise
        self._state = apply(self._state, recorded.event).state
        self._next_sequence += 1
        return self._state

    async def _run_effects(self) -> None:
        for effect in self._pending_effects:
            if effect.activity is ActivityName.NOTIFY_APPROVER:
                await self._invoker.invoke(
                    self._state,
                    self._record,
                    effect.activity,
                    effect.sequence_number,
                    self._notifications.notify_approver,
                    self._state.request,
                    deadline=self._state.timeout_deadline,
                )
        self._pending_effects = ()

    async def _wait_loop(self) -> None:
        while not self._state.status.is_terminal:
            wake = await wait_for_first(
                self._inbox,
                self._clock,
                timeout_at=self._state.timeout_deadline,
                reminder_at=self._state.next_reminder_deadline,
            )
            if wake is WakeReason.SIGNAL:
                await self._apply_next_signal()
            elif wake is WakeReason.REMINDER:
                await self._send_reminder(self._state.reminders_sent + 1)
            elif wake is WakeReason.TIMEOUT:
                await self._record(TimedOutEvent(timed_out_at=self._clock.now()))
                logger.info("Instance %s timed out after %d reminder(s)", self.instance_id, self._state.reminders_sent)
            else:
                assert_never(wake)

    async def _apply_next_signal(self) -> None:
        pending = self._inbox.pop()
        before = self._state.status
        status = next_status(self._state, pending.signal)
        try:
            await self._record(
                SignalAppliedEvent(signal=pending.signal, resulting_status=status, applied_at=self._clock.now())
            )
        except DurabilityError as exc:
            pending.fail(exc)
            raise
        changed = self._state.status is not before
        if changed:
            logger.info("Instance %s: %s signal applied, status %s", self.instance_id, pending.signal.kind, status)
        else:
            logger.info("Instance %s: %s signal ignored, already %s", self.instance_id, pending.signal.kind, status)
        pending.resolve(SignalReceipt(changed=changed, status=self._state.status))

    async def _send_reminder(self, sequence_number: int) -> None:
        # A reminder may retry until the next one is due, never past the timeout.
        following = self._state.config.reminder_deadline(self._state.submitted_at, sequence_number + 1)
        await self._invoker.invoke(
            self._state,
            self._record,
            ActivityName.SEND_REMINDER,
            sequence_number,
            self._notifications.send_reminder,
            self._state.request,
            deadline=following or self._state.timeout_deadline,
        )
        await self._record(ReminderSentEvent(sequence_number=sequence_number, sent_at=self._clock.now()))
        logger.info("Instance %s: reminder %d sent", self.instance_id, sequence_number)

    async def _record_late_signals(self) -> None:
        """Log receipts for signals that arrived after the decisive transition."""
        late = self._inbox.drain()
        try:
            for pending in late:
                await self._record(
                    SignalAppliedEvent(
                        signal=pending.signal,
                        resulting_status=self._state.status,
                        applied_at=self._clock.now(),
                    )
                )
                logger.info("Instance %s: late %s signal ignored", self.instance_id, pending.signal.kind)
                pending.resolve(SignalReceipt(changed=False, status=self._state.status))
        except DurabilityError as exc:
            for pending in late:
                pending.fail(exc)
            raise

    async def _finish(self) -> WorkflowResult:
        await self._record_late_signals()

        result = self._state.build_result()
        budget = timedelta(seconds=self._state.config.approval_timeout_seconds)
        await self._invoker.invoke(
            self._state,
            self._record,
            ActivityName.NOTIFY_EMPLOYEE,
            0,
            self._notifications.notify_employee,
            self._state.request,
            result,
            deadline=self._clock.now() + budget,
        )

        # Signals delivered while the employee was being notified still get a
        # receipt; after this point the engine answers them from the log.
        self._closed = True
        await self._record_late_signals()
        await self._record(CompletedEvent(result=result))
        logger.info("Instance %s completed with status %s", self.instance_id, result.status)
        return result
