"""Shared builders and fakes for the workflow tests."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from leave_approval.models.enums import ActivityName
from leave_approval.schemas.workflow import LeaveRequest
from leave_approval.services.activity_invoker import RetryPolicy
from leave_approval.services.engine import WorkflowEngine

if TYPE_CHECKING:
    from leave_approval.schemas.workflow import WorkflowConfig, WorkflowResult
    from leave_approval.services.event_log import EventLog

START = datetime(2024, 12, 1, 9, 0, tzinfo=UTC)
DAY = 86400

TEST_RETRY_POLICY = RetryPolicy(
    start_to_close_timeout_seconds=5.0,
    initial_backoff_seconds=1.0,
    max_backoff_seconds=60.0,
)

_SETTLE_ITERATIONS = 200


async def settle(iterations: int = _SETTLE_ITERATIONS) -> None:
    """Yield to the event loop until ready callbacks have had a chance to run."""
    for _ in range(iterations):
        await asyncio.sleep(0)


class ManualClock:
    """Virtual time that only moves when ``advance`` is called.

    Sleepers are woken in deadline order, and the event loop is allowed to
    settle after each wake so that the woken tasks observe the deadline they
    waited for as ``now``.
    """

    def __init__(self, start: datetime = START) -> None:
        self._now = start
        self._sleepers: list[tuple[datetime, asyncio.Future[None]]] = []

    def now(self) -> datetime:
        return self._now

    async def sleep(self, seconds: float) -> None:
        await self.sleep_until(self._now + timedelta(seconds=seconds))

    async def sleep_until(self, deadline: datetime) -> None:
        if deadline <= self._now:
            await asyncio.sleep(0)
            return
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        entry = (deadline, future)
        self._sleepers.append(entry)
        try:
            await future
        finally:
            if entry in self._sleepers:
                self._sleepers.remove(entry)

    @property
    def pending_sleepers(self) -> int:
        return sum(1 for _, future in self._sleepers if not future.done())

    async def advance(self, delta: timedelta) -> None:
        """Move time forward by ``delta``, waking every sleeper that falls due."""
        target = self._now + delta
        await settle()
        while True:
            due = [deadline for deadline, future in self._sleepers if deadline <= target and not future.done()]
            if not due:
                break
            self._now = max(self._now, min(due))
            for deadline, future in list(self._sleepers):
                if deadline <= self._now and not future.done():
                    future.set_result(None)
            await settle()
        self._now = target
        await settle()


def make_request(request_id: str = "leave-test-1", **overrides: Any) -> LeaveRequest:
    data: dict[str, Any] = {
        "request_id": request_id,
        "employee_name": "Taro Yamada",
        "employee_email": "yamada@example.com",
        "start_date": "2024-12-20",
        "end_date": "2024-12-25",
        "reason": "Year-end trip home",
        "approver_email": "manager@example.com",
    }
    data.update(overrides)
    return LeaveRequest.model_validate(data)


class RecordingNotificationService:
    """Notification fake that records calls and can fail on demand."""

    def __init__(self) -> None:
        self.calls: list[tuple[ActivityName, str]] = []
        self.results: list[WorkflowResult] = []
        self._failures: dict[ActivityName, list[Exception]] = defaultdict(list)

    def fail_next(self, activity: ActivityName, *errors: Exception) -> None:
        """Raise ``errors`` (in order) on the next calls to ``activity``."""
        self._failures[activity].extend(errors)

    def count(self, activity: ActivityName, request_id: str | None = None) -> int:
        return sum(1 for name, rid in self.calls if name == activity and (request_id is None or rid == request_id))

    def _call(self, activity: ActivityName, request: LeaveRequest) -> None:
        if self._failures[activity]:
            raise self._failures[activity].pop(0)
        self.calls.append((activity, request.request_id))

    async def notify_approver(self, request: LeaveRequest) -> None:
        self._call(ActivityName.NOTIFY_APPROVER, request)

    async def send_reminder(self, request: LeaveRequest) -> None:
        self._call(ActivityName.SEND_REMINDER, request)

    async def notify_employee(self, request: LeaveRequest, result: WorkflowResult) -> None:
        self._call(ActivityName.NOTIFY_EMPLOYEE, request)
        self.results.append(result)


def make_engine(
    event_log: EventLog,
    notifications: RecordingNotificationService,
    clock: ManualClock,
    config: WorkflowConfig,
    retry_policy: RetryPolicy = TEST_RETRY_POLICY,
) -> WorkflowEngine:
    return WorkflowEngine(
        event_log,
        notifications,
        config=config,
        retry_policy=retry_policy,
        clock=clock,
        signal_ack_timeout_seconds=2.0,
    )
