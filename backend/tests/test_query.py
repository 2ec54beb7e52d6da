"""Tests for read-only instance snapshots."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from leave_approval.exceptions import NotFoundError
from leave_approval.models.enums import WorkflowStatus
from leave_approval.schemas.events import SignalAppliedEvent, StartedEvent, TimedOutEvent
from leave_approval.schemas.workflow import CancelSignal, WorkflowConfig
from leave_approval.services.event_log import InMemoryEventLog
from leave_approval.services.query import QueryService
from leave_approval.services.state_machine import WorkflowState, apply
from tests.factories import DAY, START, make_request

if TYPE_CHECKING:
    from leave_approval.services.engine import WorkflowEngine
    from tests.factories import ManualClock

CONFIG = WorkflowConfig(reminder_interval_seconds=DAY, approval_timeout_seconds=3 * DAY, task_queue="test-queue")


async def _start(log: InMemoryEventLog, request_id: str, hours: int = 0) -> None:
    submitted_at = START + timedelta(hours=hours)
    event = StartedEvent(request=make_request(request_id), submitted_at=submitted_at, config=CONFIG)
    await log.append(request_id, 0, event, submitted_at)


async def test_unknown_instance_not_found() -> None:
    queries = QueryService(InMemoryEventLog(), lambda _: None)
    with pytest.raises(NotFoundError) as exc_info:
        await queries.get_state("leave-missing")
    assert exc_info.value.status_code == 404


async def test_stored_instance_answered_by_replay() -> None:
    log = InMemoryEventLog()
    await _start(log, "leave-a")
    cancelled = SignalAppliedEvent(
        signal=CancelSignal(reason="Plans changed"),
        resulting_status=WorkflowStatus.CANCELLED,
        applied_at=START + timedelta(hours=2),
    )
    await log.append("leave-a", 1, cancelled, START)

    state = await QueryService(log, lambda _: None).get_state("leave-a")
    assert state.workflow_id == "leave-a"
    assert state.status == WorkflowStatus.CANCELLED
    assert state.cancel_reason == "Plans changed"
    assert state.completed is False


async def test_live_state_preferred_over_log() -> None:
    log = InMemoryEventLog()
    await _start(log, "leave-a")
    live: dict[str, WorkflowState] = {}
    started = (await log.read("leave-a"))[0].event
    live["leave-a"] = apply(apply(None, started).state, TimedOutEvent(timed_out_at=START)).state

    state = await QueryService(log, live.get).get_state("leave-a")
    assert state.status == WorkflowStatus.TIMEOUT


async def test_list_newest_first_with_status_filter() -> None:
    log = InMemoryEventLog()
    await _start(log, "leave-old", hours=0)
    await _start(log, "leave-new", hours=5)
    await log.append("leave-old", 1, TimedOutEvent(timed_out_at=START + timedelta(days=3)), START)
    queries = QueryService(log, lambda _: None)

    assert [s.workflow_id for s in await queries.list_states()] == ["leave-new", "leave-old"]
    assert [s.workflow_id for s in await queries.list_states(WorkflowStatus.PENDING)] == ["leave-new"]
    assert [s.workflow_id for s in await queries.list_states(WorkflowStatus.TIMEOUT)] == ["leave-old"]
    assert await queries.list_states(WorkflowStatus.APPROVED) == []


async def test_queries_do_not_append(engine: WorkflowEngine, event_log: InMemoryEventLog, clock: ManualClock) -> None:
    workflow_id = await engine.submit(make_request())
    await clock.advance(timedelta(hours=1))
    before = len(await event_log.read(workflow_id))

    for _ in range(3):
        await engine.get_state(workflow_id)
        await engine.list_states()

    assert len(await event_log.read(workflow_id)) == before
