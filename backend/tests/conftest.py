from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient

from leave_approval.db import Database
from leave_approval.main import create_app
from leave_approval.schemas.workflow import WorkflowConfig
from leave_approval.services.event_log import InMemoryEventLog, SqlEventLog
from tests.factories import DAY, START, ManualClock, RecordingNotificationService, make_engine

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from leave_approval.services.engine import WorkflowEngine


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture
def workflow_config() -> WorkflowConfig:
    return WorkflowConfig(reminder_interval_seconds=DAY, approval_timeout_seconds=3 * DAY, task_queue="test-queue")


@pytest.fixture
def event_log() -> InMemoryEventLog:
    return InMemoryEventLog()


@pytest.fixture
def notifications() -> RecordingNotificationService:
    return RecordingNotificationService()


@pytest.fixture
async def engine(
    event_log: InMemoryEventLog,
    notifications: RecordingNotificationService,
    clock: ManualClock,
    workflow_config: WorkflowConfig,
) -> AsyncIterator[WorkflowEngine]:
    """Engine on virtual time; shut down (not completed) at teardown."""
    _engine = make_engine(event_log, notifications, clock, workflow_config)
    await _engine.start()
    yield _engine
    await _engine.shutdown()


@pytest.fixture
async def database(tmp_path: Path) -> AsyncIterator[Database]:
    """File-backed SQLite database with the schema created."""
    _database = Database(f"sqlite+aiosqlite:///{tmp_path / 'events.db'}")
    await _database.create_all()
    yield _database
    await _database.dispose()


@pytest.fixture
def sql_event_log(database: Database) -> SqlEventLog:
    return SqlEventLog(database.session_factory)


@pytest.fixture
async def async_client(engine: WorkflowEngine) -> AsyncIterator[AsyncClient]:
    """Async HTTP client bound to an app whose engine runs on virtual time."""
    app = create_app()
    app.state.workflow_engine = engine
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
