from __future__ import annotations

import logging

import pytest

from leave_approval.models.enums import WorkflowStatus
from leave_approval.schemas.workflow import Decision, WorkflowResult
from leave_approval.services.notifications import LoggingNotificationService, NotificationService
from tests.factories import START, RecordingNotificationService, make_request


def test_implementations_satisfy_protocol() -> None:
    assert isinstance(LoggingNotificationService(), NotificationService)
    assert isinstance(RecordingNotificationService(), NotificationService)


async def test_notify_approver_logs_request(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="leave_approval.services.notifications"):
        await LoggingNotificationService().notify_approver(make_request())
    assert "To manager@example.com" in caplog.text
    assert "Request ID leave-test-1" in caplog.text


async def test_send_reminder_logs(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="leave_approval.services.notifications"):
        await LoggingNotificationService().send_reminder(make_request())
    assert "awaiting approval" in caplog.text


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        (WorkflowStatus.APPROVED, "has been approved"),
        (WorkflowStatus.REJECTED, "has been rejected"),
        (WorkflowStatus.TIMEOUT, "automatically rejected"),
        (WorkflowStatus.CANCELLED, "withdrawn"),
    ],
)
async def test_notify_employee_describes_outcome(
    caplog: pytest.LogCaptureFixture,
    status: WorkflowStatus,
    expected: str,
) -> None:
    result = WorkflowResult(request_id="leave-test-1", status=status, completed_at=START)
    with caplog.at_level(logging.INFO, logger="leave_approval.services.notifications"):
        await LoggingNotificationService().notify_employee(make_request(), result)
    assert "To yamada@example.com" in caplog.text
    assert expected in caplog.text


async def test_notify_employee_includes_comment(caplog: pytest.LogCaptureFixture) -> None:
    result = WorkflowResult(
        request_id="leave-test-1",
        status=WorkflowStatus.APPROVED,
        decision=Decision(approved=True, comment="Enjoy", decided_by="manager@example.com"),
        completed_at=START,
    )
    with caplog.at_level(logging.INFO, logger="leave_approval.services.notifications"):
        await LoggingNotificationService().notify_employee(make_request(), result)
    assert "Comment: Enjoy" in caplog.text
