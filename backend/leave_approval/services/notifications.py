# ruff: noqa: TC001
from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from leave_approval.models.enums import WorkflowStatus
from leave_approval.schemas.workflow import LeaveRequest, WorkflowResult

logger = logging.getLogger(__name__)

_STATUS_TEXT = {
    WorkflowStatus.APPROVED: "has been approved",
    WorkflowStatus.REJECTED: "has been rejected",
    WorkflowStatus.TIMEOUT: "was automatically rejected because no decision was made in time",
    WorkflowStatus.CANCELLED: "was withdrawn by the employee",
    WorkflowStatus.PENDING: "is still being processed",
}


@runtime_checkable
class NotificationService(Protocol):
    """The three notification operations invoked by the workflow.

    Implementations may raise ``TransientActivityFailure`` to request a retry;
    any other exception fails the occurrence without retrying.
    """

    async def notify_approver(self, request: LeaveRequest) -> None:
        """Ask the approver to decide on a new request."""
        ...

    async def send_reminder(self, request: LeaveRequest) -> None:
        """Remind the approver that a request is still pending."""
        ...

    async def notify_employee(self, request: LeaveRequest, result: WorkflowResult) -> None:
        """Tell the employee how their request ended."""
        ...


class LoggingNotificationService:
    """Development implementation that writes notifications to the log."""

    async def notify_approver(self, request: LeaveRequest) -> None:
        logger.info(
            "To %s: %s requests leave %s to %s (%s). Request ID %s",
            request.approver_email,
            request.employee_name,
            request.start_date.isoformat(),
            request.end_date.isoformat(),
            request.reason,
            request.request_id,
        )

    async def send_reminder(self, request: LeaveRequest) -> None:
        logger.info(
            "Reminder to %s: leave request %s from %s is awaiting approval",
            request.approver_email,
            request.request_id,
            request.employee_name,
        )

    async def notify_employee(self, request: LeaveRequest, result: WorkflowResult) -> None:
        comment = result.decision.comment if result.decision is not None else None
        logger.info(
            "To %s: your leave request %s to %s %s.%s",
            request.employee_email,
            request.start_date.isoformat(),
            request.end_date.isoformat(),
            _STATUS_TEXT[result.status],
            f" Comment: {comment}" if comment else "",
        )
