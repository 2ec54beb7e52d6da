from __future__ import annotations

import enum


class WorkflowStatus(enum.StrEnum):
    """State machine for a leave-approval instance.

    PENDING is the only non-terminal status.
    """

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not WorkflowStatus.PENDING


class ActivityName(enum.StrEnum):
    """Side-effecting notification operations invoked by the scheduler."""

    NOTIFY_APPROVER = "notify_approver"
    SEND_REMINDER = "send_reminder"
    NOTIFY_EMPLOYEE = "notify_employee"


class WakeReason(enum.StrEnum):
    """Which source ended a compound wait."""

    SIGNAL = "signal"
    REMINDER = "reminder"
    TIMEOUT = "timeout"
