# ruff: noqa: TC001, TC003
from __future__ import annotations

from datetime import date
from typing import Self

from pydantic import BaseModel, Field, model_validator

from leave_approval.schemas.workflow import EMAIL_PATTERN, InstanceState, LeaveRequest

# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class SubmitRequestPayload(BaseModel):
    """Request body for submitting a new leave request."""

    request_id: str | None = Field(default=None, min_length=1, max_length=255)
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

    def to_leave_request(self, request_id: str) -> LeaveRequest:
        return LeaveRequest(request_id=request_id, **self.model_dump(exclude={"request_id"}))


class DecisionPayload(BaseModel):
    """Request body for approve/reject actions."""

    comment: str | None = Field(default=None, max_length=1000)
    decided_by: str | None = Field(default=None, min_length=1, max_length=255)


class CancelPayload(BaseModel):
    """Request body for cancelling a pending request."""

    reason: str | None = Field(default=None, min_length=1, max_length=1000)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class SubmitResponse(BaseModel):
    """Response for a newly started workflow."""

    workflow_id: str
    request: LeaveRequest


class InstanceListResponse(BaseModel):
    """List of workflow snapshots."""

    items: list[InstanceState]
    total: int
