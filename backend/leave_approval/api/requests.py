# ruff: noqa: B008
from __future__ import annotations

from fastapi import APIRouter, Query, status

from leave_approval.api.deps import EngineDep
from leave_approval.config import get_settings
from leave_approval.models.enums import WorkflowStatus
from leave_approval.schemas.request import (
    CancelPayload,
    DecisionPayload,
    InstanceListResponse,
    SubmitRequestPayload,
    SubmitResponse,
)
from leave_approval.schemas.workflow import CancelSignal, Decision, DecisionSignal, InstanceState, SignalAck
from leave_approval.services.engine import new_request_id

requests_router = APIRouter(prefix="/api/requests", tags=["requests"])

DEFAULT_APPROVE_COMMENT = "Approved"
DEFAULT_REJECT_COMMENT = "Rejected"
DEFAULT_CANCEL_REASON = "Cancelled by employee"


def _decision(approved: bool, payload: DecisionPayload | None, default_comment: str) -> DecisionSignal:
    settings = get_settings()
    return DecisionSignal(
        decision=Decision(
            approved=approved,
            comment=(payload.comment if payload else None) or default_comment,
            decided_by=(payload.decided_by if payload else None) or settings.default_decided_by,
        )
    )


@requests_router.post("", response_model=SubmitResponse, status_code=status.HTTP_201_CREATED)
async def submit_request(payload: SubmitRequestPayload, engine: EngineDep) -> SubmitResponse:
    """Submit a new leave request and start its approval workflow."""
    request = payload.to_leave_request(payload.request_id or new_request_id())
    workflow_id = await engine.submit(request)
    return SubmitResponse(workflow_id=workflow_id, request=request)


@requests_router.get("", response_model=InstanceListResponse)
async def list_requests(
    engine: EngineDep,
    status_filter: WorkflowStatus | None = Query(default=None, alias="status"),
) -> InstanceListResponse:
    """List retained leave requests, optionally filtered by status."""
    items = await engine.list_states(status_filter)
    return InstanceListResponse(items=items, total=len(items))


@requests_router.get("/{workflow_id}", response_model=InstanceState)
async def get_request(workflow_id: str, engine: EngineDep) -> InstanceState:
    """Get the current state of a leave request."""
    return await engine.get_state(workflow_id)


@requests_router.post("/{workflow_id}/approve", response_model=SignalAck)
async def approve_request(
    workflow_id: str,
    engine: EngineDep,
    payload: DecisionPayload | None = None,
) -> SignalAck:
    """Approve a pending leave request."""
    return await engine.signal(workflow_id, _decision(True, payload, DEFAULT_APPROVE_COMMENT))


@requests_router.post("/{workflow_id}/reject", response_model=SignalAck)
async def reject_request(
    workflow_id: str,
    engine: EngineDep,
    payload: DecisionPayload | None = None,
) -> SignalAck:
    """Reject a pending leave request."""
    return await engine.signal(workflow_id, _decision(False, payload, DEFAULT_REJECT_COMMENT))


@requests_router.post("/{workflow_id}/cancel", response_model=SignalAck)
async def cancel_request(
    workflow_id: str,
    engine: EngineDep,
    payload: CancelPayload | None = None,
) -> SignalAck:
    """Withdraw a pending leave request."""
    reason = (payload.reason if payload else None) or DEFAULT_CANCEL_REASON
    return await engine.signal(workflow_id, CancelSignal(reason=reason))


@requests_router.delete("/{workflow_id}", status_code=status.HTTP_204_NO_CONTENT)
async def archive_request(workflow_id: str, engine: EngineDep) -> None:
    """Archive a completed leave request. It is no longer queryable afterwards."""
    await engine.archive(workflow_id)
