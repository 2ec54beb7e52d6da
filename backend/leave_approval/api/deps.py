from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from leave_approval.services.engine import WorkflowEngine


def get_workflow_engine(request: Request) -> WorkflowEngine:
    """FastAPI dependency for the engine opened in the application lifespan."""
    engine: WorkflowEngine = request.app.state.workflow_engine
    return engine


EngineDep = Annotated[WorkflowEngine, Depends(get_workflow_engine)]
