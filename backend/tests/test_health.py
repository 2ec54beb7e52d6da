from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import patch

from httpx import ASGITransport, AsyncClient

from leave_approval.config import get_settings
from leave_approval.main import create_app, main

if TYPE_CHECKING:
    from leave_approval.services.engine import WorkflowEngine


async def test_health_returns_200(async_client: AsyncClient) -> None:
    response = await async_client.get("/health")
    assert response.status_code == 200


async def test_health_response_body(async_client: AsyncClient) -> None:
    response = await async_client.get("/health")
    data = response.json()
    assert data["status"] == "ok"
    assert data["version"] == "0.1.0"
    assert data["environment"] == "development"


async def test_health_response_schema(async_client: AsyncClient) -> None:
    response = await async_client.get("/health")
    data = response.json()
    assert set(data.keys()) == {"status", "version", "environment"}
    assert data["status"] in ("ok", "degraded", "error")


async def test_health_degraded_on_event_log_failure(engine: WorkflowEngine) -> None:
    """GET /health returns degraded status when the event log is unreachable."""
    app = create_app()
    app.state.workflow_engine = engine

    with patch.object(engine.event_log, "ping", side_effect=ConnectionError("DB unreachable")):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/health")

    data = response.json()
    assert response.status_code == 200
    assert data["status"] == "degraded"


def test_main_serves_app_with_configured_address() -> None:
    settings = get_settings()
    with patch("leave_approval.main.uvicorn.run") as run:
        main()

    run.assert_called_once_with("leave_approval.main:app", host=settings.host, port=settings.port, log_level="info")
