from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from leave_approval.seed import SEED_REQUESTS, seed_requests

if TYPE_CHECKING:
    from httpx import AsyncClient

    from leave_approval.services.engine import WorkflowEngine


async def test_seed_requests_reach_every_status(async_client: AsyncClient, engine: WorkflowEngine) -> None:
    await seed_requests(async_client)

    states = {s.workflow_id: s.status for s in await engine.list_states()}
    assert len(states) == len(SEED_REQUESTS)
    assert states["seed-alice-holiday"] == "approved"
    assert states["seed-bob-conference"] == "rejected"
    assert states["seed-carol-move"] == "cancelled"
    assert states["seed-dave-trip"] == "pending"


async def test_seed_is_rerunnable(
    async_client: AsyncClient,
    engine: WorkflowEngine,
    capsys: pytest.CaptureFixture[str],
) -> None:
    await seed_requests(async_client)
    await seed_requests(async_client)

    assert "[SKIP] seed-alice-holiday already exists" in capsys.readouterr().out
    assert len(await engine.list_states()) == len(SEED_REQUESTS)
