from __future__ import annotations

from typing import TYPE_CHECKING

from leave_approval.exceptions import NotFoundError
from leave_approval.services.state_machine import replay

if TYPE_CHECKING:
    from collections.abc import Callable

    from leave_approval.models.enums import WorkflowStatus
    from leave_approval.schemas.workflow import InstanceState
    from leave_approval.services.event_log import EventLog
    from leave_approval.services.state_machine import WorkflowState


class QueryService:
    """Read-only snapshots of workflow instances.

    Running instances are answered from their scheduler's current state,
    which only ever advances after the corresponding event is durable. Other
    instances are answered by replaying their log. Neither path appends
    events or wakes a scheduler.
    """

    def __init__(self, event_log: EventLog, live_state: Callable[[str], WorkflowState | None]) -> None:
        self._event_log = event_log
        self._live_state = live_state

    async def _load(self, instance_id: str) -> WorkflowState | None:
        state = self._live_state(instance_id)
        if state is not None:
            return state
        return replay(await self._event_log.read(instance_id))

    async def get_state(self, instance_id: str) -> InstanceState:
        """Return the instance's snapshot. Raises NotFoundError if unknown or archived."""
        state = await self._load(instance_id)
        if state is None:
            raise NotFoundError(instance_id)
        return state.to_instance_state()

    async def list_states(self, status: WorkflowStatus | None = None) -> list[InstanceState]:
        """Snapshots of every retained instance, newest submission first."""
        snapshots: list[InstanceState] = []
        for instance_id in await self._event_log.list_instance_ids():
            state = await self._load(instance_id)
            if state is None:
                continue
            if status is not None and state.status != status:
                continue
            snapshots.append(state.to_instance_state())
        snapshots.sort(key=lambda s: s.submitted_at, reverse=True)
        return snapshots
