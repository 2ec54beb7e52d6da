"""Append-only per-instance event logs.

Each instance owns a linear log addressed by ``(instance_id, sequence)``.
Writers pass the sequence they expect to occupy; an occupied slot at
sequence 0 means the instance already exists, anywhere else it means a
second writer and the append is refused.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from sqlalchemy import delete, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import col

from leave_approval.exceptions import DuplicateInstanceError, DurabilityError
from leave_approval.models.event import WorkflowEventRecord
from leave_approval.schemas.events import RecordedEvent, event_from_payload, event_to_payload

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from leave_approval.schemas.events import WorkflowEvent

logger = logging.getLogger(__name__)


@runtime_checkable
class EventLog(Protocol):
    """Interface for durable workflow event storage."""

    async def append(
        self,
        instance_id: str,
        sequence: int,
        event: WorkflowEvent,
        recorded_at: datetime,
    ) -> RecordedEvent:
        """Durably append ``event`` at ``sequence``. Returns once committed."""
        ...

    async def read(self, instance_id: str) -> list[RecordedEvent]:
        """Return the instance's events in append order (empty if unknown)."""
        ...

    async def list_instance_ids(self) -> list[str]:
        """List every instance with at least one stored event."""
        ...

    async def prune(self, instance_id: str) -> int:
        """Delete an instance's log. Returns the number of events removed."""
        ...

    async def ping(self) -> None:
        """Raise if the store is unreachable."""
        ...


def _conflict(instance_id: str, sequence: int) -> Exception:
    if sequence == 0:
        return DuplicateInstanceError(instance_id)
    return DurabilityError(f"Sequence {sequence} of {instance_id} is already taken by another writer")


class InMemoryEventLog:
    """In-memory implementation for development and tests."""

    def __init__(self) -> None:
        self._logs: dict[str, list[RecordedEvent]] = {}

    async def append(
        self,
        instance_id: str,
        sequence: int,
        event: WorkflowEvent,
        recorded_at: datetime,
    ) -> RecordedEvent:
        log = self._logs.setdefault(instance_id, [])
        if sequence != len(log):
            if not log:
                del self._logs[instance_id]
            raise _conflict(instance_id, sequence)
        recorded = RecordedEvent(instance_id=instance_id, sequence=sequence, event=event, recorded_at=recorded_at)
        log.append(recorded)
        return recorded

    async def read(self, instance_id: str) -> list[RecordedEvent]:
        return list(self._logs.get(instance_id, []))

    async def list_instance_ids(self) -> list[str]:
        return sorted(self._logs)

    async def prune(self, instance_id: str) -> int:
        return len(self._logs.pop(instance_id, []))

    async def ping(self) -> None:
        return None


class SqlEventLog:
    """Event log stored in the ``workflow_event`` table.

    Every append runs in its own transaction and is committed before
    ``append`` returns.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append(
        self,
        instance_id: str,
        sequence: int,
        event: WorkflowEvent,
        recorded_at: datetime,
    ) -> RecordedEvent:
        record = WorkflowEventRecord(
            instance_id=instance_id,
            sequence=sequence,
            event_type=event.type,
            payload_json=event_to_payload(event),
            recorded_at=recorded_at,
        )
        try:
            async with self._session_factory() as session:
                session.add(record)
                await session.commit()
        except IntegrityError:
            raise _conflict(instance_id, sequence) from None
        except SQLAlchemyError as exc:
            logger.exception("Append failed for %s at sequence %d", instance_id, sequence)
            msg = f"Could not persist event {sequence} of {instance_id}"
            raise DurabilityError(msg) from exc
        return RecordedEvent(instance_id=instance_id, sequence=sequence, event=event, recorded_at=recorded_at)

    async def read(self, instance_id: str) -> list[RecordedEvent]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(WorkflowEventRecord)
                .where(col(WorkflowEventRecord.instance_id) == instance_id)
                .order_by(col(WorkflowEventRecord.sequence))
            )
            records = list(result.scalars().all())
        return [
            RecordedEvent(
                instance_id=r.instance_id,
                sequence=r.sequence,
                event=event_from_payload(r.payload_json),
                recorded_at=r.recorded_at,
            )
            for r in records
        ]

    async def list_instance_ids(self) -> list[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(WorkflowEventRecord.instance_id)  # ty: ignore[no-matching-overload]
                .distinct()
                .order_by(col(WorkflowEventRecord.instance_id))
            )
            return list(result.scalars().all())

    async def prune(self, instance_id: str) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(WorkflowEventRecord).where(col(WorkflowEventRecord.instance_id) == instance_id)
            )
            await session.commit()
        return result.rowcount or 0  # ty: ignore[unresolved-attribute]

    async def ping(self) -> None:
        async with self._session_factory() as session:
            await session.execute(text("SELECT 1"))
