"""Time sources for the scheduler.

Deadlines are absolute datetimes derived from an instance's ``submitted_at``;
clocks only answer "what time is it" and "wake me at this instant".
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Interface for a scheduler time source."""

    def now(self) -> datetime:
        """Return the current time (timezone-aware)."""
        ...

    async def sleep(self, seconds: float) -> None:
        """Suspend for a relative duration."""
        ...

    async def sleep_until(self, deadline: datetime) -> None:
        """Suspend until ``deadline`` has been reached."""
        ...


class SystemClock:
    """Wall-clock time backed by the event loop."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(seconds, 0.0))

    async def sleep_until(self, deadline: datetime) -> None:
        # Re-check after waking: the loop's monotonic clock and UTC can drift.
        remaining = (deadline - self.now()).total_seconds()
        while remaining > 0:
            await asyncio.sleep(remaining)
            remaining = (deadline - self.now()).total_seconds()

