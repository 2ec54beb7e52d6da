"""Archival of completed instances.

Completed instances stay queryable until they are older than the retention
window, then their logs are pruned. Archived ids answer NotFound.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from leave_approval.services.state_machine import replay

if TYPE_CHECKING:
    from datetime import datetime, timedelta

    from leave_approval.services.event_log import EventLog

logger = logging.getLogger(__name__)


@dataclass
class RetentionRunResult:
    """Result of an archival sweep."""

    cutoff: datetime
    processed: int = 0
    archived: int = 0
    skipped: int = 0
    errors: int = 0
    archived_ids: list[str] = field(default_factory=list)


async def archive_expired(event_log: EventLog, now: datetime, retention: timedelta) -> RetentionRunResult:
    """Prune every completed instance whose outcome is older than ``now - retention``.

    Running instances and recently completed ones are skipped. A failure on
    one instance is counted and logged without stopping the sweep.
    """
    result = RetentionRunResult(cutoff=now - retention)

    for instance_id in await event_log.list_instance_ids():
        result.processed += 1
        try:
            state = replay(await event_log.read(instance_id))
            if state is None or state.result is None or state.result.completed_at > result.cutoff:
                result.skipped += 1
                continue
            await event_log.prune(instance_id)
        except Exception:
            logger.exception("Archival failed for %s", instance_id)
            result.errors += 1
            continue
        result.archived += 1
        result.archived_ids.append(instance_id)

    return result
