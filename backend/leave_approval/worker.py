"""Worker process for archiving completed workflows.

Runs an asyncio loop that prunes the logs of instances which completed more
than ``retention_seconds`` ago, once per ``retention_sweep_interval_seconds``.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta

from leave_approval.config import get_settings
from leave_approval.db import Database
from leave_approval.services.event_log import SqlEventLog
from leave_approval.services.retention import archive_expired

logger = logging.getLogger(__name__)


async def run_retention_loop() -> None:
    """Main worker loop that archives expired completed instances."""
    settings = get_settings()
    retention = timedelta(seconds=settings.retention_seconds)
    database = Database(settings.database_url, echo=settings.debug)
    event_log = SqlEventLog(database.session_factory)

    logger.info("Retention worker started (retention=%s)", retention)
    try:
        while True:
            now = datetime.now(UTC)
            try:
                result = await archive_expired(event_log, now, retention)
                logger.info(
                    "Retention run complete (cutoff %s): processed=%d archived=%d skipped=%d errors=%d",
                    result.cutoff.isoformat(),
                    result.processed,
                    result.archived,
                    result.skipped,
                    result.errors,
                )
            except Exception:
                logger.exception("Retention run failed at %s", now.isoformat())

            await asyncio.sleep(settings.retention_sweep_interval_seconds)
    finally:
        await database.dispose()


def main() -> None:
    """Entry point for the worker process."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    asyncio.run(run_retention_loop())


if __name__ == "__main__":
    main()
