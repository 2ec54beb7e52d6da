"""At-least-once execution of notification activities.

An activity occurrence is identified by ``(activity_name, sequence_number)``.
Before running one, the invoker consults the replayed state: an occurrence
that already has an ``ACTIVITY_COMPLETED`` or ``ACTIVITY_FAILED`` record is
never run again, so recovery does not re-send notifications.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    stop_never,
    wait_exponential,
)
from tenacity.stop import stop_base

from leave_approval.exceptions import TransientActivityFailure
from leave_approval.schemas.events import ActivityCompletedEvent, ActivityFailedEvent

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from leave_approval.config import Settings
    from leave_approval.models.enums import ActivityName
    from leave_approval.schemas.events import WorkflowEvent
    from leave_approval.services.clock import Clock
    from leave_approval.services.state_machine import WorkflowState

    RecordFn = Callable[[WorkflowEvent], Awaitable[WorkflowState]]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff schedule for activity attempts."""

    start_to_close_timeout_seconds: float = 60.0
    initial_backoff_seconds: float = 1.0
    max_backoff_seconds: float = 300.0
    max_attempts: int = 0  # 0 = until the deadline

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        return cls(
            start_to_close_timeout_seconds=settings.activity_start_to_close_timeout_seconds,
            initial_backoff_seconds=settings.activity_initial_backoff_seconds,
            max_backoff_seconds=settings.activity_max_backoff_seconds,
            max_attempts=settings.activity_max_attempts,
        )


@dataclass(frozen=True)
class ActivityOutcome:
    """What happened to one activity occurrence."""

    activity: ActivityName
    sequence_number: int
    succeeded: bool
    attempts: int = 0
    skipped: bool = False
    error: str | None = None


class stop_at_deadline(stop_base):  # noqa: N801
    """Stop retrying when the next attempt could not start before ``deadline``.

    Relies on tenacity computing the upcoming sleep before consulting the
    stop condition, so a backoff never carries the invoker past the deadline.
    """

    def __init__(self, clock: Clock, deadline: datetime) -> None:
        self._clock = clock
        self._deadline = deadline

    def __call__(self, retry_state: RetryCallState) -> bool:
        next_attempt_at = self._clock.now() + timedelta(seconds=retry_state.upcoming_sleep)
        return next_attempt_at >= self._deadline


def _log_retry(activity: ActivityName, sequence_number: int, instance_id: str) -> Callable[[RetryCallState], None]:
    def log(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome is not None else None
        logger.warning(
            "Activity %s #%d for %s failed on attempt %d (%s: %s), retrying in %.1fs",
            activity,
            sequence_number,
            instance_id,
            retry_state.attempt_number,
            type(exc).__name__,
            exc,
            retry_state.upcoming_sleep,
        )

    return log


class ActivityInvoker:
    """Runs activities with bounded retry and records their outcome."""

    def __init__(self, clock: Clock, policy: RetryPolicy | None = None) -> None:
        self._clock = clock
        self._policy = policy or RetryPolicy()

    def _retrying(self, deadline: datetime, before_sleep: Callable[[RetryCallState], None]) -> AsyncRetrying:
        policy = self._policy
        attempts = stop_after_attempt(policy.max_attempts) if policy.max_attempts > 0 else stop_never
        return AsyncRetrying(
            sleep=self._clock.sleep,
            stop=attempts | stop_at_deadline(self._clock, deadline),
            wait=wait_exponential(multiplier=policy.initial_backoff_seconds, max=policy.max_backoff_seconds),
            retry=retry_if_exception_type((TransientActivityFailure, TimeoutError)),
            before_sleep=before_sleep,
            reraise=True,
        )

    def _attempt_timeout(self, deadline: datetime) -> float:
        # An attempt may not run past the deadline, except the first one of an
        # occurrence whose deadline has already passed (e.g. after recovery).
        remaining = (deadline - self._clock.now()).total_seconds()
        limit = self._policy.start_to_close_timeout_seconds
        return min(limit, remaining) if remaining > 0 else limit

    async def invoke(
        self,
        state: WorkflowState,
        record: RecordFn,
        activity: ActivityName,
        sequence_number: int,
        operation: Callable[..., Awaitable[Any]],
        *args: Any,
        deadline: datetime,
    ) -> ActivityOutcome:
        """Run ``operation(*args)`` unless this occurrence is already resolved.

        ``record`` appends an event durably and returns the new state; the
        outcome event is recorded before this method returns.
        """
        instance_id = state.request.request_id
        if state.is_resolved(activity, sequence_number):
            logger.info("Skipping %s #%d for %s: already recorded", activity, sequence_number, instance_id)
            return ActivityOutcome(activity, sequence_number, succeeded=True, skipped=True)

        attempts = 0
        try:
            async for attempt in self._retrying(deadline, _log_retry(activity, sequence_number, instance_id)):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    await asyncio.wait_for(operation(*args), timeout=self._attempt_timeout(deadline))
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
            logger.error(  # noqa: TRY400
                "Activity %s #%d for %s failed after %d attempt(s): %s",
                activity,
                sequence_number,
                instance_id,
                attempts,
                error,
            )
            await record(
                ActivityFailedEvent(
                    activity_name=activity,
                    sequence_number=sequence_number,
                    error=error[:1000],
                    attempts=max(attempts, 1),
                )
            )
            return ActivityOutcome(activity, sequence_number, succeeded=False, attempts=attempts, error=error)

        await record(ActivityCompletedEvent(activity_name=activity, sequence_number=sequence_number))
        logger.info("Activity %s #%d for %s completed", activity, sequence_number, instance_id)
        return ActivityOutcome(activity, sequence_number, succeeded=True, attempts=attempts)
