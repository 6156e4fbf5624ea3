"""
Status Polling Helpers

Client-side helpers for callers that issued a request and want to wait for
it. A poll that runs out of attempts reports timed_out: the outcome is
unknown, which is not the same as failed. Check status before re-requesting.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterable, Optional, TypeVar, Union

from .config import settings
from .models import IN_FLIGHT_STATUSES, STATUS_PRIORITY

logger = logging.getLogger(__name__)

T = TypeVar("T")

SETTLED_STATUSES = frozenset({"ready", "failed"})


def best_status(statuses: Iterable[Optional[str]]) -> str:
    """
    Most advanced status among several records for the same artifact.

    ready > summarizing > transcribing > queued > failed > not_started
    """
    best = "not_started"
    for status in statuses:
        status = status or "not_started"
        if STATUS_PRIORITY.get(status, 0) > STATUS_PRIORITY[best]:
            best = status
    return best


def is_in_flight(status: Optional[str]) -> bool:
    return status in IN_FLIGHT_STATUSES


def _status_of(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return value.get("status")
    return getattr(value, "status", None)


def default_is_settled(value: Any) -> bool:
    return _status_of(value) in SETTLED_STATUSES


@dataclass
class PollResult(Generic[T]):
    value: Optional[T]
    attempts: int
    timed_out: bool

    @property
    def status(self) -> Optional[str]:
        return _status_of(self.value)


async def poll_until_settled(
    fetch: Callable[[], Union[T, Awaitable[T]]],
    is_settled: Callable[[T], bool] = default_is_settled,
    max_attempts: Optional[int] = None,
    initial_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
) -> PollResult[T]:
    """
    Call `fetch` until `is_settled` accepts its value, backing off exponentially.

    Args:
        fetch: Sync or async callable returning the current state
        is_settled: Predicate on fetched values (default: status ready/failed)
        max_attempts: Upper bound on fetch calls
        initial_delay: Seconds before the second attempt; doubles each time
        max_delay: Ceiling on a single wait

    Returns:
        PollResult with the last observed value and timed_out flag
    """
    max_attempts = max_attempts or settings.poll_max_attempts
    delay = settings.poll_initial_delay if initial_delay is None else initial_delay
    max_delay = settings.poll_max_delay if max_delay is None else max_delay

    value: Optional[T] = None
    for attempt in range(1, max_attempts + 1):
        value = fetch()
        if inspect.isawaitable(value):
            value = await value
        if is_settled(value):
            return PollResult(value=value, attempts=attempt, timed_out=False)
        if attempt < max_attempts:
            logger.debug(f"Poll attempt {attempt}: {_status_of(value)}; waiting {delay:.1f}s")
            await asyncio.sleep(delay)
            delay = min(delay * 2, max_delay)

    logger.warning(f"Polling gave up after {max_attempts} attempts; outcome unknown")
    return PollResult(value=value, attempts=max_attempts, timed_out=True)
