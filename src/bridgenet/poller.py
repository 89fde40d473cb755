"""
Bounded-retry condition polling.

Readiness on a freshly launched network is eventually true but not immediately:
a beacon node needs several epochs to finalize, a container needs a moment to start.
The poller re-evaluates a predicate on a fixed cadence until it holds or a budget runs out.

Timing contract:

- The poller sleeps `interval` BEFORE every evaluation, including the first.
  The polled system always gets at least one interval to settle.
- A failing poll therefore takes at least `max_attempts * interval` seconds.
- A poll that succeeds on attempt k performs exactly k sleep+check cycles.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from .errors import PollCancelledError, TransientError

logger = logging.getLogger(__name__)

Predicate = Callable[[], bool | Awaitable[bool]]
"""A readiness check. May be sync or async, and may raise."""


@dataclass(frozen=True, slots=True)
class PollResult:
    """Outcome of a bounded poll."""

    succeeded: bool
    """True if the predicate returned True within the budget."""

    attempts: int
    """Number of predicate evaluations performed."""

    last_error: BaseException | None = None
    """Error raised by the final evaluation, when the poll failed on an exception."""

    def __bool__(self) -> bool:
        return self.succeeded

    @property
    def exhausted_on_error(self) -> bool:
        """True if the budget ran out and the final attempt raised."""
        return not self.succeeded and self.last_error is not None


async def _sleep(interval: float, cancel: asyncio.Event | None) -> bool:
    """Sleep for `interval`; return True if the cancel event fired first."""
    if cancel is None:
        await asyncio.sleep(interval)
        return False
    try:
        await asyncio.wait_for(cancel.wait(), timeout=interval)
    except TimeoutError:
        return False
    return True


async def poll(
    predicate: Predicate,
    max_attempts: int,
    interval: float,
    *,
    cancel: asyncio.Event | None = None,
    description: str = "condition",
) -> PollResult:
    """
    Evaluate `predicate` until it returns True or the attempt budget is spent.

    Errors raised by the predicate count as failed attempts.
    The error of the final attempt is kept in the result.

    Args:
        predicate: Readiness check, sync or async.
        max_attempts: Maximum number of evaluations (must be positive).
        interval: Seconds to sleep before each evaluation.
        cancel: Optional event; setting it aborts the poll at the next sleep.
        description: What is being waited for (used in log lines).

    Returns:
        The poll outcome.

    Raises:
        ValueError: If `max_attempts` is not positive or `interval` is negative.
        PollCancelledError: If `cancel` was set before the predicate held.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be positive, got {max_attempts}")
    if interval < 0:
        raise ValueError(f"interval must be non-negative, got {interval}")

    for attempt in range(1, max_attempts + 1):
        if cancel is not None and cancel.is_set():
            raise PollCancelledError(attempt - 1)
        if await _sleep(interval, cancel):
            raise PollCancelledError(attempt - 1)

        try:
            result = predicate()
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            logger.debug(
                "Waiting for %s: attempt %d/%d raised %r", description, attempt, max_attempts, exc
            )
            if attempt == max_attempts:
                return PollResult(succeeded=False, attempts=attempt, last_error=exc)
            continue

        if result:
            logger.debug("Waiting for %s: satisfied on attempt %d", description, attempt)
            return PollResult(succeeded=True, attempts=attempt)

        logger.debug("Waiting for %s: attempt %d/%d not yet", description, attempt, max_attempts)

    return PollResult(succeeded=False, attempts=max_attempts)


async def wait_for(
    predicate: Predicate,
    max_attempts: int = 100,
    interval: float = 0.1,
    *,
    cancel: asyncio.Event | None = None,
    description: str = "condition",
) -> int:
    """
    Like `poll`, but raise when the budget is exhausted.

    Returns:
        The number of attempts it took for the predicate to hold.

    Raises:
        TransientError: If the predicate never held. Carries the final attempt's error, if any.
        PollCancelledError: If `cancel` was set before the predicate held.
    """
    result = await poll(
        predicate, max_attempts, interval, cancel=cancel, description=description
    )
    if not result.succeeded:
        raise TransientError(
            f"Timed out waiting for {description}",
            attempts=result.attempts,
            last_error=result.last_error,
        )
    return result.attempts
