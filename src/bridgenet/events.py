"""
Event correlation over push-based chain subscriptions.

Tests observe cross-chain effects by waiting for events: a Gateway log on
Ethereum, a pallet event on the solochain. Both chains are reached through
the same `EventSource` shape, so one algorithm serves both.

Timeouts are not errors. "The event never happened" is a normal outcome that
callers check through `EventOutcome.matched`.

Every subscription opened here is closed exactly once, whatever the exit path.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from .errors import NotFoundError
from .types import ChainSource

logger = logging.getLogger(__name__)

EventFilter = Callable[[Any], bool]
"""Predicate applied to each delivered event."""

OnEvent = Callable[[Any], None]
OnError = Callable[[BaseException], None]
Unsubscribe = Callable[[], Awaitable[None]]


class EventSource(Protocol):
    """
    A chain client that pushes events for a named path.

    Paths are "<address>:<EventName>" on Ethereum and "<Pallet>.<Event>" on Substrate.
    """

    async def subscribe(self, path: str, on_event: OnEvent, on_error: OnError) -> Unsubscribe:
        """
        Start delivering events for `path` to `on_event`, in transport order.

        Transport failures after the subscription is open go to `on_error`.

        Returns:
            A coroutine function that closes the subscription.
        """
        ...


@dataclass(frozen=True, slots=True)
class ChainEvent:
    """An event decoded by one of the chain adapters."""

    source: ChainSource
    """Chain that emitted the event."""

    path: str
    """Subscription path the event was delivered for."""

    data: Mapping[str, Any]
    """Decoded event arguments (log args or pallet event attributes)."""

    block: str | int | None = None
    """Block hash or number the event was included in, when known."""

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    @property
    def pallet(self) -> str | None:
        """Pallet name for Substrate events."""
        if self.source is ChainSource.SUBSTRATE:
            return self.path.partition(".")[0]
        return None

    @property
    def name(self) -> str:
        """Event name without its pallet or contract address."""
        separator = "." if self.source is ChainSource.SUBSTRATE else ":"
        return self.path.rpartition(separator)[2]


@dataclass(frozen=True, slots=True)
class EventOutcome:
    """Result of waiting for a single event."""

    matched: bool
    """True if an event passing the filter arrived before the timeout."""

    data: Any = None
    """The matching event, or None."""

    error: BaseException | None = None
    """Subscription or transport failure that ended the wait, if any."""

    def __bool__(self) -> bool:
        return self.matched


@dataclass(frozen=True, slots=True)
class EventWatch:
    """One path watched by `wait_for_multiple_events`."""

    path: str
    """Event path to subscribe to."""

    filter: EventFilter | None = None
    """Predicate selecting the events to collect. Defaults to all events."""

    stop_on_match: bool = True
    """Stop collecting after the first match instead of collecting until the timeout."""


def _accept_all(_event: Any) -> bool:
    return True


async def _close(unsubscribe: Unsubscribe, path: str) -> None:
    """Close one subscription, logging (not raising) on failure."""
    try:
        await unsubscribe()
    except Exception as exc:
        logger.error("Error unsubscribing from %s: %s", path, exc)
    else:
        logger.debug("Unsubscribed from %s", path)


async def wait_for_event(
    source: EventSource,
    path: str,
    *,
    filter: EventFilter | None = None,
    timeout: float,
) -> EventOutcome:
    """
    Wait for the first event on `path` that passes `filter`.

    A subscription that cannot be opened, or that fails while open, yields
    `matched=False` with the failure attached to the outcome.

    Args:
        source: Chain client to subscribe through.
        path: Event path.
        filter: Predicate selecting the wanted event. Defaults to the first event.
        timeout: Seconds to wait before giving up.

    Returns:
        The outcome. Check `matched` before using `data`.

    Raises:
        Exception: Whatever `filter` raised. The subscription is still closed first.
    """
    accept = filter or _accept_all
    outcome: asyncio.Future[EventOutcome] = asyncio.get_running_loop().create_future()

    def on_event(event: Any) -> None:
        if outcome.done():
            return
        try:
            if accept(event):
                outcome.set_result(EventOutcome(matched=True, data=event))
        except Exception as exc:
            outcome.set_exception(exc)

    def on_error(exc: BaseException) -> None:
        logger.warning("Subscription to %s failed: %s", path, exc)
        if not outcome.done():
            outcome.set_result(EventOutcome(matched=False, error=exc))

    try:
        unsubscribe = await source.subscribe(path, on_event, on_error)
    except Exception as exc:
        logger.warning("Could not subscribe to %s: %s", path, exc)
        return EventOutcome(matched=False, error=exc)

    logger.debug("Waiting up to %.1fs for %s", timeout, path)
    try:
        result = await asyncio.wait_for(outcome, timeout=timeout)
    except TimeoutError:
        logger.debug("Timed out waiting for %s", path)
        return EventOutcome(matched=False)
    finally:
        await _close(unsubscribe, path)

    if result.matched:
        logger.debug("Matched event on %s", path)
    return result


@dataclass(slots=True)
class _Collector:
    """Per-path state of a multi-event wait."""

    watch: EventWatch
    events: list[Any] = field(default_factory=list)
    unsubscribe: Unsubscribe | None = None
    closed: bool = False
    error: BaseException | None = None

    @property
    def satisfied(self) -> bool:
        return self.watch.stop_on_match and bool(self.events)


async def wait_for_multiple_events(
    source: EventSource,
    watches: Sequence[EventWatch],
    *,
    timeout: float,
) -> dict[str, list[Any]]:
    """
    Watch several event paths at once under one shared timeout.

    A path with `stop_on_match` keeps only its first match and is closed as soon
    as it has one. Other paths collect every match until the timeout. The wait
    ends early once every watch has `stop_on_match` and has matched.

    Paths whose subscription cannot be opened, or that fail while open, simply
    collect nothing further.

    Returns:
        Matched events per path, in delivery order. Every watched path has an
        entry, possibly empty.

    Raises:
        ValueError: If the same path is watched twice.
        Exception: Whatever a filter raised. All subscriptions are still closed first.
    """
    paths = [watch.path for watch in watches]
    if len(set(paths)) != len(paths):
        raise ValueError("Each event path may be watched only once")

    collectors = {watch.path: _Collector(watch) for watch in watches}
    loop = asyncio.get_running_loop()
    finished: asyncio.Future[None] = loop.create_future()
    early_close: set[asyncio.Task[None]] = set()

    def check_finished() -> None:
        if not finished.done() and all(c.satisfied for c in collectors.values()):
            finished.set_result(None)

    def close_early(collector: _Collector) -> None:
        if collector.closed or collector.unsubscribe is None:
            return
        collector.closed = True
        task = loop.create_task(_close(collector.unsubscribe, collector.watch.path))
        early_close.add(task)
        task.add_done_callback(early_close.discard)

    def make_handlers(collector: _Collector) -> tuple[OnEvent, OnError]:
        accept = collector.watch.filter or _accept_all

        def on_event(event: Any) -> None:
            if finished.done() or collector.satisfied or collector.error is not None:
                return
            try:
                matched = accept(event)
            except Exception as exc:
                finished.set_exception(exc)
                return
            if not matched:
                return
            collector.events.append(event)
            if collector.satisfied:
                close_early(collector)
                check_finished()

        def on_error(exc: BaseException) -> None:
            logger.warning("Subscription to %s failed: %s", collector.watch.path, exc)
            collector.error = exc

        return on_event, on_error

    try:
        for collector in collectors.values():
            on_event, on_error = make_handlers(collector)
            try:
                collector.unsubscribe = await source.subscribe(
                    collector.watch.path, on_event, on_error
                )
            except Exception as exc:
                logger.warning("Could not subscribe to %s: %s", collector.watch.path, exc)
                collector.error = exc
                continue
            # Events may have been delivered while subscribe() was still running.
            if collector.satisfied:
                close_early(collector)

        if collectors:
            check_finished()
            try:
                await asyncio.wait_for(finished, timeout=timeout)
            except TimeoutError:
                logger.debug("Multi-event wait timed out after %.1fs", timeout)
    finally:
        for collector in collectors.values():
            if collector.unsubscribe is not None and not collector.closed:
                collector.closed = True
                await _close(collector.unsubscribe, collector.watch.path)
        if early_close:
            await asyncio.gather(*early_close)

    return {path: list(collector.events) for path, collector in collectors.items()}


def require_event(
    events: Iterable[ChainEvent],
    pallet: str,
    name: str,
    filter: EventFilter | None = None,
) -> ChainEvent:
    """
    Find a pallet event in the events triggered by an extrinsic.

    Raises:
        NotFoundError: If no event matches.
    """
    accept = filter or _accept_all
    path = f"{pallet}.{name}"
    for event in events:
        if event.path == path and accept(event):
            return event
    raise NotFoundError("event", path)
