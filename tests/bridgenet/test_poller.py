"""Tests for bounded-retry condition polling."""

from __future__ import annotations

import asyncio

import pytest

from bridgenet.errors import PollCancelledError, TransientError
from bridgenet.poller import poll, wait_for


class Counter:
    """Predicate that holds from a given attempt on."""

    def __init__(self, succeed_on: int | None = None, fail_with: Exception | None = None) -> None:
        self.calls = 0
        self.succeed_on = succeed_on
        self.fail_with = fail_with

    def __call__(self) -> bool:
        self.calls += 1
        if self.succeed_on is not None and self.calls >= self.succeed_on:
            return True
        if self.fail_with is not None:
            raise self.fail_with
        return False


class TestPollTiming:
    """Tests for the sleep-before-check contract."""

    @pytest.mark.asyncio
    async def test_failing_poll_takes_at_least_attempts_times_interval(self) -> None:
        """A predicate that never holds costs at least n * d seconds and n attempts."""
        loop = asyncio.get_running_loop()
        predicate = Counter()

        start = loop.time()
        result = await poll(predicate, max_attempts=4, interval=0.05)
        elapsed = loop.time() - start

        assert not result.succeeded
        assert result.attempts == 4
        assert predicate.calls == 4
        assert elapsed >= 4 * 0.05 - 0.001

    @pytest.mark.asyncio
    async def test_sleeps_before_first_evaluation(self) -> None:
        """Even a predicate that holds immediately waits one interval."""
        loop = asyncio.get_running_loop()

        start = loop.time()
        result = await poll(lambda: True, max_attempts=3, interval=0.05)

        assert result.succeeded
        assert result.attempts == 1
        assert loop.time() - start >= 0.05 - 0.001

    @pytest.mark.asyncio
    async def test_success_on_attempt_k_stops_early(self) -> None:
        """A predicate that holds on attempt k performs exactly k cycles."""
        predicate = Counter(succeed_on=3)

        result = await poll(predicate, max_attempts=10, interval=0.001)

        assert result.succeeded
        assert result.attempts == 3
        assert predicate.calls == 3

    @pytest.mark.asyncio
    async def test_async_predicates_are_awaited(self) -> None:
        """Coroutine predicates are awaited before their result is checked."""
        calls = 0

        async def ready() -> bool:
            nonlocal calls
            calls += 1
            return calls == 2

        result = await poll(ready, max_attempts=5, interval=0.001)

        assert result.succeeded
        assert result.attempts == 2


class TestPollErrors:
    """Tests for predicate errors."""

    @pytest.mark.asyncio
    async def test_errors_count_as_failed_attempts(self) -> None:
        """A raising predicate does not abort the poll."""
        calls = 0

        def flaky() -> bool:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise ConnectionRefusedError("not yet")
            return True

        result = await poll(flaky, max_attempts=5, interval=0.001)

        assert result.succeeded
        assert result.attempts == 3
        assert result.last_error is None

    @pytest.mark.asyncio
    async def test_final_attempt_error_is_surfaced(self) -> None:
        """The error of the last attempt is kept on exhaustion."""
        error = ConnectionRefusedError("refused")

        result = await poll(Counter(fail_with=error), max_attempts=3, interval=0.001)

        assert not result.succeeded
        assert result.exhausted_on_error
        assert result.last_error is error

    @pytest.mark.asyncio
    async def test_false_on_final_attempt_has_no_error(self) -> None:
        """Errors on earlier attempts are not reported when the last one returned False."""
        calls = 0

        def early_error() -> bool:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("boom")
            return False

        result = await poll(early_error, max_attempts=3, interval=0.001)

        assert not result.succeeded
        assert result.last_error is None
        assert not result.exhausted_on_error

    @pytest.mark.parametrize(("attempts", "interval"), [(0, 0.1), (-1, 0.1), (1, -0.5)])
    @pytest.mark.asyncio
    async def test_invalid_budget_is_rejected(self, attempts: int, interval: float) -> None:
        """Non-positive attempts and negative intervals are programmer errors."""
        with pytest.raises(ValueError):
            await poll(lambda: True, max_attempts=attempts, interval=interval)


class TestPollCancellation:
    """Tests for the cancellation event."""

    @pytest.mark.asyncio
    async def test_cancel_during_sleep_aborts(self) -> None:
        """Setting the cancel event interrupts a long sleep."""
        cancel = asyncio.Event()
        loop = asyncio.get_running_loop()
        loop.call_later(0.02, cancel.set)

        start = loop.time()
        with pytest.raises(PollCancelledError) as exc_info:
            await poll(lambda: False, max_attempts=100, interval=10.0, cancel=cancel)

        assert loop.time() - start < 1.0
        assert exc_info.value.attempts == 0

    @pytest.mark.asyncio
    async def test_already_cancelled_poll_never_evaluates(self) -> None:
        """A poll whose cancel event is already set does not call the predicate."""
        cancel = asyncio.Event()
        cancel.set()
        predicate = Counter(succeed_on=1)

        with pytest.raises(PollCancelledError):
            await poll(predicate, max_attempts=3, interval=0.001, cancel=cancel)

        assert predicate.calls == 0


class TestWaitFor:
    """Tests for the raising variant."""

    @pytest.mark.asyncio
    async def test_returns_attempts_on_success(self) -> None:
        """The attempt count is returned when the predicate holds."""
        assert await wait_for(Counter(succeed_on=2), max_attempts=5, interval=0.001) == 2

    @pytest.mark.asyncio
    async def test_raises_transient_error_with_last_error(self) -> None:
        """Exhaustion raises a TransientError carrying the final error."""
        error = TimeoutError("still syncing")

        with pytest.raises(TransientError) as exc_info:
            await wait_for(
                Counter(fail_with=error), max_attempts=2, interval=0.001, description="node"
            )

        assert exc_info.value.attempts == 2
        assert exc_info.value.last_error is error
        assert "node" in str(exc_info.value)
