"""Unit tests for the rate limiter and retry helper."""
from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from flashliq.resilience import RateLimiter, retry_with_backoff


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestRateLimiter:
    def test_rejects_zero_rate(self) -> None:
        with pytest.raises(ValueError):
            RateLimiter(max_per_second=0)

    @pytest.mark.asyncio
    async def test_admits_up_to_limit_without_sleeping(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(max_per_second=3, clock=clock)

        with patch("flashliq.resilience.asyncio.sleep", new_callable=AsyncMock) as sleep:
            for _ in range(3):
                await limiter.wait()

        sleep.assert_not_awaited()
        assert limiter.in_window == 3

    @pytest.mark.asyncio
    async def test_waits_for_oldest_entry_to_expire(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(max_per_second=2, clock=clock)

        async def advance(delay: float) -> None:
            clock.now += delay

        with patch("flashliq.resilience.asyncio.sleep", side_effect=advance) as sleep:
            await limiter.wait()
            clock.now = 0.25
            await limiter.wait()
            clock.now = 0.5
            await limiter.wait()

        sleep.assert_called_once()
        assert sleep.call_args.args[0] == pytest.approx(0.5)
        assert clock.now == pytest.approx(1.0)
        assert limiter.in_window == 2

    @pytest.mark.asyncio
    async def test_context_manager(self) -> None:
        limiter = RateLimiter(max_per_second=5, clock=FakeClock())
        async with limiter:
            pass
        assert limiter.in_window == 1


class TestRetryWithBackoff:
    @pytest.mark.asyncio
    async def test_returns_first_success(self) -> None:
        op = AsyncMock(return_value=7)
        assert await retry_with_backoff(op, max_attempts=3, initial_delay=0) == 7
        op.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self) -> None:
        op = AsyncMock(side_effect=[RuntimeError("a"), RuntimeError("b"), "ok"])
        with patch("flashliq.resilience.asyncio.sleep", new_callable=AsyncMock) as sleep:
            result = await retry_with_backoff(op, max_attempts=3, initial_delay=0.5)

        assert result == "ok"
        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_reraises_last_error(self) -> None:
        op = AsyncMock(side_effect=[RuntimeError("first"), RuntimeError("last")])
        with pytest.raises(RuntimeError, match="last"):
            await retry_with_backoff(op, max_attempts=2, initial_delay=0)

    @pytest.mark.asyncio
    async def test_non_retryable_propagates_immediately(self) -> None:
        op = AsyncMock(side_effect=KeyError("k"))
        with pytest.raises(KeyError):
            await retry_with_backoff(op, max_attempts=5, initial_delay=0, retry_on=(ValueError,))
        op.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rejects_zero_attempts(self) -> None:
        with pytest.raises(ValueError):
            await retry_with_backoff(AsyncMock(), max_attempts=0)
