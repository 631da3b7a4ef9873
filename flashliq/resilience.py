"""Request throttling and retry helpers for collaborator boundaries."""
from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RateLimiter:
    """Sliding one-second window limiter.

    At most ``max_per_second`` acquisitions are admitted inside any window of
    ``window`` seconds; further callers sleep until the oldest entry expires.
    """

    def __init__(
        self,
        max_per_second: int = 8,
        window: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_per_second < 1:
            raise ValueError("max_per_second must be positive")
        self.max_per_second = max_per_second
        self.window = window
        self._clock = clock
        self._stamps: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        while self._stamps and now - self._stamps[0] >= self.window:
            self._stamps.popleft()

    async def wait(self) -> None:
        async with self._lock:
            while True:
                now = self._clock()
                self._prune(now)
                if len(self._stamps) < self.max_per_second:
                    self._stamps.append(now)
                    return
                delay = self.window - (now - self._stamps[0])
                logger.debug("Rate limit reached, sleeping %.3fs", delay)
                await asyncio.sleep(max(delay, 0.0))

    @property
    def in_window(self) -> int:
        self._prune(self._clock())
        return len(self._stamps)

    async def __aenter__(self) -> RateLimiter:
        await self.wait()
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    initial_delay: float = 0.5,
    backoff: float = 2.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
) -> T:
    """Await ``operation()`` up to ``max_attempts`` times.

    Sleeps ``initial_delay`` after the first failure, multiplied by
    ``backoff`` after each subsequent one. The last error is re-raised.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    delay = initial_delay
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except retry_on as e:
            if attempt == max_attempts:
                raise
            logger.warning(
                "Attempt %d/%d failed: %s; retrying in %.2fs",
                attempt,
                max_attempts,
                e,
                delay,
            )
            await asyncio.sleep(delay)
            delay *= backoff

    raise AssertionError("unreachable")
