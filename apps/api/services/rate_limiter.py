"""Sliding-window limiter for outbound social-graph API calls."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Deque

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0
SAFETY_MARGIN_SECONDS = 0.1


class RateLimiter:
    """Allow at most ``requests_per_minute`` calls in any trailing 60s window.

    ``wait()`` suspends only the calling coroutine. Waiters are served in
    arrival order; under sustained overload later callers keep waiting.
    """

    def __init__(
        self,
        requests_per_minute: int,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if requests_per_minute < 1:
            raise ValueError("requests_per_minute must be >= 1")
        self.requests_per_minute = requests_per_minute
        self._clock = clock
        self._sleep = sleep
        self._calls: Deque[float] = deque()
        self._lock = asyncio.Lock()

    def _evict(self, now: float) -> None:
        window_start = now - WINDOW_SECONDS
        while self._calls and self._calls[0] <= window_start:
            self._calls.popleft()

    async def wait(self) -> None:
        async with self._lock:
            now = self._clock()
            self._evict(now)
            if len(self._calls) >= self.requests_per_minute:
                delay = WINDOW_SECONDS - (now - self._calls[0]) + SAFETY_MARGIN_SECONDS
                logger.debug("Rate limit reached (%s/min); sleeping %.2fs", self.requests_per_minute, delay)
                await self._sleep(delay)
                self._evict(self._clock())
            self._calls.append(self._clock())

    def current_load(self) -> int:
        self._evict(self._clock())
        return len(self._calls)

    def reset(self) -> None:
        self._calls.clear()
