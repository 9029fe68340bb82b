"""Sliding window rate limiting for outbound image API calls."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Optional

from pydantic import BaseModel

from ..config import RateLimitConfig

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


class RateLimiterStats(BaseModel):
    active_requests: int
    max_requests: int
    available_slots: int
    utilization_percent: int


class SlidingWindowRateLimiter:
    """Admit at most ``max_requests`` calls in any ``window_seconds`` span.

    Waiters are served in arrival order.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float = 60.0,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleeper] = None,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._timestamps: Deque[float] = deque()
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= self.window_seconds:
            self._timestamps.popleft()

    def try_acquire(self) -> bool:
        now = self._clock()
        self._prune(now)
        if len(self._timestamps) < self.max_requests:
            self._timestamps.append(now)
            return True
        return False

    async def acquire(self) -> None:
        async with self._lock:
            while not self.try_acquire():
                wait = self.window_seconds - (self._clock() - self._timestamps[0])
                logger.debug(
                    "Rate limiter full (%d/%d), waiting %.2fs",
                    len(self._timestamps),
                    self.max_requests,
                    wait,
                )
                await self._sleep(max(wait, 0.0))

    def available(self) -> int:
        self._prune(self._clock())
        return self.max_requests - len(self._timestamps)

    def stats(self) -> RateLimiterStats:
        active = self.max_requests - self.available()
        return RateLimiterStats(
            active_requests=active,
            max_requests=self.max_requests,
            available_slots=self.max_requests - active,
            utilization_percent=round(active / self.max_requests * 100),
        )

    def reset(self) -> None:
        self._timestamps.clear()


class ModelRateLimiters:
    """One limiter per model tier, shared by every job in the worker."""

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleeper] = None,
    ) -> None:
        config = config or RateLimitConfig()
        self.flash = SlidingWindowRateLimiter(
            config.flash_rpm, config.window_seconds, clock=clock, sleep=sleep
        )
        self.pro = SlidingWindowRateLimiter(
            config.pro_rpm, config.window_seconds, clock=clock, sleep=sleep
        )

    def for_model(self, model: Optional[str]) -> SlidingWindowRateLimiter:
        if model and "pro" in model:
            return self.pro
        return self.flash
