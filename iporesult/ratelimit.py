from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    count: int
    retry_after: int


class FixedWindowRateLimiter:
    """Global request counter cleared by an external tick.

    Rejected requests still count against the window, and bursts across a
    window boundary are allowed through.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: int = 60,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self.count = 0
        self.window_started_at = clock()

    def hit(self) -> RateDecision:
        self.count += 1
        if self.count <= self.max_requests:
            return RateDecision(allowed=True, count=self.count, retry_after=0)
        elapsed = self._clock() - self.window_started_at
        retry_after = max(1, int(self.window_seconds - elapsed))
        return RateDecision(allowed=False, count=self.count, retry_after=retry_after)

    def reset(self) -> None:
        self.count = 0
        self.window_started_at = self._clock()


async def run_reset_loop(limiter: FixedWindowRateLimiter) -> None:
    while True:
        await asyncio.sleep(limiter.window_seconds)
        if limiter.count > limiter.max_requests:
            log.info("rate_limit.window_reset", rejected=limiter.count - limiter.max_requests)
        limiter.reset()
