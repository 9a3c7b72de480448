"""Tests for the global fixed-window rate limiter."""

from __future__ import annotations

import asyncio

import pytest

from iporesult import ratelimit
from iporesult.ratelimit import FixedWindowRateLimiter, run_reset_loop


class TestFixedWindowRateLimiter:
    def test_allows_up_to_ceiling(self, clock) -> None:
        limiter = FixedWindowRateLimiter(100, 60, clock=clock)
        decisions = [limiter.hit() for _ in range(100)]
        assert all(d.allowed for d in decisions)
        assert limiter.count == 100

    def test_rejects_101st_and_counts_rejections(self, clock) -> None:
        limiter = FixedWindowRateLimiter(100, 60, clock=clock)
        for _ in range(100):
            limiter.hit()
        clock.advance(20)

        rejected = limiter.hit()
        again = limiter.hit()

        assert not rejected.allowed
        assert rejected.retry_after == 40
        assert not again.allowed
        assert limiter.count == 102

    def test_reset_opens_a_new_window(self, clock) -> None:
        limiter = FixedWindowRateLimiter(100, 60, clock=clock)
        for _ in range(101):
            limiter.hit()
        clock.advance(60)
        limiter.reset()

        for _ in range(100):
            assert limiter.hit().allowed
        assert not limiter.hit().allowed

    def test_retry_after_is_at_least_one_second(self, clock) -> None:
        limiter = FixedWindowRateLimiter(1, 60, clock=clock)
        limiter.hit()
        clock.advance(75)
        assert limiter.hit().retry_after == 1


class TestResetLoop:
    def test_loop_resets_after_each_window(self, monkeypatch: pytest.MonkeyPatch) -> None:
        limiter = FixedWindowRateLimiter(2, 60)
        sleeps: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            sleeps.append(seconds)
            if len(sleeps) > 1:
                raise asyncio.CancelledError
            for _ in range(5):
                limiter.hit()

        monkeypatch.setattr(ratelimit.asyncio, "sleep", fake_sleep)
        with pytest.raises(asyncio.CancelledError):
            asyncio.run(run_reset_loop(limiter))

        assert sleeps == [60, 60]
        assert limiter.count == 0
