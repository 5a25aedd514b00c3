"""
Tests for the daily rate limiter.
"""

import asyncio
from contextlib import AsyncExitStack
from datetime import datetime, timedelta, timezone

import pytest

from internet_mood.errors import RateLimitExceeded
from internet_mood.ratelimit import RateLimiter, client_address, rate_limit_key


class FakeClock:
    """A settable clock."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class TestClientAddress:
    """Test suite for client address resolution."""

    def test_forwarded_for_first_segment(self):
        headers = {"x-forwarded-for": " 203.0.113.7 , 10.0.0.1", "x-real-ip": "10.0.0.2"}
        assert client_address(headers) == "203.0.113.7"

    def test_real_ip(self):
        assert client_address({"x-real-ip": "198.51.100.4"}) == "198.51.100.4"

    def test_unknown(self):
        assert client_address({}) == "unknown"
        assert client_address({"x-forwarded-for": ""}) == "unknown"

    def test_key(self):
        assert rate_limit_key("1.2.3.4", "phone") == "1.2.3.4:phone"
        assert rate_limit_key("1.2.3.4", None) == "1.2.3.4:unknown"


class TestRateLimiter:
    """Test suite for RateLimiter."""

    def setup_method(self):
        """Set up a limiter with a controllable clock."""
        self.clock = FakeClock(datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc))
        self.limiter = RateLimiter(limit=5, clock=self.clock)
        self.key = "203.0.113.7:phone"

    async def _submit(self) -> None:
        async with self.limiter.slot(self.key) as slot:
            slot.commit()

    async def test_five_per_day_then_rejected(self):
        for _ in range(5):
            await self._submit()
        assert await self.limiter.count(self.key) == 5

        with pytest.raises(RateLimitExceeded) as exc_info:
            await self._submit()

        assert exc_info.value.limit == 5
        assert exc_info.value.current == 5
        assert exc_info.value.retry_after_hours == 24
        assert await self.limiter.count(self.key) == 5

    async def test_day_rollover_resets(self):
        for _ in range(5):
            await self._submit()

        self.clock.now += timedelta(days=1)
        self.clock.now = self.clock.now.replace(hour=0, minute=0, second=1)

        await self._submit()
        assert await self.limiter.count(self.key) == 1

    async def test_slot_committed_after_midnight_counts_on_new_day(self):
        self.clock.now = datetime(2026, 10, 19, 23, 59, 59, tzinfo=timezone.utc)

        async with AsyncExitStack() as stack:
            late = await stack.enter_async_context(self.limiter.slot(self.key))

            self.clock.now += timedelta(seconds=2)
            for _ in range(4):
                await self._submit()

            late.commit()

        assert await self.limiter.count(self.key) == 5
        with pytest.raises(RateLimitExceeded):
            await self._submit()

    async def test_uncommitted_slot_is_released(self):
        """A failed store must not use up a slot."""
        for _ in range(3):
            async with self.limiter.slot(self.key):
                pass

        assert await self.limiter.count(self.key) == 0

        with pytest.raises(RuntimeError):
            async with self.limiter.slot(self.key):
                raise RuntimeError("store down")

        for _ in range(5):
            await self._submit()
        assert await self.limiter.count(self.key) == 5

    async def test_keys_are_independent(self):
        for _ in range(5):
            await self._submit()

        async with self.limiter.slot("203.0.113.7:laptop") as slot:
            slot.commit()
        assert await self.limiter.count("203.0.113.7:laptop") == 1

    async def test_concurrent_requests_respect_limit(self):
        """In-flight slots count, so parallel requests cannot overshoot."""
        accepted = 0
        rejected = 0

        async def submit_slowly() -> None:
            nonlocal accepted, rejected
            try:
                async with self.limiter.slot(self.key) as slot:
                    await asyncio.sleep(0.01)
                    slot.commit()
                    accepted += 1
            except RateLimitExceeded:
                rejected += 1

        await asyncio.gather(*(submit_slowly() for _ in range(12)))

        assert accepted == 5
        assert rejected == 7
        assert await self.limiter.count(self.key) == 5
