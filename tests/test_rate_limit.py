"""Tests for fixed-window rate limiting."""

import pytest

from muzee.config import Settings
from muzee.service.errors import RateLimitedError
from muzee.service.rate_limit import (
    LOGIN,
    SEND_CODE,
    RateLimiter,
    RateLimitRule,
    rules_from_settings,
)
from muzee.storage.memory_cache import MemoryCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return RateLimiter(MemoryCache(clock=clock), {"op": RateLimitRule(3, 300)})


class TestRateLimiter:
    def test_key_format(self):
        assert RateLimiter.key_for(SEND_CODE, "a@x.com") == "rate_limit:send_code:a@x.com"

    async def test_counts_up_to_limit(self, limiter):
        counts = [await limiter.check("op", "a@x.com") for _ in range(3)]
        assert counts == [1, 2, 3]

    async def test_rejects_over_limit(self, limiter):
        for _ in range(3):
            await limiter.check("op", "a@x.com")

        with pytest.raises(RateLimitedError) as excinfo:
            await limiter.check("op", "a@x.com")
        assert excinfo.value.detail == {"retry_window_seconds": 300}

    async def test_identities_are_independent(self, limiter):
        for _ in range(3):
            await limiter.check("op", "a@x.com")

        assert await limiter.check("op", "b@x.com") == 1

    async def test_window_anchored_at_first_attempt(self, limiter, clock):
        """Later attempts do not extend the window."""
        await limiter.check("op", "a@x.com")
        clock.now += 200
        await limiter.check("op", "a@x.com")
        await limiter.check("op", "a@x.com")
        clock.now += 101

        assert await limiter.check("op", "a@x.com") == 1

    async def test_boundary_burst_admits_twice_the_limit(self, limiter, clock):
        """Attempts straddling a window edge are each counted in their own window."""
        await limiter.check("op", "a@x.com")
        clock.now += 299
        await limiter.check("op", "a@x.com")
        await limiter.check("op", "a@x.com")
        clock.now += 1
        for _ in range(3):
            await limiter.check("op", "a@x.com")

        with pytest.raises(RateLimitedError):
            await limiter.check("op", "a@x.com")


class TestRulesFromSettings:
    def test_defaults(self):
        rules = rules_from_settings(Settings(jwt_secret="x" * 40))

        assert rules[SEND_CODE] == RateLimitRule(3, 300)
        assert rules[LOGIN] == RateLimitRule(5, 900)

    def test_overrides(self):
        settings = Settings(jwt_secret="x" * 40, login_rate_limit=10, login_rate_window_seconds=60)

        assert rules_from_settings(settings)[LOGIN] == RateLimitRule(10, 60)
