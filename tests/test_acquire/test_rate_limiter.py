"""Tests for the per-host rate limiter under a scripted clock."""

import pytest

from campwatch.acquire.rate_limiter import RateLimiter
from campwatch.config.settings import RateLimitConfig
from campwatch.telemetry.errors import InvariantViolation


class ScriptedClock:
    """Monotonic clock that only moves when the limiter sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def _limiter(clock, **config):
    return RateLimiter(RateLimitConfig(**config), clock=clock, sleep=clock.sleep)


class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_first_request_does_not_wait(self):
        clock = ScriptedClock()
        limiter = _limiter(clock)
        assert await limiter.acquire("https://zoo.example/camp") == 0.0
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_backoff_after_consecutive_failures(self):
        clock = ScriptedClock()
        limiter = _limiter(clock, base_delay_ms=500)
        url = "https://zoo.example/camp"

        for _ in range(4):
            await limiter.acquire(url)
            limiter.record_failure(url)
        waited = await limiter.acquire(url)

        assert clock.sleeps == [1.0, 2.0, 4.0, 8.0]
        assert waited >= 500 * 2**4 / 1000

    def test_delay_is_capped(self):
        clock = ScriptedClock()
        limiter = _limiter(clock, base_delay_ms=10000, max_delay_ms=30000)
        url = "https://zoo.example"
        for _ in range(4):
            limiter.record_failure(url)
        assert limiter.delay_ms(url) == 30000

    def test_success_resets_backoff(self):
        clock = ScriptedClock()
        limiter = _limiter(clock, base_delay_ms=500)
        url = "https://zoo.example"
        limiter.record_failure(url)
        limiter.record_failure(url)
        assert limiter.delay_ms(url) == 2000
        limiter.record_success(url)
        assert limiter.delay_ms(url) == 500

    @pytest.mark.asyncio
    async def test_elapsed_time_counts_toward_delay(self):
        clock = ScriptedClock()
        limiter = _limiter(clock, base_delay_ms=500)
        await limiter.acquire("https://zoo.example")
        clock.now += 0.2
        waited = await limiter.acquire("https://www.zoo.example/other")
        assert waited == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_hosts_are_independent(self):
        clock = ScriptedClock()
        limiter = _limiter(clock)
        await limiter.acquire("https://zoo.example")
        assert await limiter.acquire("https://art.example") == 0.0
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_clock_moving_backwards(self):
        clock = ScriptedClock()
        limiter = _limiter(clock)
        clock.now = 10.0
        await limiter.acquire("https://zoo.example")
        clock.now = 5.0
        with pytest.raises(InvariantViolation):
            await limiter.acquire("https://zoo.example")

    @pytest.mark.asyncio
    async def test_unparsable_url_passes_through(self):
        limiter = _limiter(ScriptedClock())
        assert await limiter.acquire("not a url") == 0.0
