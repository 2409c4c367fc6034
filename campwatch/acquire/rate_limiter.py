"""Per-host rate limiter with exponential backoff on failure.

Two requests to the same host are always separated by at least
``base · 2^min(failures, max_exponent)`` milliseconds, capped at
``max_delay_ms``. Hosts never block one another.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from campwatch.config.settings import RateLimitConfig
from campwatch.config.url_policy import host_of
from campwatch.telemetry.errors import InvariantViolation

logger = logging.getLogger(__name__)


@dataclass
class HostState:
    last_request_at: float | None = None
    failure_count: int = 0


class RateLimiter:
    """Politeness gate shared by every strategy in a run.

    ``clock`` returns monotonic seconds and ``sleep`` awaits seconds; both
    are injectable so tests can drive the limiter with a scripted clock.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config or RateLimitConfig()
        self._clock = clock
        self._sleep = sleep
        self._hosts: dict[str, HostState] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def state(self, url: str) -> HostState | None:
        host = host_of(url)
        return self._hosts.get(host) if host else None

    def delay_ms(self, url: str) -> int:
        """Current minimum spacing for the host of ``url``."""
        host = host_of(url)
        if host is None:
            return 0
        failures = self._hosts.get(host, HostState()).failure_count
        exponent = min(failures, self._config.max_failure_exponent)
        return min(self._config.base_delay_ms * 2**exponent, self._config.max_delay_ms)

    async def acquire(self, url: str) -> float:
        """Wait until a request to the host of ``url`` is allowed.

        Returns the number of seconds slept. Unparsable URLs pass through.
        """
        host = host_of(url)
        if host is None:
            return 0.0

        lock = self._locks.setdefault(host, asyncio.Lock())
        async with lock:
            state = self._hosts.setdefault(host, HostState())
            delay_s = self.delay_ms(url) / 1000.0
            waited = 0.0
            if state.last_request_at is not None:
                now = self._clock()
                if now < state.last_request_at:
                    raise InvariantViolation(
                        f"Monotonic clock moved backwards for host {host}"
                    )
                elapsed = now - state.last_request_at
                if elapsed < delay_s:
                    waited = delay_s - elapsed
                    logger.debug("Rate limit: waiting %.2fs for %s", waited, host)
                    await self._sleep(waited)
            state.last_request_at = self._clock()
            return waited

    def record_success(self, url: str) -> None:
        host = host_of(url)
        if host is None:
            return
        self._hosts.setdefault(host, HostState()).failure_count = 0

    def record_failure(self, url: str) -> None:
        host = host_of(url)
        if host is None:
            return
        state = self._hosts.setdefault(host, HostState())
        state.failure_count = min(state.failure_count + 1, self._config.max_failure_exponent)
