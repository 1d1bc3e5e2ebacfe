"""
Step pacing: minimum spacing between runs and token-bucket rate limits.

State is per ThrottleManager (one per workflow executor) and keyed by an
arbitrary string, normally the step name. Waits go through bounded_sleep
so a workflow deadline still cuts them short.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from pyconductor.reliability.constraints import bounded_sleep

logger = logging.getLogger(__name__)


class TokenBucket:
    """
    Classic token bucket: `capacity` tokens, refilled at `capacity / per`
    tokens per second.
    """

    def __init__(self, capacity: int, per: float, clock: Callable[[], float] = time.monotonic):
        if capacity < 1 or per <= 0:
            raise ValueError("rate limit needs capacity >= 1 and per > 0")
        self.capacity = capacity
        self.per = per
        self._clock = clock
        self._tokens = float(capacity)
        self._updated = clock()

    @property
    def refill_rate(self) -> float:
        return self.capacity / self.per

    def _refill(self) -> None:
        now = self._clock()
        self._tokens = min(self.capacity, self._tokens + (now - self._updated) * self.refill_rate)
        self._updated = now

    def try_acquire(self) -> bool:
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            return True
        return False

    def time_until_available(self) -> float:
        self._refill()
        if self._tokens >= 1:
            return 0.0
        return (1 - self._tokens) / self.refill_rate

    @property
    def available(self) -> float:
        self._refill()
        return self._tokens


class ThrottleManager:
    """Tracks last-run times and token buckets per key."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._last_run: dict[str, float] = {}
        self._buckets: dict[str, TokenBucket] = {}
        self._lock = asyncio.Lock()

    async def throttle(self, key: str, seconds: float) -> float:
        """
        Wait until at least `seconds` have passed since the last run of key.

        Returns:
            Seconds actually waited
        """
        async with self._lock:
            now = self._clock()
            last = self._last_run.get(key)
            wait = 0.0 if last is None else max(seconds - (now - last), 0.0)
            # Reserve the slot before sleeping so concurrent callers queue behind it.
            self._last_run[key] = now + wait

        if wait > 0:
            logger.debug(f"Throttling {key} for {wait:.3f}s")
            await bounded_sleep(wait)
        return wait

    async def rate_limit(self, key: str, calls: int, per: float) -> float:
        """
        Take one token from key's bucket, waiting for a refill if needed.

        Returns:
            Seconds actually waited
        """
        waited = 0.0
        while True:
            async with self._lock:
                bucket = self._buckets.get(key)
                if bucket is None:
                    bucket = TokenBucket(calls, per, self._clock)
                    self._buckets[key] = bucket
                if bucket.try_acquire():
                    return waited
                delay = bucket.time_until_available()

            logger.debug(f"Rate limit reached for {key}, waiting {delay:.3f}s")
            await bounded_sleep(delay)
            waited += delay

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self._last_run.clear()
            self._buckets.clear()
        else:
            self._last_run.pop(key, None)
            self._buckets.pop(key, None)
