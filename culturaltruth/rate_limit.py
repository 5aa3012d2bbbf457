"""
Rate Limiter — Outbound Token Bucket

Admission control for Qloo API calls. The bucket holds
RATE_LIMIT_PER_MINUTE tokens and is refilled in full (not drip-fed)
once the interval has elapsed since the last refill.

acquire() either deducts immediately or sleeps until the next refill
boundary and tries again. Waiters wake in call order on a single event
loop; there is no other queueing guarantee.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

from culturaltruth.logging import get_logger

logger = get_logger("rate_limit")


class TokenBucketRateLimiter:
    """Full-refill token bucket."""

    def __init__(
        self,
        tokens_per_interval: int = 50,
        interval_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if tokens_per_interval < 1:
            raise ValueError("tokens_per_interval must be at least 1")
        self.capacity = tokens_per_interval
        self.interval = interval_seconds
        self._clock = clock
        self._sleep = sleep
        self._tokens = tokens_per_interval
        self._last_refill = clock()
        self.waits = 0

    def _refill_if_due(self) -> float:
        """Refill when the interval has passed. Returns seconds until next refill."""
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed >= self.interval:
            self._tokens = self.capacity
            self._last_refill = now
            return self.interval
        return self.interval - elapsed

    def try_acquire(self, count: int = 1) -> bool:
        """Deduct without waiting. False if the bucket is short."""
        self._refill_if_due()
        if self._tokens >= count:
            self._tokens -= count
            return True
        return False

    async def acquire(self, count: int = 1) -> None:
        """Deduct `count` tokens, sleeping until a refill if needed."""
        if count > self.capacity:
            raise ValueError(
                f"Cannot acquire {count} tokens from a bucket of {self.capacity}"
            )
        while not self.try_acquire(count):
            wait = self.interval - (self._clock() - self._last_refill)
            self.waits += 1
            logger.info(
                "Rate limit reached, waiting for refill",
                extra={"duration_ms": round(wait * 1000, 1)},
            )
            await self._sleep(wait)

    @property
    def available(self) -> int:
        self._refill_if_due()
        return self._tokens

    @property
    def stats(self) -> dict:
        return {
            "capacity": self.capacity,
            "available": self.available,
            "interval_seconds": self.interval,
            "waits": self.waits,
        }
