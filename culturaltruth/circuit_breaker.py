"""
Circuit Breaker — closed → open → half-open → closed.

Wraps every Qloo call. When open, call() raises CircuitOpenError
immediately so the engine can finish a bias-only analysis instead of
waiting on a dependency that is known to be down.

Transitions:
  closed     → open       after `failure_threshold` consecutive failures
  open       → half-open  once `recovery_timeout` seconds have passed
  half-open  → closed     after 3 consecutive successes
  half-open  → open       on any failure
"""

from __future__ import annotations

import time
from typing import Any, Awaitable, Callable, TypeVar

from culturaltruth.errors import CircuitOpenError
from culturaltruth.logging import get_logger

logger = get_logger("circuit_breaker")

T = TypeVar("T")

HALF_OPEN_SUCCESS_THRESHOLD = 3


class CircuitBreaker:

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        success_threshold: int = HALF_OPEN_SUCCESS_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold
        self._clock = clock
        self._failures = 0
        self._last_failure_time: float = 0
        self._half_open_successes = 0
        self._state = "closed"  # closed | open | half-open

    @property
    def state(self) -> str:
        if self._state == "open":
            if self._clock() - self._last_failure_time >= self.recovery_timeout:
                self._state = "half-open"
                self._half_open_successes = 0
                logger.info("Circuit breaker HALF-OPEN, probing Qloo")
        return self._state

    @property
    def is_open(self) -> bool:
        return self.state == "open"

    def record_success(self) -> None:
        # A call that was in flight when the breaker opened cannot close it
        if self._state == "open":
            return
        if self._state == "half-open":
            self._half_open_successes += 1
            if self._half_open_successes >= self.success_threshold:
                self._state = "closed"
                self._failures = 0
                self._half_open_successes = 0
                logger.info("Circuit breaker CLOSED, Qloo recovered")
        else:
            self._failures = 0
            self._state = "closed"

    def record_failure(self) -> None:
        self._failures += 1
        self._last_failure_time = self._clock()
        if self._state == "half-open":
            self._state = "open"
            self._half_open_successes = 0
            logger.warning("Circuit breaker re-OPENED: half-open probe failed")
        elif self._failures >= self.failure_threshold and self._state != "open":
            self._state = "open"
            logger.warning(
                "Circuit breaker OPEN after %d consecutive Qloo failures. "
                "Bias-only mode for %ss.",
                self._failures, self.recovery_timeout,
            )

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run fn through the breaker. Any exception counts as a failure."""
        if self.is_open:
            raise CircuitOpenError(
                "Circuit breaker is open: too many consecutive Qloo failures."
            )
        try:
            result = await fn(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    @property
    def stats(self) -> dict:
        return {
            "state": self.state,
            "failures": self._failures,
            "last_failure": self._last_failure_time,
            "half_open_successes": self._half_open_successes,
        }
