"""Shared circuit breaker guarding dispatches to external collaborators."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Literal, TypeVar

from goalgraph.util.errors import CircuitOpen

logger = logging.getLogger(__name__)

BreakerState = Literal["closed", "open", "half-open"]
T = TypeVar("T")

DEFAULT_THRESHOLD = 5
DEFAULT_COOLDOWN_SEC = 60.0


class CircuitBreaker:
    """Consecutive-failure gate shared by every task of one executor.

    After ``threshold`` consecutive failures the breaker opens and rejects calls
    with CircuitOpen until ``cooldown_sec`` has elapsed. The first call after
    that is the single half-open trial; concurrent callers are rejected while
    it is in flight. A successful trial closes the breaker, a failed one reopens
    it and restarts the cool-down.
    """

    def __init__(
        self,
        threshold: int = DEFAULT_THRESHOLD,
        cooldown_sec: float = DEFAULT_COOLDOWN_SEC,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        if cooldown_sec < 0:
            raise ValueError("cooldown_sec must be >= 0")
        self.threshold = threshold
        self.cooldown_sec = cooldown_sec
        self._clock = clock
        self._lock = asyncio.Lock()
        self._state: BreakerState = "closed"
        self._failures = 0
        self._opened_at = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> BreakerState:
        return self._state

    @property
    def failures(self) -> int:
        return self._failures

    async def _admit(self) -> bool:
        """Return True when the admitted call is the half-open trial."""
        async with self._lock:
            if self._state == "closed":
                return False
            if self._state == "open":
                elapsed = self._clock() - self._opened_at
                if elapsed < self.cooldown_sec:
                    raise CircuitOpen(self.cooldown_sec - elapsed)
                self._state = "half-open"
                logger.info("circuit breaker half-open; admitting trial dispatch")
            if self._trial_in_flight:
                raise CircuitOpen(0.0)
            self._trial_in_flight = True
            return True

    async def _record_success(self, trial: bool) -> None:
        async with self._lock:
            if trial:
                self._trial_in_flight = False
                logger.info("circuit breaker closed after successful trial")
            elif self._state != "closed":
                return
            self._state = "closed"
            self._failures = 0

    async def _record_failure(self, trial: bool) -> None:
        async with self._lock:
            self._failures += 1
            if trial:
                self._trial_in_flight = False
            if trial or (self._state == "closed" and self._failures >= self.threshold):
                self._state = "open"
                self._opened_at = self._clock()
                logger.warning(
                    "circuit breaker opened after %d consecutive failures", self._failures
                )

    async def call(self, fn: Callable[[], Awaitable[T]]) -> T:
        trial = await self._admit()
        try:
            result = await fn()
        except asyncio.CancelledError:
            if trial:
                async with self._lock:
                    self._trial_in_flight = False
                    self._state = "open"
                    self._opened_at = self._clock()
            raise
        except Exception:
            await self._record_failure(trial)
            raise
        await self._record_success(trial)
        return result
