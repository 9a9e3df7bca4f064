"""
Rate limiting policies for outbound email.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional, Protocol

Sleep = Callable[[float], Awaitable[None]]


class Pacer(Protocol):
    async def pause(self) -> None:
        """Wait before the next message may be sent."""


class FixedIntervalPacer:
    """Waits a fixed interval between consecutive sends."""

    def __init__(self, interval: float, sleep: Optional[Sleep] = None):
        if interval < 0:
            raise ValueError("interval must not be negative")
        self.interval = interval
        self._sleep = sleep or asyncio.sleep

    async def pause(self) -> None:
        if self.interval > 0:
            await self._sleep(self.interval)


class TokenBucketPacer:
    """
    Token bucket: allows bursts of up to `capacity` sends, refilled at
    `rate` tokens per second.
    """

    def __init__(
        self,
        rate: float,
        capacity: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Sleep] = None,
    ):
        if rate <= 0:
            raise ValueError("rate must be positive")
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.rate = rate
        self.capacity = capacity
        self._clock = clock
        self._sleep = sleep or asyncio.sleep
        self._tokens = float(capacity)
        self._last = clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._last = now

    async def pause(self) -> None:
        self._refill()
        if self._tokens < 1:
            await self._sleep((1 - self._tokens) / self.rate)
            self._refill()
            # The sleep covered the deficit even if the clock did not move
            self._tokens = max(self._tokens, 1.0)
        self._tokens -= 1
