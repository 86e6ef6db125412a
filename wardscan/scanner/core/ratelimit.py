"""
Token-bucket rate limiter shared by all scan workers.
"""

import asyncio
import time
from typing import Callable


class RateLimiter:
    """
    Token bucket: `capacity` tokens, refilled continuously at `refill_per_second`.

    The bucket starts full, so the first `capacity` acquisitions are immediate.
    """

    def __init__(
            self,
            capacity: float,
            refill_per_second: float,
            clock: Callable[[], float] = time.monotonic
    ):
        if capacity <= 0 or refill_per_second <= 0:
            raise ValueError("capacity and refill_per_second must be > 0")
        self.capacity = float(capacity)
        self.refill_per_second = float(refill_per_second)
        self._clock = clock
        self._tokens = self.capacity
        self._last = clock()
        self._lock = asyncio.Lock()

    def _refill(self):
        now = self._clock()
        elapsed = now - self._last
        if elapsed > 0:
            self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_per_second)
            self._last = now

    def try_acquire(self) -> bool:
        """Take a token if one is available right now."""
        self._refill()
        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return True
        return False

    async def acquire(self):
        """Wait until a token is available, then consume it."""
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                deficit = 1.0 - self._tokens
                await asyncio.sleep(max(0.005, deficit / self.refill_per_second))

    @property
    def available(self) -> float:
        self._refill()
        return self._tokens
