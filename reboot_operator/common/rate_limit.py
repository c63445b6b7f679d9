"""
Token Bucket Rate Limiter

Bounds how often the reconciliation loop may hit the state store.

Tokens refill continuously at `qps` per second up to `burst`. The bucket
starts full, so the first `burst` acquisitions return immediately and
the rest are spaced 1/qps seconds apart.

Usage:
    limiter = TokenBucketRateLimiter(qps=0.2, burst=1)
    while True:
        await limiter.accept()
        ...
"""

import asyncio
import time
from typing import Awaitable, Callable


class TokenBucketRateLimiter:
    """
    Async token bucket.

    Attributes:
        qps: Sustained rate in tokens per second
        burst: Bucket capacity
        waited_seconds: Total time spent blocked in accept()
    """

    def __init__(
        self,
        qps: float,
        burst: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if qps <= 0:
            raise ValueError("qps must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")

        self.qps = qps
        self.burst = burst
        self._clock = clock
        self._sleep = sleep

        self._tokens = float(burst)
        self._last_refill = clock()
        self.waited_seconds: float = 0.0

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.qps)
        self._last_refill = now

    def try_accept(self) -> bool:
        """Take a token if one is available. Never blocks."""
        self._refill()
        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return True
        return False

    async def accept(self) -> None:
        """Take a token, sleeping until one is available"""
        while not self.try_accept():
            wait = (1.0 - self._tokens) / self.qps
            self.waited_seconds += wait
            await self._sleep(wait)

    @property
    def available_tokens(self) -> float:
        self._refill()
        return self._tokens
