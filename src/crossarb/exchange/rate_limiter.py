"""
Token bucket rate limiter for exchange REST requests.

Each adapter owns one limiter so a burst of balance polls on one
exchange never delays order placement on the other. Order calls draw
from both the order bucket and the general request bucket, matching
how Binance and OKX count them.
"""

import asyncio
import time
from dataclasses import dataclass, field


@dataclass
class TokenBucket:
    """Refills at ``rate`` tokens per second up to ``capacity``."""

    capacity: float
    rate: float
    tokens: float = field(init=False)
    _updated: float = field(init=False, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.rate <= 0:
            raise ValueError("rate must be positive")
        self.tokens = self.capacity
        self._updated = time.monotonic()

    def _refill(self) -> None:
        now = time.monotonic()
        self.tokens = min(self.capacity, self.tokens + (now - self._updated) * self.rate)
        self._updated = now

    def wait_time(self, weight: float = 1) -> float:
        """Seconds until ``weight`` tokens are available, without consuming them."""
        self._refill()
        return max(0.0, (weight - self.tokens) / self.rate)

    async def acquire(self, weight: float = 1) -> None:
        """Take ``weight`` tokens, sleeping until the bucket holds enough."""
        async with self._lock:
            delay = self.wait_time(weight)
            if delay:
                await asyncio.sleep(delay)
                self._refill()
            self.tokens -= weight


class RateLimiter:
    """Request and order buckets for one exchange."""

    def __init__(self, requests_per_second: float, orders_per_second: float, burst: float = 2.0) -> None:
        self.requests = TokenBucket(capacity=requests_per_second * burst, rate=requests_per_second)
        self.orders = TokenBucket(capacity=orders_per_second * burst, rate=orders_per_second)

    async def acquire_request(self, weight: float = 1) -> None:
        await self.requests.acquire(weight)

    async def acquire_order(self) -> None:
        await asyncio.gather(self.orders.acquire(1), self.requests.acquire(1))
