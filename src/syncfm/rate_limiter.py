"""Async token-bucket rate limiting per catalog.

Each catalog adapter draws from its own bucket before every API request, so
a conversion fan-out never bursts past a catalog's published limits.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class AsyncTokenBucket:
    """Token bucket whose waits suspend the coroutine instead of the thread.

    - Tokens are added at a fixed rate (refill_rate per second)
    - Requests consume tokens from the bucket
    - Maximum tokens in bucket is capped at capacity
    """

    capacity: float
    refill_rate: float  # tokens per second
    _tokens: float = field(init=False)
    _last_refill: float = field(init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        self._tokens = self.capacity
        self._last_refill = time.monotonic()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self._last_refill
        self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_rate)
        self._last_refill = now

    def try_acquire(self, tokens: float = 1.0) -> bool:
        """Take tokens if they are available right now."""
        self._refill()
        if self._tokens >= tokens:
            self._tokens -= tokens
            return True
        return False

    async def acquire(self, tokens: float = 1.0) -> float:
        """Wait until `tokens` are available and consume them.

        Returns:
            Seconds spent waiting
        """
        waited = 0.0
        # the lock keeps waiters in arrival order
        async with self._lock:
            while not self.try_acquire(tokens):
                delay = (tokens - self._tokens) / self.refill_rate
                waited += delay
                await asyncio.sleep(delay)
        return waited

    @property
    def available_tokens(self) -> float:
        self._refill()
        return self._tokens

    def wait_time(self, tokens: float = 1.0) -> float:
        """Seconds until `tokens` would be available (0 if available now)."""
        self._refill()
        if self._tokens >= tokens:
            return 0.0
        return (tokens - self._tokens) / self.refill_rate


class RateLimiterRegistry:
    """Per-catalog buckets, created lazily from DEFAULT_LIMITS or explicit configuration."""

    # (capacity, tokens per second)
    DEFAULT_LIMITS: dict[str, tuple[float, float]] = {
        "spotify": (10.0, 5.0),
        "applemusic": (20.0, 20.0 / 60),  # iTunes Search API: ~20 req/min
        "ytmusic": (10.0, 5.0),
    }

    def __init__(self, limits: dict[str, tuple[float, float]] | None = None) -> None:
        self._limits = {**self.DEFAULT_LIMITS, **(limits or {})}
        self._buckets: dict[str, AsyncTokenBucket] = {}

    def get_limiter(self, source: str) -> AsyncTokenBucket:
        if source not in self._buckets:
            capacity, refill_rate = self._limits.get(source, (10.0, 1.0))
            self._buckets[source] = AsyncTokenBucket(capacity=capacity, refill_rate=refill_rate)
        return self._buckets[source]

    def configure(self, source: str, capacity: float, refill_rate: float) -> None:
        self._limits[source] = (capacity, refill_rate)
        self._buckets[source] = AsyncTokenBucket(capacity=capacity, refill_rate=refill_rate)

    async def acquire(self, source: str, tokens: float = 1.0) -> None:
        waited = await self.get_limiter(source).acquire(tokens)
        if waited > 0:
            logger.debug(f"Rate limited {source}: waited {waited:.2f}s")

    def status(self) -> dict[str, dict[str, Any]]:
        return {
            source: {
                "capacity": bucket.capacity,
                "refill_rate": bucket.refill_rate,
                "available_tokens": bucket.available_tokens,
            }
            for source, bucket in self._buckets.items()
        }


## Tests


def test_token_bucket_try_acquire():
    bucket = AsyncTokenBucket(capacity=2.0, refill_rate=0.001)

    assert bucket.try_acquire(1.0) is True
    assert bucket.try_acquire(1.0) is True
    assert bucket.try_acquire(1.0) is False


def test_token_bucket_acquire_waits_for_refill():
    bucket = AsyncTokenBucket(capacity=1.0, refill_rate=100.0)

    async def drain() -> float:
        await bucket.acquire()
        return await bucket.acquire()

    waited = asyncio.run(drain())
    assert 0.0 < waited < 0.5


def test_registry_defaults_and_configure():
    registry = RateLimiterRegistry()
    assert registry.get_limiter("spotify").capacity == 10.0

    registry.configure("spotify", capacity=1.0, refill_rate=1.0)
    assert registry.get_limiter("spotify").capacity == 1.0
    assert "spotify" in registry.status()
