"""Token bucket rate limiter for per-domain request pacing."""

import asyncio
import time
from typing import Dict, Optional


class TokenBucket:
    """Token bucket: starts full, refills at a constant rate, one token per request."""

    def __init__(self, rate: float, capacity: float):
        """Initialize token bucket.

        Args:
            rate: Tokens per second (e.g., 1.0 = 60 RPM)
            capacity: Maximum tokens in bucket (burst capacity)
        """
        self.rate = rate
        self.capacity = capacity
        self.tokens = capacity
        self.last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
        self.last_refill = now

    async def acquire(self, tokens: float = 1.0) -> None:
        """Take tokens from the bucket, sleeping until enough have refilled."""
        async with self._lock:
            while True:
                self._refill()
                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return
                wait_time = (tokens - self.tokens) / self.rate
                await asyncio.sleep(wait_time)


class DomainRateLimiter:
    """Per-domain rate limiter shared by every pipeline in the process.

    Dealer sites are small WordPress installs sharing one default limit.
    Pipelines for different domains never wait on each other.
    """

    DEFAULT_RPM = 60

    def __init__(self, default_rpm: int = DEFAULT_RPM, limits_rpm: Optional[Dict[str, int]] = None):
        self.default_rpm = default_rpm
        self._limits_rpm: Dict[str, int] = dict(limits_rpm or {})
        self._buckets: Dict[str, TokenBucket] = {}

    @staticmethod
    def _make_bucket(rpm: int) -> TokenBucket:
        # Capacity allows small bursts (10% of RPM, min 2)
        return TokenBucket(rate=rpm / 60.0, capacity=max(2.0, rpm / 10.0))

    def _get_bucket(self, domain: str) -> TokenBucket:
        if domain not in self._buckets:
            rpm = self._limits_rpm.get(domain, self.default_rpm)
            self._buckets[domain] = self._make_bucket(rpm)
        return self._buckets[domain]

    async def acquire(self, domain: str, tokens: float = 1.0) -> None:
        """Block until the domain's bucket allows another request."""
        await self._get_bucket(domain).acquire(tokens)

    def set_custom_limit(self, domain: str, rpm: int) -> None:
        """Override the limit for one domain, replacing any existing bucket."""
        self._limits_rpm[domain] = rpm
        self._buckets[domain] = self._make_bucket(rpm)

    def get_current_rate(self, domain: str) -> float:
        """Current limit for a domain in requests per minute."""
        return self._get_bucket(domain).rate * 60.0
