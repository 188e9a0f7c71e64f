"""Token bucket rate limiter for per-domain outbound politeness."""

import asyncio
import time
from typing import Dict
from urllib.parse import urlparse


class TokenBucket:
    """Token bucket algorithm implementation for rate limiting.

    The bucket starts full and refills at a constant rate.
    Each request consumes one token. If no tokens are available,
    the request waits until tokens are refilled.
    """

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
        """Acquire tokens from the bucket, waiting if necessary."""
        async with self._lock:
            while True:
                self._refill()
                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return
                wait_time = (tokens - self.tokens) / self.rate
                await asyncio.sleep(wait_time)


class DomainRateLimiter:
    """Per-domain rate limiter using token bucket algorithm.

    Each target host gets its own bucket so that concurrent store scrapes
    never hammer a single retailer or API.
    """

    # Requests per minute for known hosts
    DOMAIN_LIMITS_RPM = {
        "www.cotodigital3.com.ar": 10,
        "www.carrefour.com.ar": 20,
        "www.jumbo.com.ar": 10,
        "www.vea.com.ar": 10,
        "www.disco.com.ar": 10,
        "graph.instagram.com": 30,
    }

    DEFAULT_RPM = 20

    def __init__(self):
        self._buckets: Dict[str, TokenBucket] = {}

    def _get_bucket(self, domain: str) -> TokenBucket:
        if domain not in self._buckets:
            rpm = self.DOMAIN_LIMITS_RPM.get(domain, self.DEFAULT_RPM)
            rate = rpm / 60.0
            # Capacity allows small bursts (10% of RPM, min 2)
            capacity = max(2.0, rpm / 10.0)
            self._buckets[domain] = TokenBucket(rate=rate, capacity=capacity)
        return self._buckets[domain]

    async def acquire(self, domain: str, tokens: float = 1.0) -> None:
        """Block until the domain's bucket allows one more request."""
        bucket = self._get_bucket(domain)
        await bucket.acquire(tokens)

    async def acquire_for_url(self, url: str) -> None:
        """Acquire a token for the host of ``url``."""
        await self.acquire(urlparse(url).netloc.lower())
