"""Per-client request rate limiting for the public search endpoints.

Redis holds a fixed one-minute counter per client so limits are shared by
every API process. When Redis is unreachable the limiter keeps working in a
degraded, process-local mode instead of failing requests.
"""

import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional

import structlog
from redis.asyncio import Redis, from_url
from redis.exceptions import RedisError

from nutriscout.config import settings

logger = structlog.get_logger(__name__)

WINDOW_SECONDS = 60


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_seconds: int


class RateLimiter(ABC):
    """Counts hits per key inside a one-minute window."""

    def __init__(self, limit: int):
        self.limit = limit

    @abstractmethod
    async def hit(self, key: str) -> RateLimitResult:
        """Register one request for ``key`` and report whether it is allowed."""
        pass

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        pass


class InMemoryRateLimiter(RateLimiter):
    """Sliding-window limiter local to this process (degraded mode)."""

    def __init__(self, limit: int, clock: Callable[[], float] = time.monotonic):
        super().__init__(limit)
        self.clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._last_sweep = clock()

    def _sweep(self, now: float) -> None:
        """Forget clients whose newest hit has left the window."""
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= now - WINDOW_SECONDS]
        for key in stale:
            del self._hits[key]
        self._last_sweep = now

    async def hit(self, key: str) -> RateLimitResult:
        now = self.clock()
        if now - self._last_sweep >= WINDOW_SECONDS:
            self._sweep(now)

        hits = self._hits.setdefault(key, deque())
        while hits and hits[0] <= now - WINDOW_SECONDS:
            hits.popleft()

        if len(hits) >= self.limit:
            reset = max(1, int(hits[0] + WINDOW_SECONDS - now))
            return RateLimitResult(allowed=False, limit=self.limit, remaining=0, reset_seconds=reset)

        hits.append(now)
        return RateLimitResult(
            allowed=True,
            limit=self.limit,
            remaining=self.limit - len(hits),
            reset_seconds=WINDOW_SECONDS,
        )


class RedisRateLimiter(RateLimiter):
    """Fixed-window limiter backed by Redis INCR/EXPIRE.

    Any RedisError switches the request to the in-memory fallback.
    """

    def __init__(self, redis_url: str, limit: int, fallback: Optional[InMemoryRateLimiter] = None):
        super().__init__(limit)
        self.redis_url = redis_url
        self.fallback = fallback or InMemoryRateLimiter(limit)
        self._redis: Optional[Redis] = None
        self.logger = logger.bind(service="rate_limiter")

    async def _get_redis(self) -> Redis:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
            self.logger.info("redis_connection_created", url=self.redis_url)
        return self._redis

    async def hit(self, key: str) -> RateLimitResult:
        window = int(time.time() // WINDOW_SECONDS)
        redis_key = f"ratelimit:{key}:{window}"

        try:
            redis = await self._get_redis()
            count = await redis.incr(redis_key)
            if count == 1:
                await redis.expire(redis_key, WINDOW_SECONDS)
            ttl = await redis.ttl(redis_key)
        except RedisError as e:
            self.logger.warning("rate_limit_degraded", key=key, error=str(e))
            return await self.fallback.hit(key)

        reset = ttl if ttl and ttl > 0 else WINDOW_SECONDS
        return RateLimitResult(
            allowed=count <= self.limit,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            reset_seconds=reset,
        )

    async def health_check(self) -> bool:
        """Check Redis connectivity.

        Returns:
            True if Redis is healthy, False otherwise
        """
        try:
            redis = await self._get_redis()
            await redis.ping()
            return True
        except (RedisError, OSError) as e:
            self.logger.warning("redis_health_check_failed", error=str(e))
            return False

    async def close(self) -> None:
        """Close Redis connection on application shutdown."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            self.logger.info("redis_connection_closed")


# Global limiter instance
_limiter_instance: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get or create the global search rate limiter."""
    global _limiter_instance

    if _limiter_instance is None:
        _limiter_instance = RedisRateLimiter(settings.REDIS_URL, settings.SEARCH_RATE_LIMIT_PER_MINUTE)
        logger.info("rate_limiter_initialized", limit=settings.SEARCH_RATE_LIMIT_PER_MINUTE)

    return _limiter_instance
