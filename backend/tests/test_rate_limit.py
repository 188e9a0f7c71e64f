"""Tests for the search rate limiters."""

from unittest.mock import AsyncMock

from redis.exceptions import ConnectionError as RedisConnectionError

from nutriscout.services.rate_limit import InMemoryRateLimiter, RedisRateLimiter


class FakeClock:
    def __init__(self):
        self.now = 500.0

    def __call__(self) -> float:
        return self.now


class TestInMemoryRateLimiter:
    async def test_limit_and_window(self):
        clock = FakeClock()
        limiter = InMemoryRateLimiter(limit=2, clock=clock)

        first = await limiter.hit("1.2.3.4")
        second = await limiter.hit("1.2.3.4")
        third = await limiter.hit("1.2.3.4")

        assert (first.allowed, first.remaining) == (True, 1)
        assert (second.allowed, second.remaining) == (True, 0)
        assert third.allowed is False
        assert third.reset_seconds == 60

        assert (await limiter.hit("5.6.7.8")).allowed is True

        clock.now += 61
        assert (await limiter.hit("1.2.3.4")).allowed is True

    async def test_idle_clients_are_forgotten(self):
        clock = FakeClock()
        limiter = InMemoryRateLimiter(limit=5, clock=clock)

        for n in range(20):
            await limiter.hit(f"10.0.0.{n}")
        assert len(limiter._hits) == 20

        clock.now += 30
        await limiter.hit("10.0.0.1")
        assert len(limiter._hits) == 20

        clock.now += 45
        await limiter.hit("10.0.0.99")

        assert set(limiter._hits) == {"10.0.0.1", "10.0.0.99"}


class TestRedisRateLimiter:
    """Tests for RedisRateLimiter with a mocked client."""

    def make_redis(self, count: int, ttl: int = 42) -> AsyncMock:
        redis = AsyncMock()
        redis.incr.return_value = count
        redis.ttl.return_value = ttl
        return redis

    async def test_first_hit_sets_expiry(self):
        limiter = RedisRateLimiter("redis://unused", limit=3)
        redis = self.make_redis(1)
        limiter._redis = redis

        result = await limiter.hit("1.2.3.4")

        assert result.allowed is True
        assert result.remaining == 2
        assert result.reset_seconds == 42
        key = redis.incr.await_args.args[0]
        assert key.startswith("ratelimit:1.2.3.4:")
        redis.expire.assert_awaited_once_with(key, 60)

    async def test_over_limit(self):
        limiter = RedisRateLimiter("redis://unused", limit=3)
        limiter._redis = self.make_redis(4, ttl=-1)

        result = await limiter.hit("1.2.3.4")

        assert result.allowed is False
        assert result.remaining == 0
        assert result.reset_seconds == 60
        limiter._redis.expire.assert_not_awaited()

    async def test_redis_error_uses_fallback(self):
        fallback = InMemoryRateLimiter(limit=1)
        limiter = RedisRateLimiter("redis://unused", limit=1, fallback=fallback)
        limiter._redis = AsyncMock()
        limiter._redis.incr.side_effect = RedisConnectionError("refused")

        assert (await limiter.hit("1.2.3.4")).allowed is True
        assert (await limiter.hit("1.2.3.4")).allowed is False

    async def test_health_check_and_close(self):
        limiter = RedisRateLimiter("redis://unused", limit=1)
        redis = AsyncMock()
        limiter._redis = redis

        assert await limiter.health_check() is True

        redis.ping.side_effect = RedisConnectionError("refused")
        assert await limiter.health_check() is False

        await limiter.close()
        redis.aclose.assert_awaited_once()
        assert limiter._redis is None
