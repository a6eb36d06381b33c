"""Tests for the Redis fixed-window rate limiter."""
from matrimatch.services.rate_limit import RedisRateLimiter


class TestRedisRateLimiter:
    """Window creation, limit and reset."""

    async def test_window_has_ttl_before_first_count(self, fake_redis):
        limiter = RedisRateLimiter(fake_redis)

        decision = await limiter.hit("rl:test", limit=2, window_seconds=60)

        assert decision.allowed
        assert await fake_redis.get("rl:test") == "1"
        assert await fake_redis.ttl("rl:test") == 60

    async def test_later_hits_keep_the_original_window(self, fake_redis, clock):
        limiter = RedisRateLimiter(fake_redis)
        await limiter.hit("rl:test", limit=5, window_seconds=60)
        clock.advance(seconds=20)

        await limiter.hit("rl:test", limit=5, window_seconds=60)

        assert await fake_redis.ttl("rl:test") == 40

    async def test_over_limit_reports_retry_after(self, fake_redis, clock):
        limiter = RedisRateLimiter(fake_redis)
        for _ in range(2):
            assert (await limiter.hit("rl:test", limit=2, window_seconds=60)).allowed
        clock.advance(seconds=15)

        decision = await limiter.hit("rl:test", limit=2, window_seconds=60)

        assert not decision.allowed
        assert decision.retry_after_seconds == 45

    async def test_counter_resets_after_window(self, fake_redis, clock):
        limiter = RedisRateLimiter(fake_redis)
        for _ in range(3):
            await limiter.hit("rl:test", limit=2, window_seconds=60)
        clock.advance(seconds=61)

        assert (await limiter.hit("rl:test", limit=2, window_seconds=60)).allowed
