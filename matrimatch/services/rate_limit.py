"""
MatriMatch — Short-window rate limiter

Fixed-window counter in Redis, shared by every worker process.  The window
key is created with its TTL in one ``SET NX EX`` before the ``INCR``, so a
counter can never outlive its window.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class RateDecision:
    allowed: bool
    retry_after_seconds: int


class RedisRateLimiter:
    def __init__(self, redis) -> None:
        self.redis = redis

    async def hit(self, key: str, limit: int, window_seconds: int) -> RateDecision:
        await self.redis.set(key, 0, nx=True, ex=window_seconds)
        count = await self.redis.incr(key)
        if count > limit:
            ttl = await self.redis.ttl(key)
            return RateDecision(allowed=False, retry_after_seconds=max(1, int(ttl)))
        return RateDecision(allowed=True, retry_after_seconds=0)
