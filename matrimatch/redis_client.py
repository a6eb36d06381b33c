"""
MatriMatch — Shared Redis client

One ``redis.asyncio`` client per process, opened by the API lifespan or the
worker entry point and handed to services explicitly.
"""

from __future__ import annotations

import redis.asyncio as aioredis
import structlog

from matrimatch.config import get_settings

logger = structlog.get_logger("matrimatch.redis")

_redis_client: aioredis.Redis | None = None


async def connect_redis(url: str | None = None) -> aioredis.Redis:
    global _redis_client
    settings = get_settings()
    _redis_client = aioredis.from_url(
        url or settings.REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=5,
    )
    # Verify connectivity
    await _redis_client.ping()
    logger.info("redis_connected")
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("redis_closed")


def get_redis() -> aioredis.Redis | None:
    """Return the shared Redis client (``None`` before ``connect_redis``)."""
    return _redis_client
