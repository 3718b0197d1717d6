"""Optional Redis connection — backs the rate limiter only.

Real-time delivery does not use Redis; it is in-process (see
murmur.realtime.broadcaster). When Redis is unreachable the app still
runs, just without rate limiting.
"""

from typing import Optional

import redis.asyncio as aioredis

from murmur.config import settings

# Initialized in lifespan; stays None when Redis is unavailable.
_redis: Optional[aioredis.Redis] = None


async def init_redis() -> aioredis.Redis:
    """Connect and ping. Raises if Redis is unreachable."""
    global _redis
    client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    await client.ping()
    _redis = client
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    """Get the Redis connection (must be initialized first)."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis
