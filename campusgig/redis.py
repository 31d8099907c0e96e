"""Shared Redis pool for rate limiting and the realtime relay."""

from collections.abc import AsyncGenerator

import redis.asyncio as aioredis

from campusgig.config import settings

_pool: aioredis.ConnectionPool | None = None


def redis_client() -> aioredis.Redis:
    """A client on the process-wide pool, created on first use."""
    global _pool
    if _pool is None:
        _pool = aioredis.ConnectionPool.from_url(settings.redis_url, health_check_interval=30)
    return aioredis.Redis(connection_pool=_pool)


async def close_redis_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.disconnect()
        _pool = None


async def get_redis() -> AsyncGenerator[aioredis.Redis, None]:
    client = redis_client()
    try:
        yield client
    finally:
        await client.aclose()
