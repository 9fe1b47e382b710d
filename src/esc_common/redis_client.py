"""Redis connection for the notification stream.

Nothing transactional lives in Redis: locks, balances and state are all
PostgreSQL. Losing Redis only delays notifications.
"""

import redis.asyncio as aioredis

from config.settings import settings

_redis_pool: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """Return the shared client, creating it on first use."""
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is None:
        _redis_pool = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=settings.NOTIFICATION_TIMEOUT_SECONDS,
            health_check_interval=30,
        )
    return _redis_pool


async def ping_redis() -> None:
    """Fail fast at startup when notifications are enabled but Redis is unreachable."""
    client = await get_redis()
    await client.ping()


async def close_redis() -> None:
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is not None:
        await _redis_pool.aclose()
        _redis_pool = None
