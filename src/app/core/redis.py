"""
Redis Connection

Shared async Redis client, used for rate limiting. Redis is optional outside
production: when it is not connected, callers fall back to in-process state.
"""

import logging

from redis.asyncio import Redis, from_url

from app.core.config import settings

logger = logging.getLogger(__name__)

# Shared client; read as app.core.redis.redis_client so callers see reconnects
redis_client: Redis | None = None


async def init_redis() -> Redis:
    """Connect to Redis and verify the connection. Call on application startup."""
    global redis_client
    client = from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    await client.ping()
    redis_client = client
    logger.info("Redis connected")
    return redis_client


def is_redis_available() -> bool:
    """Check if Redis client is initialized and available."""
    return redis_client is not None


async def close_redis() -> None:
    """Close Redis connection."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
