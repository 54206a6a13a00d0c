"""
Redis connection for the geocode cache.

Redis is optional at runtime: when it is unreachable the cache simply
misses and every lookup goes to the geocoder.
"""

import redis.asyncio as redis
from redis.exceptions import RedisError
from ridepool.app.core.config import settings

redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """FastAPI dependency returning the shared client."""
    return redis_client


async def ping_redis() -> bool:
    try:
        return bool(await redis_client.ping())
    except (RedisError, OSError):
        return False


async def close_redis():
    await redis_client.aclose()
