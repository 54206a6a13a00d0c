"""
Caching Service.

Thin JSON wrapper over Redis used to remember geocoding results.
Cache failures are logged and treated as misses; they never fail a request.
"""

import json
import logging
from typing import Any, Optional

from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class CacheService:

    def __init__(self, redis_client, prefix: str = "ridepool"):
        self.redis = redis_client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self.redis.get(self._key(key))
        except RedisError as exc:
            logger.warning("Cache read failed", extra={"key": key, "error": str(exc)})
            return None

        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, data: Any, ttl_seconds: int = 300):
        try:
            await self.redis.set(self._key(key), json.dumps(data), ex=ttl_seconds)
        except RedisError as exc:
            logger.warning("Cache write failed", extra={"key": key, "error": str(exc)})
