"""
Redis caching layer for suggestion and trending reads
"""
import redis.asyncio as redis
from typing import Any, Optional
import json
import logging

from .config import settings

logger = logging.getLogger(__name__)


def _scope(value: Optional[str]) -> str:
    return value.strip().lower() if value else "*"


class RedisCache:
    """Redis cache manager; every failure degrades to a cache miss"""

    def __init__(self):
        self.redis: Optional[redis.Redis] = None

    @property
    def enabled(self) -> bool:
        return self.redis is not None

    async def connect(self):
        """Connect to Redis"""
        if not settings.REDIS_ENABLED:
            logger.info("Redis caching is disabled")
            return

        try:
            self.redis = redis.from_url(
                f"redis://{settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}",
                password=settings.REDIS_PASSWORD if settings.REDIS_PASSWORD else None,
                encoding="utf-8",
                decode_responses=True,
            )
            await self.redis.ping()
            logger.info("Connected to Redis successfully")
        except (redis.RedisError, OSError) as e:
            logger.warning(f"Failed to connect to Redis: {e}. Continuing without cache.")
            self.redis = None

    async def disconnect(self):
        """Disconnect from Redis"""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            logger.info("Disconnected from Redis")

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        if not self.redis:
            return None

        try:
            value = await self.redis.get(key)
            if value:
                return json.loads(value)
            return None
        except (redis.RedisError, ValueError) as e:
            logger.error(f"Error getting cache key {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int = 300):
        """Set value in cache with TTL"""
        if not self.redis:
            return

        try:
            await self.redis.setex(key, ttl, json.dumps(value, default=str))
        except (redis.RedisError, TypeError) as e:
            logger.error(f"Error setting cache key {key}: {e}")

    # Search-specific cache keys
    def suggestions_key(
        self, query: str, city: Optional[str], state: Optional[str], limit: int
    ) -> str:
        """Generate cache key for an autocomplete read"""
        return f"search:suggestions:{query.strip().lower()}:{_scope(city)}:{_scope(state)}:{limit}"

    def trending_key(self, city: Optional[str], state: Optional[str], limit: int) -> str:
        """Generate cache key for a trending read"""
        return f"search:trending:{_scope(city)}:{_scope(state)}:{limit}"


# Global cache instance
cache = RedisCache()


async def get_cache() -> RedisCache:
    """Dependency for getting cache instance"""
    return cache
