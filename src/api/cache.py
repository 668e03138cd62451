"""Redis caching layer for trending and recommendation responses.

Cached values are JSON payloads with a per-kind TTL. The cache is an
optimization only: every Redis failure is logged and treated as a miss.
"""

import json
from typing import Any

import redis

from src.utils.config import config
from src.utils.logger import get_logger

logger = get_logger(__name__)


class RedisCache:
    """Redis-backed cache for trending and recommendation results.

    Attributes:
        client: The Redis client instance.
        rec_ttl: TTL for recommendation cache entries.
        trending_ttl: TTL for trending cache entries.
    """

    def __init__(self, redis_client: redis.Redis) -> None:
        """Initialize the cache with a Redis client.

        Args:
            redis_client: A connected Redis client instance.
        """
        self.client = redis_client
        self.rec_ttl: int = config["redis"]["recommendation_ttl"]
        self.trending_ttl: int = config["redis"]["trending_ttl"]

    def get(self, key: str) -> Any | None:
        """Retrieve a cached value by key.

        Args:
            key: The cache key.

        Returns:
            The deserialized cached value, or None if not found or on error.
        """
        try:
            data = self.client.get(key)
            if data:
                return json.loads(data)
        except Exception as e:
            logger.warning("Cache get error for key %s: %s", key, e)
        return None

    def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Store a value in the cache with TTL.

        Args:
            key: The cache key.
            value: The value to cache (must be JSON-serializable).
            ttl: Time-to-live in seconds. Defaults to recommendation TTL.

        Returns:
            True if the value was cached successfully.
        """
        try:
            self.client.set(key, json.dumps(value), ex=ttl or self.rec_ttl)
            return True
        except Exception as e:
            logger.warning("Cache set error for key %s: %s", key, e)
            return False

    def _delete_pattern(self, pattern: str) -> int:
        try:
            keys = list(self.client.scan_iter(pattern))
            if keys:
                self.client.delete(*keys)
        except Exception as e:
            logger.warning("Cache invalidation error for %s: %s", pattern, e)
            return 0
        return len(keys)

    def invalidate_resource(self, resource_id: str) -> int:
        """Invalidate cached recommendations for a resource.

        Args:
            resource_id: The resource whose cache entries should be removed.

        Returns:
            Number of cache entries deleted.
        """
        deleted = self._delete_pattern(f"rec:{resource_id}:*")
        if deleted:
            logger.info("Invalidated %d cache entries for resource %s", deleted, resource_id)
        return deleted

    def invalidate_trending(self) -> int:
        """Invalidate every cached trending page.

        Returns:
            Number of cache entries deleted.
        """
        return self._delete_pattern("trending:*")

    @staticmethod
    def rec_key(resource_id: str, limit: int) -> str:
        """Generate a cache key for recommendation results.

        Args:
            resource_id: The source resource identifier.
            limit: Number of recommendations.

        Returns:
            Formatted cache key string.
        """
        return f"rec:{resource_id}:{limit}"

    @staticmethod
    def trending_key(limit: int) -> str:
        """Generate a cache key for a trending page of ``limit`` results."""
        return f"trending:{limit}"
