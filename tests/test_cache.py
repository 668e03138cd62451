"""Tests for the Redis caching layer."""

from unittest.mock import MagicMock

import fakeredis
import pytest
import redis

from src.api.cache import RedisCache


@pytest.fixture
def redis_client() -> fakeredis.FakeRedis:
    """Create a fake Redis client for testing."""
    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture
def cache(redis_client: fakeredis.FakeRedis) -> RedisCache:
    """Create a RedisCache with a fake Redis backend."""
    return RedisCache(redis_client)


class TestRedisCache:
    """Tests for the RedisCache class."""

    def test_set_and_get(self, cache: RedisCache) -> None:
        """Stored values can be retrieved."""
        cache.set("test_key", {"value": 42})
        assert cache.get("test_key") == {"value": 42}

    def test_get_missing_key(self, cache: RedisCache) -> None:
        """Missing keys return None."""
        assert cache.get("nonexistent") is None

    def test_set_with_ttl(
        self, cache: RedisCache, redis_client: fakeredis.FakeRedis
    ) -> None:
        """Values are set with the specified TTL."""
        cache.set("ttl_key", "data", ttl=60)
        ttl = redis_client.ttl("ttl_key")
        assert 0 < ttl <= 60

    def test_default_ttl_is_recommendation_ttl(
        self, cache: RedisCache, redis_client: fakeredis.FakeRedis
    ) -> None:
        """Recommendation TTL is applied when no TTL is given."""
        cache.set("default_ttl", "value")
        ttl = redis_client.ttl("default_ttl")
        assert 0 < ttl <= cache.rec_ttl

    def test_invalidate_resource(self, cache: RedisCache) -> None:
        """Resource invalidation removes every cached limit for that resource."""
        cache.set("rec:res-1:12", [{"id": "res-2"}])
        cache.set("rec:res-1:5", [{"id": "res-2"}])
        cache.set("rec:res-2:12", [{"id": "res-1"}])

        deleted = cache.invalidate_resource("res-1")
        assert deleted == 2
        assert cache.get("rec:res-1:12") is None
        assert cache.get("rec:res-2:12") is not None

    def test_invalidate_resource_no_keys(self, cache: RedisCache) -> None:
        """Invalidation with no matching keys returns 0."""
        assert cache.invalidate_resource("missing") == 0

    def test_invalidate_trending(self, cache: RedisCache) -> None:
        """Trending invalidation clears every cached trending page only."""
        cache.set("trending:12", [1], ttl=cache.trending_ttl)
        cache.set("trending:50", [2], ttl=cache.trending_ttl)
        cache.set("rec:res-1:12", [3])

        assert cache.invalidate_trending() == 2
        assert cache.get("rec:res-1:12") == [3]

    def test_key_formats(self) -> None:
        """Cache keys follow the expected format."""
        assert RedisCache.rec_key("res-9", 12) == "rec:res-9:12"
        assert RedisCache.trending_key(20) == "trending:20"

    def test_cache_list_data(self, cache: RedisCache) -> None:
        """Complex data structures are stored intact."""
        data = [{"id": "res-1", "score": 0.95}, {"id": "res-2", "score": 0.87}]
        cache.set("complex", data)
        assert cache.get("complex") == data


class TestRedisFailures:
    """Redis errors degrade to cache misses."""

    @pytest.fixture
    def broken_cache(self) -> RedisCache:
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("down")
        client.set.side_effect = redis.ConnectionError("down")
        client.scan_iter.side_effect = redis.ConnectionError("down")
        return RedisCache(client)

    def test_get_returns_none(self, broken_cache: RedisCache) -> None:
        assert broken_cache.get("key") is None

    def test_set_returns_false(self, broken_cache: RedisCache) -> None:
        assert broken_cache.set("key", "value") is False

    def test_invalidate_returns_zero(self, broken_cache: RedisCache) -> None:
        assert broken_cache.invalidate_resource("res-1") == 0
        assert broken_cache.invalidate_trending() == 0
