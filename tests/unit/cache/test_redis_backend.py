"""
KV Cache — Redis Cache Backend Tests

Runs against fakeredis, so no Redis server is needed.
Tests TTL pass-through, namespace handling, shape-sniffing get_object(),
hash field deletion and error translation.
"""

from collections.abc import AsyncGenerator
from datetime import UTC, date, datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import fakeredis
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from kvcache.cache import serialization
from kvcache.cache.backends.redis import RedisCacheBackend
from kvcache.errors import CacheConnectionError, CacheOperationError, CacheSerializationError


class TestRedisCacheBackend:
    """Test suite for RedisCacheBackend."""

    @pytest.fixture
    async def cache(self, fake_redis: fakeredis.FakeAsyncRedis) -> AsyncGenerator[RedisCacheBackend, None]:
        cache = RedisCacheBackend(fake_redis)
        yield cache
        await cache.close()

    async def test_set_and_get(self, cache: RedisCacheBackend) -> None:
        await cache.set("key1", "value1")

        assert await cache.get("key1") == "value1"
        assert await cache.has("key1") is True

        stats = await cache.get_stats()
        assert stats["backend"] == "redis"
        assert stats["hits"] == 1
        assert stats["connected"] is True

    async def test_get_nonexistent_key(self, cache: RedisCacheBackend) -> None:
        assert await cache.get("nonexistent") is None
        assert await cache.has("nonexistent") is False

        stats = await cache.get_stats()
        assert stats["misses"] == 1

    async def test_set_with_various_types(self, cache: RedisCacheBackend, sample_cache_data: dict[str, Any]) -> None:
        for key, value in sample_cache_data.items():
            await cache.set(key, value)

        for key, expected_value in sample_cache_data.items():
            assert await cache.get(key) == expected_value

    async def test_ttl_passed_as_ex_seconds(self, cache: RedisCacheBackend, fake_redis: fakeredis.FakeAsyncRedis) -> None:
        await cache.set("key1", "value1", ttl=60)

        remaining = await fake_redis.ttl("v:key1")
        assert 0 < remaining <= 60

    async def test_fractional_ttl_still_expires(
        self, cache: RedisCacheBackend, fake_redis: fakeredis.FakeAsyncRedis
    ) -> None:
        await cache.set("key1", "value1", ttl=0.5)

        assert await fake_redis.ttl("v:key1") == 1

    @pytest.mark.parametrize("ttl", [0, -1])
    async def test_non_positive_ttl_sets_no_expiry(
        self, cache: RedisCacheBackend, fake_redis: fakeredis.FakeAsyncRedis, ttl: int
    ) -> None:
        await cache.set("key1", "value1", ttl=ttl)

        assert await fake_redis.ttl("v:key1") == -1

    async def test_non_json_value_requires_set_object(self, cache: RedisCacheBackend) -> None:
        with pytest.raises(CacheSerializationError):
            await cache.set("key1", {"when": datetime(2024, 1, 1)})

    async def test_get_returns_raw_text_from_other_clients(
        self, cache: RedisCacheBackend, fake_redis: fakeredis.FakeAsyncRedis
    ) -> None:
        await fake_redis.set("v:legacy", "plain text, not JSON")

        assert await cache.get("legacy") == "plain text, not JSON"

    async def test_object_round_trip(self, cache: RedisCacheBackend) -> None:
        value = {
            "created": datetime(2024, 5, 1, 12, 30, tzinfo=UTC),
            "day": date(2024, 5, 1),
            "nested": {"ids": {1, 2, 3}, "pair": ("a", "b")},
        }
        await cache.set_object("obj", value, ttl=60)

        assert await cache.get_object("obj") == value

    async def test_get_object_accepts_plain_string(
        self, cache: RedisCacheBackend, fake_redis: fakeredis.FakeAsyncRedis
    ) -> None:
        await fake_redis.set("v:legacy", "just a string")

        assert await cache.get_object("legacy") == "just a string"

    async def test_get_object_accepts_plain_json(self, cache: RedisCacheBackend) -> None:
        await cache.set("plain", {"a": [1, 2]})

        assert await cache.get_object("plain") == {"a": [1, 2]}

    async def test_get_object_accepts_envelope_stored_with_set(self, cache: RedisCacheBackend) -> None:
        value = {"at": datetime(2023, 1, 2, 3, 4, 5, tzinfo=UTC)}
        await cache.set("wrapped", serialization.dumps(value))

        assert await cache.get_object("wrapped") == value

    async def test_get_object_rejects_malformed_envelope(
        self, cache: RedisCacheBackend, fake_redis: fakeredis.FakeAsyncRedis
    ) -> None:
        await fake_redis.set("v:bad", '{"json":"x","meta":{"values":{"":"NoSuchType"}}}')

        with pytest.raises(CacheSerializationError):
            await cache.get_object("bad")

    async def test_get_object_missing(self, cache: RedisCacheBackend) -> None:
        assert await cache.get_object("nothing") is None

    async def test_hash_round_trip(self, cache: RedisCacheBackend, fake_redis: fakeredis.FakeAsyncRedis) -> None:
        await cache.hash_set("user:1", "name", "Alice")
        assert await cache.hash_get("user:1", "name") == "Alice"

        await cache.hash_set("user:1", "name", None)
        assert await cache.hash_get("user:1", "name") is None
        assert not await fake_redis.hexists("h:user:1", "name")

    async def test_hash_delete_fields(self, cache: RedisCacheBackend) -> None:
        for field in ("a", "b", "c"):
            await cache.hash_set("h", field, field.upper())

        await cache.hash_delete_fields("h", "a", "c")

        assert await cache.hash_get("h", "a") is None
        assert await cache.hash_get("h", "b") == "B"

    async def test_delete(self, cache: RedisCacheBackend) -> None:
        await cache.set("k1", "v1")

        assert await cache.delete("k1", "k2") == 1
        assert await cache.delete() == 0
        assert await cache.has("k1") is False

    async def test_keys_and_size(self, cache: RedisCacheBackend) -> None:
        await cache.set("user:1", "a")
        await cache.set("user:2", "b")
        await cache.set("post:1", "c")

        assert sorted(await cache.keys()) == ["post:1", "user:1", "user:2"]
        assert sorted(await cache.keys("user:*")) == ["user:1", "user:2"]
        assert await cache.size() == 3
        assert await cache.size("post:*") == 1

    async def test_namespace_prefixes_keys(self, fake_redis: fakeredis.FakeAsyncRedis) -> None:
        cache = RedisCacheBackend(fake_redis, namespace="app")
        other = RedisCacheBackend(fake_redis, namespace="other")

        await cache.set("key1", "value1")
        await other.set("key1", "value2")
        await cache.hash_set("h", "f", "v")

        assert await fake_redis.exists("app:v:key1") == 1
        assert await cache.get("key1") == "value1"
        assert await other.get("key1") == "value2"
        assert await fake_redis.hget("app:h:h", "f") == "v"
        assert await cache.keys() == ["key1"]
        assert await cache.size() == 1
        assert await other.size() == 1

    async def test_hash_only_key_is_not_a_scalar(self, cache: RedisCacheBackend) -> None:
        await cache.hash_set("only_hash", "f", "v")

        assert await cache.has("only_hash") is False
        assert await cache.get("only_hash") is None
        assert await cache.keys() == []
        assert await cache.size() == 0
        assert await cache.delete("only_hash") == 0
        assert await cache.hash_get("only_hash", "f") == "v"

    async def test_scalar_and_hash_share_a_key(self, cache: RedisCacheBackend) -> None:
        await cache.set("shared", "scalar")
        await cache.hash_set("shared", "f", "v")

        assert await cache.get("shared") == "scalar"
        assert await cache.hash_get("shared", "f") == "v"

        assert await cache.delete("shared") == 1
        assert await cache.hash_get("shared", "f") == "v"

    async def test_connection_failure_is_not_a_miss(self) -> None:
        client = MagicMock()
        client.get = AsyncMock(side_effect=RedisConnectionError("Connection refused"))
        cache = RedisCacheBackend(client)

        with pytest.raises(CacheConnectionError) as exc_info:
            await cache.get("key1")

        assert exc_info.value.backend == "redis"
        assert isinstance(exc_info.value.__cause__, RedisConnectionError)

    async def test_command_failure_raises_operation_error(self) -> None:
        client = MagicMock()
        client.hget = AsyncMock(side_effect=ResponseError("WRONGTYPE Operation against a key"))
        cache = RedisCacheBackend(client)

        with pytest.raises(CacheOperationError):
            await cache.hash_get("key1", "field")

    async def test_close_leaves_injected_client_open(
        self, cache: RedisCacheBackend, fake_redis: fakeredis.FakeAsyncRedis
    ) -> None:
        await cache.close()

        assert await fake_redis.ping() is True

    async def test_from_url_requires_url(self) -> None:
        with pytest.raises(ValueError):
            RedisCacheBackend.from_url("")
