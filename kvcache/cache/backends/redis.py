"""
KV Cache — Redis Cache Backend

Asynchronous Redis cache implementation with:
- JSON values for set()/get(), tagged structured values for set_object()/get_object()
- Native per-key TTL (EX seconds) and native hashes
- Optional namespace prefixing for shared databases
- Separate key-spaces for scalars ("v:<key>") and hash groups ("h:<key>")
- SCAN-based key enumeration (never the blocking KEYS command)

Requires: redis>=5.0 with asyncio support

Example:
    cache = RedisCacheBackend.from_url("redis://localhost:6379", namespace="app")
    await cache.set("greeting", {"msg": "hello"}, ttl=60)
    val = await cache.get("greeting")
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from ...errors import CacheConnectionError, CacheOperationError, CacheSerializationError
from .. import serialization
from ..expiry import normalize_ttl
from ..interface import CacheInterface, require_key

logger = logging.getLogger(__name__)

_SCALAR_SPACE = "v"
_HASH_SPACE = "h"

try:
    # redis-py asyncio client (v4.2+)
    from redis.asyncio import Redis
    from redis.exceptions import ConnectionError as RedisConnectionError
    from redis.exceptions import RedisError
    from redis.exceptions import TimeoutError as RedisTimeoutError
except ImportError as e:  # pragma: no cover
    raise ImportError(
        "Redis async client is required but not installed. "
        "Install with: pip install 'redis>=5.0.0' or add 'redis' to your dependencies."
    ) from e


class RedisCacheBackend(CacheInterface):
    """
    Redis cache backend over an injected client.

    Notes:
    - The client must be created with decode_responses=True.
    - TTL > 0 is passed through as EX seconds; TTL <= 0 sets no expiry.
    - Scalar keys and hash groups are stored under different prefixes, so
      the same key can hold both and keys()/size() only see scalars.
    - hash_set(key, field, None) removes the field with HDEL.
    - Connection and timeout failures raise CacheConnectionError; any other
      Redis failure raises CacheOperationError. Nothing is retried here.
    """

    backend_name = "redis"

    def __init__(self, client: Redis, namespace: str | None = None, owns_client: bool = False) -> None:
        """
        Initialize Redis cache backend.

        Args:
            client: Configured redis.asyncio client (decode_responses=True)
            namespace: Optional prefix for all keys (e.g., "app" -> "app:v:<key>")
            owns_client: Close the client in close(); set by from_url()
        """
        self._client = client
        self.namespace = namespace.strip() if namespace and namespace.strip() else None
        self._owns_client = owns_client

        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0

    @classmethod
    def from_url(
        cls,
        redis_url: str,
        namespace: str | None = None,
        max_connections: int = 10,
        socket_timeout: int = 5,
    ) -> RedisCacheBackend:
        """
        Build a backend that owns its own client.

        Args:
            redis_url: Connection URL, e.g., redis://localhost:6379/0 or rediss:// for TLS
            namespace: Optional key prefix
            max_connections: Connection pool size
            socket_timeout: Socket timeout in seconds
        """
        if not redis_url:
            raise ValueError("redis_url is required")

        # Lazy connection; connects on first command
        client = Redis.from_url(  # type: ignore[call-overload]
            url=redis_url,
            decode_responses=True,
            max_connections=max_connections,
            socket_timeout=socket_timeout,
        )
        return cls(client, namespace=namespace, owns_client=True)

    # ------------ Helpers ------------

    def _prefix(self, space: str) -> str:
        return f"{self.namespace}:{space}:" if self.namespace else f"{space}:"

    def _make_key(self, key: str) -> str:
        """Create namespaced scalar key."""
        return self._prefix(_SCALAR_SPACE) + key

    def _make_hash_key(self, key: str) -> str:
        """Create namespaced hash group key."""
        return self._prefix(_HASH_SPACE) + key

    def _strip_key(self, ns_key: str) -> str:
        return ns_key[len(self._prefix(_SCALAR_SPACE)) :]

    @staticmethod
    def _to_json(value: Any) -> str:
        """Serialize value to JSON string."""
        try:
            return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            raise CacheSerializationError(
                f"Value of type {type(value).__name__} is not JSON serializable; use set_object()",
                details={"value_type": type(value).__name__, "error": str(e)},
            ) from e

    @staticmethod
    def _from_json(data: str | None) -> Any | None:
        """Deserialize JSON text, returning non-JSON text unchanged."""
        if data is None:
            return None
        try:
            return json.loads(data)
        except ValueError:
            # Written by another client; hand it back as stored
            return data

    @contextmanager
    def _command(self, operation: str, key: str | None = None) -> Iterator[None]:
        """Translate Redis client failures into cache errors."""
        try:
            yield
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.error(
                f"Redis unreachable during {operation}: {e}",
                extra={"operation": operation, "key": key, "namespace": self.namespace, "error": str(e)},
                exc_info=True,
            )
            raise CacheConnectionError(
                "redis",
                details={"operation": operation, "key": key, "error": str(e)},
            ) from e
        except RedisError as e:
            logger.error(
                f"Redis {operation} failed for key '{key}': {e}",
                extra={"operation": operation, "key": key, "namespace": self.namespace, "error": str(e)},
                exc_info=True,
            )
            raise CacheOperationError(
                f"Redis {operation} failed: {e}",
                details={"operation": operation, "key": key, "error": str(e)},
            ) from e

    # ------------ Core Interface ------------

    async def has(self, key: str) -> bool:
        require_key(key)
        with self._command("exists", key):
            return bool(await self._client.exists(self._make_key(key)))

    async def get(self, key: str) -> Any | None:
        """Retrieve a value by key."""
        require_key(key)
        with self._command("get", key):
            data = await self._client.get(self._make_key(key))

        if data is None:
            self._misses += 1
            return None

        self._hits += 1
        return self._from_json(data)

    async def hash_get(self, key: str, field: str) -> Any | None:
        require_key(key)
        require_key(field, "field")
        with self._command("hget", key):
            value = await self._client.hget(self._make_hash_key(key), field)

        if value is None:
            self._misses += 1
        else:
            self._hits += 1
        return value

    async def get_object(self, key: str) -> Any | None:
        """Retrieve a structured value, whichever encoding it was stored with."""
        require_key(key)
        with self._command("get", key):
            data = await self._client.get(self._make_key(key))

        if data is None:
            self._misses += 1
            return None

        self._hits += 1
        return serialization.decode_stored(data)

    async def set(self, key: str, value: Any, ttl: int = 0) -> None:
        """Store a JSON value with optional TTL."""
        require_key(key)
        await self._write(key, self._to_json(value), ttl)

    async def set_object(self, key: str, value: Any, ttl: int = 0) -> None:
        """Store a structured value with optional TTL."""
        require_key(key)
        await self._write(key, serialization.dumps(value), ttl)

    async def _write(self, key: str, payload: str, ttl: int) -> None:
        with self._command("set", key):
            await self._client.set(name=self._make_key(key), value=payload, ex=normalize_ttl(ttl))
        self._sets += 1

    async def hash_set(self, key: str, field: str, value: Any | None) -> None:
        require_key(key)
        require_key(field, "field")
        ns_key = self._make_hash_key(key)

        if value is None:
            with self._command("hdel", key):
                await self._client.hdel(ns_key, field)
            return

        with self._command("hset", key):
            await self._client.hset(ns_key, field, value)

    async def hash_delete_fields(self, key: str, *fields: str) -> None:
        require_key(key)
        if not fields:
            return
        with self._command("hdel", key):
            await self._client.hdel(self._make_hash_key(key), *fields)

    async def delete(self, *keys: str) -> int:
        """Delete scalar keys with a single DEL; returns the count Redis reports."""
        if not keys:
            return 0

        with self._command("delete"):
            deleted = int(await self._client.delete(*(self._make_key(k) for k in keys)))

        self._deletes += deleted
        return deleted

    async def keys(self, pattern: str | None = None) -> list[str]:
        match = self._make_key(pattern or "*")
        with self._command("scan"):
            # SCAN may return a key more than once; keep first occurrence
            found = dict.fromkeys([k async for k in self._client.scan_iter(match=match, count=1000)])
        return [self._strip_key(k) for k in found]

    async def size(self, pattern: str | None = None) -> int:
        # DBSIZE would also count hash groups and foreign keys
        return len(await self.keys(pattern))

    async def get_stats(self) -> dict[str, Any]:
        """Return cache statistics and basic connectivity."""
        total_requests = self._hits + self._misses
        stats: dict[str, Any] = {
            "backend": self.backend_name,
            "namespace": self.namespace,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round((self._hits / total_requests) * 100, 2) if total_requests else 0.0,
            "sets": self._sets,
            "deletes": self._deletes,
            "connected": False,
        }

        try:
            stats["connected"] = bool(await self._client.ping())
        except RedisError as e:
            # Stats are diagnostic; report the outage instead of raising
            logger.warning(f"Redis PING failed while collecting stats: {e}", extra={"error": str(e)})

        return stats

    async def close(self) -> None:
        """Close the Redis client if this backend created it."""
        if not self._owns_client:
            return

        try:
            await self._client.aclose()
            logger.info(f"Closed Redis cache backend (namespace: {self.namespace})")
        except RedisError as e:
            logger.error(
                f"Error closing Redis client: {e}", extra={"namespace": self.namespace, "error": str(e)}, exc_info=True
            )
        finally:
            try:
                await self._client.connection_pool.disconnect()
            except RedisError as e:
                logger.warning(f"Error disconnecting Redis connection pool: {e}", extra={"error": str(e)})
