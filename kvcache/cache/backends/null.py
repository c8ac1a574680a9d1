"""
KV Cache — Null Cache Backend

Inert backend for deployments where caching is disabled but calling code
still expects a cache: writes are discarded, reads always miss.
"""

import logging
from typing import Any

from ..interface import CacheInterface

logger = logging.getLogger(__name__)


class NullCacheBackend(CacheInterface):
    """Cache backend that stores nothing."""

    backend_name = "null"

    async def has(self, key: str) -> bool:
        return False

    async def get(self, key: str) -> Any | None:
        return None

    async def hash_get(self, key: str, field: str) -> Any | None:
        return None

    async def get_object(self, key: str) -> Any | None:
        return None

    async def set(self, key: str, value: Any, ttl: int = 0) -> None:
        return None

    async def set_object(self, key: str, value: Any, ttl: int = 0) -> None:
        return None

    async def hash_set(self, key: str, field: str, value: Any | None) -> None:
        return None

    async def hash_delete_fields(self, key: str, *fields: str) -> None:
        return None

    async def delete(self, *keys: str) -> int:
        return 0

    async def keys(self, pattern: str | None = None) -> list[str]:
        return []

    async def size(self, pattern: str | None = None) -> int:
        return 0

    async def get_stats(self) -> dict[str, Any]:
        return {"backend": self.backend_name, "size": 0, "hits": 0, "misses": 0, "sets": 0, "deletes": 0}

    async def close(self) -> None:
        logger.debug("Null cache backend closed")
