"""
KV Cache — Cache Interface

Defines the abstract interface that all cache backends must implement.

Semantics shared by every backend:
- A missing or expired key reads as None (has() -> False). Never an exception.
- ttl <= 0 means "no expiration"; ttl > 0 is seconds from now.
- Hash fields live under a key, have no TTL of their own, and setting a
  field to None removes it.
- Backend failures raise a CacheError subclass instead of reading as a miss.
"""

from abc import ABC, abstractmethod
from typing import Any


class CacheInterface(ABC):
    """
    Abstract base class for cache backends.

    All cache implementations must implement this interface so that callers
    can swap backends (memory, SQLite, Redis, null) without noticing.
    """

    backend_name: str = "abstract"

    @abstractmethod
    async def has(self, key: str) -> bool:
        """
        Check if a non-expired scalar entry exists.

        Args:
            key: Cache key

        Returns:
            True if key exists and is not expired, False otherwise
        """
        pass

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """
        Retrieve a value from the cache.

        Args:
            key: Cache key

        Returns:
            Cached value if found and not expired, None otherwise
        """
        pass

    @abstractmethod
    async def hash_get(self, key: str, field: str) -> Any | None:
        """
        Retrieve a single field of a hash.

        Args:
            key: Hash key
            field: Field name

        Returns:
            Field value, or None if the key or the field is missing
        """
        pass

    @abstractmethod
    async def get_object(self, key: str) -> Any | None:
        """
        Retrieve a structured value stored with set_object().

        Non-primitive values (datetimes, sets, nested containers) come back
        as the same types they were stored with.

        Args:
            key: Cache key

        Returns:
            Decoded value, or None if missing or expired
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int = 0) -> None:
        """
        Store a value in the cache, overwriting any previous value.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Time-to-live in seconds (0 or negative = no expiry)
        """
        pass

    @abstractmethod
    async def set_object(self, key: str, value: Any, ttl: int = 0) -> None:
        """
        Store a structured value so it survives any serialization boundary.

        Args:
            key: Cache key
            value: Structured value to cache
            ttl: Time-to-live in seconds (0 or negative = no expiry)
        """
        pass

    @abstractmethod
    async def hash_set(self, key: str, field: str, value: Any | None) -> None:
        """
        Set or remove a single field of a hash.

        Args:
            key: Hash key
            field: Field name
            value: New value, or None to delete the field
        """
        pass

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """
        Delete scalar keys from the cache.

        Deleting zero keys is a no-op that returns 0.

        Args:
            *keys: Cache keys to delete

        Returns:
            Number of keys actually removed
        """
        pass

    @abstractmethod
    async def keys(self, pattern: str | None = None) -> list[str]:
        """
        List live keys.

        Args:
            pattern: Optional glob pattern (*, ?, [...]); None matches all keys

        Returns:
            All matching keys (no pagination)
        """
        pass

    @abstractmethod
    async def size(self, pattern: str | None = None) -> int:
        """
        Count live entries.

        Args:
            pattern: Optional glob pattern; None counts all entries

        Returns:
            Number of matching entries
        """
        pass

    @abstractmethod
    async def get_stats(self) -> dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache statistics (backend, hits, misses, size, etc.)
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """
        Close the cache backend and release resources.

        Should be called during graceful shutdown.
        """
        pass

    async def hash_delete_fields(self, key: str, *fields: str) -> None:
        """
        Remove several fields of a hash.

        Default implementation calls hash_set(key, field, None) per field.
        Backends can override for better performance.

        Args:
            key: Hash key
            *fields: Field names to remove
        """
        for field in fields:
            await self.hash_set(key, field, None)


def require_key(key: str, what: str = "key") -> None:
    """Reject empty keys and fields; they are a caller contract violation."""
    if not isinstance(key, str) or not key:
        raise ValueError(f"Cache {what} must be a non-empty string, got {key!r}")
