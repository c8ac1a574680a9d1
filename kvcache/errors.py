"""
KV Cache - Core Error Types

Defines the exception hierarchy for the cache layer.
All exceptions inherit from KVCacheError for consistent error handling.

A cache miss is never an exception: backends report it as None.
Errors are reserved for an unreachable or failing backend, so callers can
tell "nothing cached" apart from "cache unavailable".
"""

from typing import Any


class KVCacheError(Exception):
    """Base exception for all kvcache errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for structured logging or API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(KVCacheError):
    """Raised when configuration is invalid or a backend cannot be constructed."""

    pass


class CacheError(KVCacheError):
    """Base exception for cache backend failures."""

    pass


class CacheConnectionError(CacheError):
    """Raised when the cache backend cannot be reached."""

    def __init__(self, backend: str, details: dict[str, Any] | None = None):
        message = f"Failed to connect to cache backend: {backend}"
        super().__init__(message, details)
        self.backend = backend


class CacheOperationError(CacheError):
    """Raised when a cache operation fails on a reachable backend."""

    pass


class CacheSerializationError(CacheError):
    """Raised when a structured value cannot be encoded or decoded."""

    pass
