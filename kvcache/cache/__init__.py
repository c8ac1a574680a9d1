"""
KV Cache — Cache Module

Provides one caching contract with pluggable backends.

- interface.py: Abstract cache interface all backends must implement
- factory.py: Backend selection and named instance registry
- backends/: memory, sqlite, redis and null implementations
- expiry.py / serialization.py: helpers shared by the backends

Usage:
    from kvcache.cache import create_cache

    cache = create_cache()
    await cache.set("key", "value", ttl=3600)
    value = await cache.get("key")
"""

from .factory import (
    close_all_caches,
    create_cache,
    get_cache,
    list_cache_instances,
    reset_cache_factory,
)
from .interface import CacheInterface

__all__ = [
    # Factory functions
    "create_cache",
    "get_cache",
    "close_all_caches",
    "list_cache_instances",
    "reset_cache_factory",
    # Interface
    "CacheInterface",
]
