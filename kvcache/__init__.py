"""
KV Cache — Uniform Key-Value Caching

One async caching contract over interchangeable backends: bounded memory,
durable SQLite, Redis, and an inert null store.
"""

__version__ = "1.0.0"

from .cache import (
    CacheInterface,
    close_all_caches,
    create_cache,
    get_cache,
    list_cache_instances,
    reset_cache_factory,
)
from .errors import (
    CacheConnectionError,
    CacheError,
    CacheOperationError,
    CacheSerializationError,
    ConfigurationError,
    KVCacheError,
)
from .logging_config import configure_logging

__all__ = [
    "CacheInterface",
    "create_cache",
    "get_cache",
    "close_all_caches",
    "list_cache_instances",
    "reset_cache_factory",
    "configure_logging",
    # Errors
    "KVCacheError",
    "ConfigurationError",
    "CacheError",
    "CacheConnectionError",
    "CacheOperationError",
    "CacheSerializationError",
]
