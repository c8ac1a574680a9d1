"""
KV Cache — Cache Factory

Canonical factory for creating cache instances based on configuration.
Application code asks the factory for a cache and only ever sees
CacheInterface, never a concrete backend.

Key points:
- Backend selected with CACHE_BACKEND=memory|sqlite|redis|null
  - Defaults to redis when REDIS_URL is set, memory otherwise
  - null keeps calling code unchanged while caching is disabled
- Redis is imported lazily so the redis package is only needed when used
- All configuration is typed and validated via Pydantic models

Examples:
    from kvcache.cache.factory import create_cache, get_cache

    # Uses env-configured backend (memory by default)
    cache = create_cache()

    # Or explicitly supply a CacheConfig (e.g., for tests)
    from kvcache.config import CacheConfig, CacheBackend
    cfg = CacheConfig(backend=CacheBackend.SQLITE, sqlite_path="/tmp/cache.db")
    db_cache = create_cache(cfg, name="durable")
"""

from __future__ import annotations

import logging

from ..config import CacheBackend, CacheConfig, get_config
from ..errors import ConfigurationError
from .backends.memory import MemoryCacheBackend
from .backends.null import NullCacheBackend
from .backends.sqlite import SQLiteCacheBackend
from .interface import CacheInterface

logger = logging.getLogger(__name__)

# Global cache instances registry
_cache_instances: dict[str, CacheInterface] = {}


def _create_memory_cache(config: CacheConfig) -> CacheInterface:
    return MemoryCacheBackend(
        max_size=config.max_size,
        default_ttl=config.ttl_seconds,
    )


def _create_sqlite_cache(config: CacheConfig) -> CacheInterface:
    return SQLiteCacheBackend(
        db_path=config.sqlite_path,
        table_name=config.sqlite_table,
        hash_table_name=config.sqlite_hash_table,
    )


def _create_redis_cache(config: CacheConfig) -> CacheInterface:
    """Internal helper to construct a redis cache backend with lazy import."""
    if not config.redis_url:
        raise ConfigurationError(
            "REDIS_URL must be set when CACHE_BACKEND=redis",
            details={"env": "REDIS_URL", "backend": "redis"},
        )

    # Lazy import to avoid hard dependency when other backends are used
    try:
        from .backends.redis import RedisCacheBackend
    except ImportError as e:
        logger.error(
            "Redis backend selected but redis client is not installed",
            extra={"package": "redis>=5.0.0", "error": str(e)},
        )
        raise ConfigurationError(
            "Redis backend selected but redis client is unavailable. "
            "Install with: pip install 'redis>=5.0.0' or add to dependencies.",
            details={"package": "redis>=5.0.0", "error": str(e), "backend": "redis"},
        ) from e

    return RedisCacheBackend.from_url(
        redis_url=config.redis_url,
        namespace=config.namespace,
        max_connections=config.redis_max_connections,
        socket_timeout=config.redis_socket_timeout,
    )


def create_cache(
    config: CacheConfig | None = None,
    name: str = "default",
) -> CacheInterface:
    """
    Create a cache backend instance based on configuration.

    Args:
        config: Cache configuration (uses global config if not provided)
        name: Cache instance name (for multiple cache instances)

    Returns:
        Configured cache backend instance

    Raises:
        ConfigurationError: If cache configuration is invalid or backend unavailable
    """
    if name in _cache_instances:
        logger.debug("Returning existing cache instance: %s", name)
        return _cache_instances[name]

    if config is None:
        config = get_config().cache

    backend = CacheBackend(config.backend)
    logger.info(
        "Creating cache instance '%s' with backend: %s",
        name,
        backend.value,
        extra={"cache_name": name, "backend": backend.value},
    )

    try:
        if backend == CacheBackend.MEMORY:
            cache = _create_memory_cache(config)
        elif backend == CacheBackend.SQLITE:
            cache = _create_sqlite_cache(config)
        elif backend == CacheBackend.REDIS:
            cache = _create_redis_cache(config)
        else:
            cache = NullCacheBackend()
    except ConfigurationError:
        raise
    except (ValueError, OSError) as e:
        logger.error(
            "Failed to create cache instance '%s': %s",
            name,
            e,
            extra={"cache_name": name, "backend": backend.value, "error": str(e)},
            exc_info=True,
        )
        raise ConfigurationError(
            f"Failed to create cache instance '{name}': {e}",
            details={"cache_name": name, "backend": backend.value, "error": str(e)},
        ) from e

    _cache_instances[name] = cache
    logger.info(
        "Cache instance '%s' created successfully",
        name,
        extra={"cache_name": name, "backend": backend.value},
    )
    return cache


def get_cache(name: str = "default") -> CacheInterface:
    """
    Get an existing cache instance by name.

    If the instance doesn't exist, it will be created automatically
    using the global configuration.
    """
    if name not in _cache_instances:
        logger.debug("Cache instance '%s' not found, creating new instance", name)
        return create_cache(name=name)

    return _cache_instances[name]


async def close_all_caches() -> None:
    """
    Close all cache instances and release resources.

    Call during graceful shutdown. A failure closing one instance is logged
    and does not stop the others from closing.
    """
    if not _cache_instances:
        logger.debug("No cache instances to close")
        return

    logger.info("Closing %d cache instance(s)...", len(_cache_instances))

    for name, cache in list(_cache_instances.items()):
        try:
            await cache.close()
            logger.info("Closed cache instance: %s", name)
        except Exception as e:
            logger.error(
                "Error closing cache instance '%s': %s",
                name,
                e,
                extra={"cache_name": name, "error": str(e)},
                exc_info=True,
            )

    _cache_instances.clear()
    logger.info("All cache instances closed")


def reset_cache_factory() -> None:
    """
    Reset the cache factory by clearing all instance references.

    Does NOT call close() on instances - use close_all_caches() for proper cleanup.
    Only use this in tests.
    """
    count = len(_cache_instances)
    _cache_instances.clear()
    logger.debug("Reset cache factory, cleared %d instance reference(s)", count)


def list_cache_instances() -> list[str]:
    """List all registered cache instance names."""
    return list(_cache_instances.keys())
