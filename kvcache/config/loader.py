"""
KV Cache — Configuration Loader

Builds the cache configuration from environment variables, optionally
seeded from a .env file. Only variables that are set are passed on, so every
default lives in the pydantic schema. A loaded configuration is kept as the
process-wide instance until reloaded.
"""

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError

from ..errors import ConfigurationError
from .schemas import CacheBackend, KVCacheConfig

logger = logging.getLogger(__name__)

# Environment variable -> KVCacheConfig field
ROOT_ENV_VARS: dict[str, str] = {
    "ENVIRONMENT": "environment",
    "LOG_LEVEL": "log_level",
}

# Environment variable -> CacheConfig field
CACHE_ENV_VARS: dict[str, str] = {
    "CACHE_BACKEND": "backend",
    "CACHE_TTL_SECONDS": "ttl_seconds",
    "CACHE_MAX_SIZE": "max_size",
    "CACHE_NAMESPACE": "namespace",
    "CACHE_SQLITE_PATH": "sqlite_path",
    "CACHE_SQLITE_TABLE": "sqlite_table",
    "CACHE_SQLITE_HASH_TABLE": "sqlite_hash_table",
    "REDIS_URL": "redis_url",
    "REDIS_MAX_CONNECTIONS": "redis_max_connections",
    "REDIS_SOCKET_TIMEOUT": "redis_socket_timeout",
}

_config_instance: KVCacheConfig | None = None


def _read_env_file(env_file: str | None) -> None:
    env_path = Path(env_file) if env_file else Path.cwd() / ".env"
    if not env_path.exists():
        logger.debug(f"No .env file at {env_path}, using environment variables only")
        return

    logger.info(f"Loading environment from {env_path}")
    try:
        load_dotenv(env_path, override=True)
    except (OSError, ValueError) as e:
        raise ConfigurationError(
            f"Failed to load environment file: {e}",
            details={"path": str(env_path), "error": str(e)},
        ) from e


def _pick(environ: Mapping[str, str], names: Mapping[str, str]) -> dict[str, Any]:
    """Collect the non-empty variables in `names`, keyed by field name."""
    return {field: environ[name] for name, field in names.items() if environ.get(name)}


def settings_from_env(environ: Mapping[str, str]) -> dict[str, Any]:
    """
    Map environment variables onto KVCacheConfig keyword arguments.

    Values stay strings; pydantic coerces and validates them. Without an
    explicit CACHE_BACKEND, a configured REDIS_URL selects the redis backend.
    """
    cache = _pick(environ, CACHE_ENV_VARS)
    if "backend" not in cache and "redis_url" in cache:
        cache["backend"] = CacheBackend.REDIS

    settings = _pick(environ, ROOT_ENV_VARS)
    settings["cache"] = cache
    return settings


def load_config(
    env_file: str | None = None,
    reload: bool = False,
) -> KVCacheConfig:
    """
    Load configuration from environment variables and .env file.

    Args:
        env_file: Path to .env file (default: .env in working directory)
        reload: Force reload even if config already loaded

    Returns:
        Validated KVCacheConfig instance

    Raises:
        ConfigurationError: If the .env file cannot be read or a setting is invalid
    """
    global _config_instance

    if _config_instance is not None and not reload:
        return _config_instance

    _read_env_file(env_file)
    settings = settings_from_env(os.environ)

    try:
        config = KVCacheConfig(**settings)
    except ValidationError as e:
        logger.error(
            f"Configuration validation failed: {e}",
            extra={"validation_errors": e.errors(), "cache_settings": sorted(settings["cache"])},
        )
        raise ConfigurationError(
            "Configuration validation failed. Check your cache environment variables.",
            details={"validation_errors": e.errors()},
        ) from e

    _config_instance = config
    logger.info(
        f"Configuration loaded (environment: {config.environment}, cache backend: {config.cache.backend})",
        extra={"environment": config.environment, "cache_backend": config.cache.backend},
    )
    return config


def get_config() -> KVCacheConfig:
    """Return the loaded configuration, loading it on first access."""
    return _config_instance if _config_instance is not None else load_config()


def reload_config(env_file: str | None = None) -> KVCacheConfig:
    """Force a fresh load, e.g. after the environment changed."""
    return load_config(env_file=env_file, reload=True)
