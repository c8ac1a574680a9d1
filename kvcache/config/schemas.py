"""
KV Cache — Configuration Schemas

Defines typed configuration models using Pydantic for validation and type safety.
All configuration is validated when it is loaded.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Environment(str, Enum):
    """Runtime environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class CacheBackend(str, Enum):
    """Supported cache backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"
    REDIS = "redis"
    NULL = "null"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class CacheConfig(BaseModel):
    """Cache configuration."""

    backend: CacheBackend = Field(default=CacheBackend.MEMORY, description="Cache backend to use")
    ttl_seconds: int = Field(
        default=4 * 60 * 60,
        ge=1,
        description="Upper bound on entry lifetime in seconds (memory backend)",
    )
    max_size: int = Field(default=1000, ge=1, description="Max cache entries (memory backend)")
    namespace: str | None = Field(default=None, description="Key prefix (redis backend)")

    # SQLite-specific settings (only used when backend=sqlite)
    sqlite_path: str = Field(default="./data/cache.db", description="SQLite database file")
    sqlite_table: str = Field(default="kv_entries", description="Table for scalar entries")
    sqlite_hash_table: str = Field(default="kv_hash_entries", description="Table for hash fields")

    # Redis-specific settings (only used when backend=redis)
    redis_url: str | None = Field(default=None, validate_default=True, description="Redis connection URL")
    redis_max_connections: int = Field(default=10, ge=1, description="Redis connection pool size")
    redis_socket_timeout: int = Field(default=5, ge=1, description="Redis socket timeout in seconds")

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: str | None, info: Any) -> str | None:
        """Ensure redis_url is provided when backend is redis."""
        backend = info.data.get("backend")
        if backend == CacheBackend.REDIS and not v:
            raise ValueError("redis_url is required when cache backend is 'redis'")
        return v

    @field_validator("sqlite_table", "sqlite_hash_table")
    @classmethod
    def validate_table_name(cls, v: str) -> str:
        """Table names end up in DDL, so keep them to identifier characters."""
        if not v.replace("_", "").isalnum():
            raise ValueError(f"invalid table name: {v!r}")
        return v


class KVCacheConfig(BaseModel):
    """Root configuration for kvcache."""

    environment: Environment = Field(default=Environment.DEVELOPMENT, description="Runtime environment")
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")

    cache: CacheConfig = Field(default_factory=CacheConfig)

    model_config = ConfigDict(use_enum_values=True, validate_assignment=True)
