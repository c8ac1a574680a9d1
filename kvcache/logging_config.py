"""
KV Cache — Logging Setup

Library modules only create loggers (logging.getLogger(__name__)); handlers
are the application's business. configure_logging() is a convenience for
applications and scripts that want the same console format everywhere.
"""

import logging

from .config import LogLevel, get_config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | LogLevel | None = None) -> logging.Logger:
    """
    Configure root logging for kvcache.

    Args:
        level: Log level name; defaults to KVCacheConfig.log_level (LOG_LEVEL env)

    Returns:
        The "kvcache" package logger
    """
    if level is None:
        level = get_config().log_level
    level_name = level.value if isinstance(level, LogLevel) else str(level).upper()

    logging.basicConfig(level=level_name, format=LOG_FORMAT)

    logger = logging.getLogger("kvcache")
    logger.setLevel(level_name)
    logger.debug("Logging configured at %s", level_name)
    return logger
