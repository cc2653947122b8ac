"""Application configuration helpers."""

from __future__ import annotations

from .env import env_flag, env_int
from .errors import ConfigurationError
from .logging import configure_logging
from .service import BeetleConfig, get_beetle_config
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "BeetleConfig",
    "ConfigurationError",
    "DatabaseConfig",
    "StorageConfig",
    "configure_logging",
    "env_flag",
    "env_int",
    "get_beetle_config",
    "get_database_config",
    "get_storage_config",
]
