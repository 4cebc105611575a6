"""Application configuration helpers."""

from __future__ import annotations

from .env import require_env_vars
from .errors import (
    ConfigurationError,
    InvalidConfigurationError,
    MissingConfigurationError,
)
from .fipe import FipeConfig, get_fipe_config
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .persistence import PersistenceConfig, get_persistence_config
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "ConfigurationError",
    "DatabaseConfig",
    "FipeConfig",
    "InvalidConfigurationError",
    "MissingConfigurationError",
    "PersistenceConfig",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "configure_logging",
    "get_database_config",
    "get_fipe_config",
    "get_persistence_config",
    "get_storage_config",
    "require_env_vars",
]
