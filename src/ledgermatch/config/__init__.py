"""Application configuration helpers."""

from __future__ import annotations

from .env import optional_env, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryablePayloadError, RetryPolicy
from .logging import configure_logging
from .rpc import SEPOLIA_TOKENS, RpcConfig, TokenInfo, get_rpc_config
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "SEPOLIA_TOKENS",
    "ConfigurationError",
    "DatabaseConfig",
    "MissingConfigurationError",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "RetryablePayloadError",
    "RpcConfig",
    "StorageConfig",
    "TokenInfo",
    "configure_logging",
    "get_database_config",
    "get_rpc_config",
    "get_storage_config",
    "optional_env",
    "require_env_vars",
]
