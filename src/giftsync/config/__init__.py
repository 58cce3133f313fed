"""Application configuration helpers."""

from __future__ import annotations

from .chain import BASE_SEPOLIA_CHAIN_ID, ChainConfig, get_chain_config
from .env import require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy, get_rpc_resilience
from .logging import configure_logging
from .reconcile import ReconcileConfig, ResolverConfig, get_reconcile_config, get_resolver_config
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "BASE_SEPOLIA_CHAIN_ID",
    "ChainConfig",
    "ConfigurationError",
    "DatabaseConfig",
    "MissingConfigurationError",
    "RateLimit",
    "ReconcileConfig",
    "ResilienceConfig",
    "ResolverConfig",
    "RetryPolicy",
    "StorageConfig",
    "configure_logging",
    "get_chain_config",
    "get_database_config",
    "get_reconcile_config",
    "get_resolver_config",
    "get_rpc_resilience",
    "get_storage_config",
    "require_env_vars",
]
