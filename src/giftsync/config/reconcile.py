"""Tuning defaults for identifier resolution and reconciliation."""

from __future__ import annotations

from dataclasses import dataclass

from .env import optional_float_env, optional_int_env
from .errors import ConfigurationError

DEFAULT_MAX_SCAN_DEPTH = 100
DEFAULT_SCAN_TIMEOUT_SECONDS = 8.0
DEFAULT_MISS_TTL_SECONDS = 30.0
DEFAULT_BLOCK_WINDOW = 2000
DEFAULT_CONFIRMATIONS = 3
DEFAULT_REWIND_BLOCKS = 12


@dataclass(frozen=True, slots=True)
class ResolverConfig:
    max_scan_depth: int = DEFAULT_MAX_SCAN_DEPTH
    scan_timeout_seconds: float = DEFAULT_SCAN_TIMEOUT_SECONDS
    miss_ttl_seconds: float = DEFAULT_MISS_TTL_SECONDS

    def __post_init__(self) -> None:
        if self.max_scan_depth < 1:
            raise ConfigurationError("max_scan_depth must be at least 1")
        if self.scan_timeout_seconds <= 0:
            raise ConfigurationError("scan_timeout_seconds must be positive")


@dataclass(frozen=True, slots=True)
class ReconcileConfig:
    block_window: int = DEFAULT_BLOCK_WINDOW
    confirmations: int = DEFAULT_CONFIRMATIONS
    rewind_blocks: int = DEFAULT_REWIND_BLOCKS

    def __post_init__(self) -> None:
        if self.block_window < 1:
            raise ConfigurationError("block_window must be at least 1")
        if self.confirmations < 0 or self.rewind_blocks < 0:
            raise ConfigurationError("confirmations and rewind_blocks must be non-negative")


def get_resolver_config() -> ResolverConfig:
    return ResolverConfig(
        max_scan_depth=optional_int_env("GIFTSYNC_MAX_SCAN_DEPTH", DEFAULT_MAX_SCAN_DEPTH),
        scan_timeout_seconds=optional_float_env(
            "GIFTSYNC_SCAN_TIMEOUT", DEFAULT_SCAN_TIMEOUT_SECONDS
        ),
    )


def get_reconcile_config() -> ReconcileConfig:
    return ReconcileConfig(
        block_window=optional_int_env("GIFTSYNC_BLOCK_WINDOW", DEFAULT_BLOCK_WINDOW),
        confirmations=optional_int_env("GIFTSYNC_CONFIRMATIONS", DEFAULT_CONFIRMATIONS),
    )
