"""Retry, timeout and rate-limit settings for the chain RPC client."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx

from .env import optional_float_env, optional_int_env
from .errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping

RPC_TIMEOUT_SECONDS = 10.0
RPC_RETRIES = 3
RPC_CALLS_PER_SECOND = 10.0


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Transport-level retries (httpx-retries); JSON-RPC error objects are never retried."""

    total: int = RPC_RETRIES
    backoff_factor: float = 0.25
    max_backoff_wait: float = 5.0
    backoff_jitter: float = 1.0
    respect_retry_after_header: bool = True
    # every JSON-RPC call the engine makes is a read, so POST is retried too
    allowed_methods: frozenset[str] = frozenset({"POST"})
    status_forcelist: frozenset[int] = frozenset({429, 500, 502, 503, 504})
    retry_on_exceptions: tuple[type[httpx.HTTPError], ...] = (
        httpx.TimeoutException,
        httpx.NetworkError,
        httpx.RemoteProtocolError,
    )

    def __post_init__(self) -> None:
        if self.total < 0:
            raise ConfigurationError(f"Retry total must be non-negative, got {self.total}")


@dataclass(slots=True, frozen=True)
class RateLimit:
    max_calls: int
    per_seconds: float

    def __post_init__(self) -> None:
        if self.max_calls < 1 or self.per_seconds <= 0:
            raise ConfigurationError(
                f"Rate limit must allow at least one call per positive interval, got "
                f"{self.max_calls}/{self.per_seconds}s"
            )


@dataclass(slots=True, frozen=True)
class ResilienceConfig:
    name: str
    timeout_seconds: float = RPC_TIMEOUT_SECONDS
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    ratelimit: RateLimit | None = None
    headers: Mapping[str, str] = field(default_factory=dict)


def default_rpc_resilience() -> ResilienceConfig:
    return ResilienceConfig(
        name="chain-rpc",
        ratelimit=RateLimit(max_calls=int(RPC_CALLS_PER_SECOND), per_seconds=1.0),
        headers={"Accept": "application/json"},
    )


def get_rpc_resilience() -> ResilienceConfig:
    """Defaults overridable by ``GIFTSYNC_RPC_*``; a rate of 0 disables limiting."""

    calls_per_second = optional_float_env("GIFTSYNC_RPC_RATE_LIMIT", RPC_CALLS_PER_SECOND)
    ratelimit = (
        RateLimit(max_calls=max(int(calls_per_second), 1), per_seconds=1.0)
        if calls_per_second > 0
        else None
    )
    return ResilienceConfig(
        name="chain-rpc",
        timeout_seconds=optional_float_env("GIFTSYNC_RPC_TIMEOUT", RPC_TIMEOUT_SECONDS),
        retry=RetryPolicy(total=optional_int_env("GIFTSYNC_RPC_RETRIES", RPC_RETRIES)),
        ratelimit=ratelimit,
        headers={"Accept": "application/json"},
    )
