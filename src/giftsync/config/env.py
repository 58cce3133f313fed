"""Environment variable loaders for configuration."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from .errors import ConfigurationError, MissingConfigurationError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence


def read_env(name: str) -> str | None:
    """Stripped value of ``name``; unset and blank both read as ``None``."""

    raw = os.getenv(name)
    if raw is None:
        return None
    return raw.strip() or None


def require_env_vars(names: Sequence[str]) -> dict[str, str]:
    values = {name: read_env(name) for name in names}
    missing = [name for name, value in values.items() if value is None]
    if missing:
        raise MissingConfigurationError(missing)
    return {name: value for name, value in values.items() if value is not None}


def _parsed_env[T](name: str, default: T, parse: Callable[[str], T], kind: str) -> T:
    raw = read_env(name)
    if raw is None:
        return default
    try:
        return parse(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be {kind}, got {raw!r}") from exc


def optional_int_env(name: str, default: int) -> int:
    """Integer variable; ``0x`` prefixes are accepted for block numbers."""

    return _parsed_env(name, default, lambda raw: int(raw, 0), "an integer")


def optional_float_env(name: str, default: float) -> float:
    return _parsed_env(name, default, float, "a number")
