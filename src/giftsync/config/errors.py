"""Errors raised while loading giftsync configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable


class ConfigurationError(RuntimeError):
    """A configuration value is present but unusable."""


class MissingConfigurationError(ConfigurationError):
    """Required environment variables are unset or blank; ``names`` lists them."""

    def __init__(self, names: Iterable[str]) -> None:
        self.names = tuple(sorted(names))
        super().__init__(f"Missing configuration for: {', '.join(self.names)}")
