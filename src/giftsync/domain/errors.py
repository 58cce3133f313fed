"""Error taxonomy for gift verification and reconciliation."""

from __future__ import annotations

from giftsync.config.errors import ConfigurationError, MissingConfigurationError


class GiftSyncError(Exception):
    """Base class for domain errors."""


class NotFoundError(GiftSyncError):
    """Raised when a gift or identifier mapping cannot be located."""


class InvalidPasswordError(GiftSyncError):
    """Raised when a supplied password does not match the on-chain commitment."""


class ConsistencyError(GiftSyncError):
    """Raised when two records that must agree do not.

    Covers identifier mapping collisions and divergence between the canonical
    key and a mirror key. Never resolved automatically.
    """

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class ServiceUnavailableError(GiftSyncError):
    """Raised when the primary store or the chain RPC fails after bounded retries."""


class DuplicateEventError(GiftSyncError):
    """Raised by event storage when an event id already exists. Benign."""

    def __init__(self, event_id: str) -> None:
        super().__init__(f"Event {event_id} already recorded")
        self.event_id = event_id


__all__ = [
    "ConfigurationError",
    "ConsistencyError",
    "DuplicateEventError",
    "GiftSyncError",
    "InvalidPasswordError",
    "MissingConfigurationError",
    "NotFoundError",
    "ServiceUnavailableError",
]
