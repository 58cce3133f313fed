"""Ports for reading escrow state and logs from the chain."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from giftsync.domain.model import Gift

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from datetime import datetime

    from giftsync.domain.model import Address, EventType, GiftId, GiftStatus, TokenId


@dataclass(frozen=True, slots=True)
class OnChainGift:
    """Decoded ``getGift(uint256)`` result."""

    gift_id: GiftId
    creator: Address
    expiration_time: datetime
    nft_contract: Address
    token_id: TokenId
    password_hash: bytes
    status: GiftStatus

    def to_gift(self) -> Gift:
        return Gift(
            gift_id=self.gift_id,
            creator=self.creator,
            nft_contract=self.nft_contract,
            token_id=self.token_id,
            expiration_time=self.expiration_time,
            password_hash=self.password_hash,
            status=self.status,
        )


@dataclass(frozen=True, slots=True)
class ChainLog:
    """An escrow log decoded into gift terms, before it becomes a canonical event."""

    event_type: EventType
    gift_id: GiftId
    block_number: int
    log_index: int
    tx_hash: str
    block_timestamp: datetime
    token_id: TokenId | None = None
    payload: Mapping[str, object] = field(default_factory=dict, hash=False)


@dataclass(frozen=True, slots=True)
class TokenTransfer:
    token_id: TokenId
    from_address: Address
    to_address: Address
    block_number: int
    log_index: int
    tx_hash: str


@dataclass(slots=True)
class LogFetchResult:
    """Logs fetched for one inclusive block range, sorted by chain position."""

    from_block: int
    to_block: int
    logs: Sequence[ChainLog] = ()
    transfers: Sequence[TokenTransfer] = ()


@runtime_checkable
class EscrowReader(Protocol):
    """Read-only view of the escrow contract."""

    def get_gift(self, gift_id: GiftId) -> OnChainGift | None:
        """Return the gift or ``None`` when the id has never been assigned."""
        ...

    def gift_counter(self) -> int: ...

    def scan_gifts(
        self,
        gift_ids: Sequence[GiftId],
        *,
        until: Callable[[OnChainGift], bool] | None = None,
        timeout: float | None = None,
    ) -> list[OnChainGift | None]:
        """Read ``gift_ids`` in order, stopping after the first gift ``until`` accepts.

        The whole scan shares one connection and rate limit. Raises
        ``ServiceUnavailableError`` when it does not finish within ``timeout`` seconds.
        """
        ...


@runtime_checkable
class GiftLogFetcher(Protocol):
    """Callable port for retrieving escrow and NFT logs over a block range."""

    def latest_block(self) -> int: ...

    def __call__(self, *, from_block: int, to_block: int) -> LogFetchResult: ...


__all__ = [
    "ChainLog",
    "EscrowReader",
    "GiftLogFetcher",
    "LogFetchResult",
    "OnChainGift",
    "TokenTransfer",
]
