"""Canonical events derived from escrow activity."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from eth_utils import keccak

from .primitives import ChainPosition

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

    from .enums import EventSource, EventType
    from .primitives import CampaignId, GiftId, TokenId


def make_event_id(tx_hash: str, log_index: int) -> str:
    """Deduplication key: keccak256 over ``"<txHash lowercased>:<logIndex>"``."""

    material = f"{tx_hash.strip().lower()}:{log_index}".encode()
    return "0x" + keccak(material).hex()


@dataclass(frozen=True, slots=True)
class CanonicalEvent:
    """Immutable ledger entry.

    ``offset`` is assigned by the event store on append and is ``None`` before that.
    """

    event_id: str
    event_type: EventType
    gift_id: GiftId
    campaign_id: CampaignId
    block_number: int
    block_timestamp: datetime
    tx_hash: str
    log_index: int
    processed_at: datetime
    source: EventSource
    token_id: TokenId | None = None
    payload: Mapping[str, object] = field(default_factory=dict, hash=False)
    offset: int | None = None

    @property
    def chain_position(self) -> ChainPosition:
        return ChainPosition(self.block_number, self.log_index)

    def with_offset(self, offset: int) -> CanonicalEvent:
        return replace(self, offset=offset)

    def amount_wei(self) -> int:
        raw = self.payload.get("amount")
        if isinstance(raw, int):
            return raw
        if isinstance(raw, str) and raw.strip():
            return int(raw, 0)
        return 0
