"""Domain primitives: scalar aliases + small value objects."""

from __future__ import annotations

from dataclasses import dataclass

from eth_utils import is_address, to_checksum_address

type GiftId = int
type TokenId = int
type CampaignId = str
type Address = str

ZERO_ADDRESS: Address = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True, order=True, slots=True)
class ChainPosition:
    """Position of a log within the chain; orders events independent of ingestion."""

    block_number: int
    log_index: int


def normalize_address(value: str) -> Address:
    """Return the EIP-55 checksum form of ``value`` or raise ``ValueError``."""

    if not is_address(value):
        raise ValueError(f"Invalid address: {value!r}")
    return to_checksum_address(value)


def same_address(left: str | None, right: str | None) -> bool:
    if left is None or right is None:
        return left is right
    return left.lower() == right.lower()


def campaign_for(*, creator: str | None, gift_id: GiftId) -> CampaignId:
    """Derive the campaign a gift's analytics roll up into."""

    if creator and not same_address(creator, ZERO_ADDRESS):
        return f"campaign_{creator.lower()[:10]}"
    return f"campaign_gift_{gift_id}"
