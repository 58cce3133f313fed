"""The gift record keyed by its canonical escrow ``giftId``."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .enums import GiftStatus

if TYPE_CHECKING:
    from datetime import datetime

    from .primitives import Address, GiftId, TokenId

_FORWARD_TRANSITIONS: dict[GiftStatus, frozenset[GiftStatus]] = {
    GiftStatus.ACTIVE: frozenset({GiftStatus.CLAIMED, GiftStatus.RETURNED}),
    GiftStatus.CLAIMED: frozenset(),
    GiftStatus.RETURNED: frozenset(),
}


class InvalidTransitionError(ValueError):
    """Raised when a gift status would move backwards or sideways."""


@dataclass(slots=True)
class Gift:
    gift_id: GiftId
    creator: Address
    nft_contract: Address
    token_id: TokenId
    expiration_time: datetime
    password_hash: bytes
    status: GiftStatus = GiftStatus.ACTIVE
    claimer: Address | None = None

    def __post_init__(self) -> None:
        if len(self.password_hash) != 32:
            raise ValueError("password_hash must be exactly 32 bytes")

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expiration_time

    def advance(self, status: GiftStatus, *, claimer: Address | None = None) -> bool:
        """Move to ``status`` if it is a forward transition.

        Returns ``False`` when the gift is already in ``status`` (replays are no-ops).
        """

        if status == self.status:
            return False
        if status not in _FORWARD_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Gift {self.gift_id} cannot move from {self.status} to {status}"
            )
        self.status = status
        if status is GiftStatus.CLAIMED:
            self.claimer = claimer
        return True
