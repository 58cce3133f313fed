"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import IntEnum, StrEnum


class GiftStatus(StrEnum):
    ACTIVE = "active"
    CLAIMED = "claimed"
    RETURNED = "returned"

    @classmethod
    def from_chain(cls, code: int) -> GiftStatus:
        """Translate the escrow contract's ``uint8`` status code."""

        try:
            return _STATUS_BY_CODE[ChainStatusCode(code)]
        except ValueError as exc:
            raise ValueError(f"Unknown escrow status code: {code}") from exc


class ChainStatusCode(IntEnum):
    ACTIVE = 0
    CLAIMED = 1
    RETURNED = 2


_STATUS_BY_CODE = {
    ChainStatusCode.ACTIVE: GiftStatus.ACTIVE,
    ChainStatusCode.CLAIMED: GiftStatus.CLAIMED,
    ChainStatusCode.RETURNED: GiftStatus.RETURNED,
}


class EventType(StrEnum):
    GIFT_CREATED = "GiftCreated"
    GIFT_CLAIMED = "GiftClaimed"
    GIFT_RETURNED = "GiftReturned"
    GIFT_EXPIRED = "GiftExpired"
    GIFT_VIEWED = "GiftViewed"
    GIFT_VALUED = "GiftValued"


class EventSource(StrEnum):
    RECONCILIATION = "reconciliation"
    REALTIME = "realtime"
    MANUAL = "manual"


class TrackedStatus(StrEnum):
    """Per-gift status as tracked by campaign roll-ups.

    ``EXPIRED`` is an analytics state only; the escrow itself never stores it.
    """

    ACTIVE = "active"
    EXPIRED = "expired"
    CLAIMED = "claimed"
    RETURNED = "returned"

    @property
    def rank(self) -> int:
        return _TRACKED_RANK[self]


_TRACKED_RANK = {
    TrackedStatus.ACTIVE: 0,
    TrackedStatus.EXPIRED: 1,
    TrackedStatus.CLAIMED: 2,
    TrackedStatus.RETURNED: 2,
}
