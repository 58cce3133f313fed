"""Per-campaign roll-up aggregates derived from the canonical event log."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .enums import EventType, TrackedStatus
from .primitives import ChainPosition

if TYPE_CHECKING:
    from .event import CanonicalEvent
    from .primitives import CampaignId, GiftId

_STATUS_BY_EVENT: dict[EventType, TrackedStatus] = {
    EventType.GIFT_CREATED: TrackedStatus.ACTIVE,
    EventType.GIFT_EXPIRED: TrackedStatus.EXPIRED,
    EventType.GIFT_CLAIMED: TrackedStatus.CLAIMED,
    EventType.GIFT_RETURNED: TrackedStatus.RETURNED,
}


@dataclass(frozen=True, slots=True)
class GiftStatusState:
    status: TrackedStatus
    position: ChainPosition

    def supersedes(self, other: GiftStatusState) -> bool:
        """Whether this state wins over ``other`` regardless of which arrived first.

        Statuses only move forward, so a higher rank always wins. Between two states of
        the same rank the one earlier in the chain wins, which is exactly what applying
        both in ``(blockNumber, logIndex)`` order with forward-only transitions yields.
        """

        if self.status.rank != other.status.rank:
            return self.status.rank > other.status.rank
        return self.position < other.position


@dataclass(slots=True)
class CampaignRollup:
    """Derived counters for one campaign plus the high-water mark of applied events."""

    campaign_id: CampaignId
    total_gifts: int = 0
    viewed: int = 0
    total_value: int = 0
    gift_states: dict[GiftId, GiftStatusState] = field(default_factory=dict)
    last_offset: int = 0
    last_event_id: str | None = None

    @property
    def claimed(self) -> int:
        return self._count(TrackedStatus.CLAIMED)

    @property
    def returned(self) -> int:
        return self._count(TrackedStatus.RETURNED)

    @property
    def expired(self) -> int:
        return self._count(TrackedStatus.EXPIRED)

    def _count(self, status: TrackedStatus) -> int:
        return sum(1 for state in self.gift_states.values() if state.status is status)

    def has_applied(self, event: CanonicalEvent) -> bool:
        return event.offset is not None and event.offset <= self.last_offset

    def project(self, event: CanonicalEvent) -> None:
        """Fold one event into the counters without touching the high-water mark."""

        if event.event_type is EventType.GIFT_CREATED:
            self.total_gifts += 1
            self.total_value += event.amount_wei()
        elif event.event_type is EventType.GIFT_VALUED:
            self.total_value += event.amount_wei()
        elif event.event_type is EventType.GIFT_VIEWED:
            self.viewed += 1

        status = _STATUS_BY_EVENT.get(event.event_type)
        if status is None:
            return
        candidate = GiftStatusState(status=status, position=event.chain_position)
        current = self.gift_states.get(event.gift_id)
        if current is None or candidate.supersedes(current):
            self.gift_states[event.gift_id] = candidate

    def mark(self, event: CanonicalEvent) -> None:
        if event.offset is None:
            raise ValueError("Only stored events carry an offset")
        if event.offset > self.last_offset:
            self.last_offset = event.offset
            self.last_event_id = event.event_id

    def counters(self) -> dict[str, int]:
        return {
            "total_gifts": self.total_gifts,
            "claimed": self.claimed,
            "returned": self.returned,
            "expired": self.expired,
            "viewed": self.viewed,
            "total_value": self.total_value,
        }

    def copy(self) -> CampaignRollup:
        return CampaignRollup(
            campaign_id=self.campaign_id,
            total_gifts=self.total_gifts,
            viewed=self.viewed,
            total_value=self.total_value,
            gift_states=dict(self.gift_states),
            last_offset=self.last_offset,
            last_event_id=self.last_event_id,
        )
