"""Append-only ledger of canonical gift events."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from giftsync.domain.errors import DuplicateEventError
from giftsync.domain.ports.persistence import ReadOrder

if TYPE_CHECKING:
    from collections.abc import Iterator

    from giftsync.domain.model import CampaignId, CanonicalEvent, GiftId
    from giftsync.domain.ports import EventRepository

log = getLogger(__name__)

DEFAULT_PAGE_SIZE = 500


@dataclass(slots=True)
class CanonicalEventLog:
    """Idempotent, globally ordered event log over an ``EventRepository``.

    Idempotence comes from the store's unique event id, so concurrent reconciliation
    passes may append the same batch without coordinating.
    """

    events: EventRepository

    def append(self, event: CanonicalEvent) -> bool:
        """Append ``event``; return ``False`` when it was already recorded."""

        try:
            stored = self.events.add(event)
        except DuplicateEventError:
            log.debug(f"Skipping duplicate event {event.event_id} ({event.event_type})")
            return False
        log.debug(f"Appended {stored.event_type} for gift {stored.gift_id} at {stored.offset}")
        return True

    def read(
        self,
        *,
        after_offset: int | None = None,
        before_offset: int | None = None,
        order: ReadOrder = ReadOrder.FORWARD,
        limit: int | None = None,
        campaign_id: CampaignId | None = None,
        gift_id: GiftId | None = None,
    ) -> list[CanonicalEvent]:
        return list(
            self.events.read(
                after_offset=after_offset,
                before_offset=before_offset,
                order=order,
                limit=limit,
                campaign_id=campaign_id,
                gift_id=gift_id,
            )
        )

    def recent(
        self, *, campaign_id: CampaignId | None = None, limit: int = 50
    ) -> list[CanonicalEvent]:
        """Newest first, for dashboards."""

        return self.read(order=ReadOrder.REVERSE, limit=limit, campaign_id=campaign_id)

    def iter_forward(
        self,
        *,
        after_offset: int = 0,
        campaign_id: CampaignId | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Iterator[CanonicalEvent]:
        cursor = after_offset
        while True:
            page = self.read(after_offset=cursor, campaign_id=campaign_id, limit=page_size)
            yield from page
            if len(page) < page_size:
                return
            last = page[-1].offset
            if last is None:
                return
            cursor = last
