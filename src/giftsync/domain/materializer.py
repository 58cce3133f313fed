"""Project the canonical event log into per-campaign roll-ups.

Counters that commute (gifts created, views, value) simply accumulate. Per-gift
status only moves forward and is keyed by chain position, so the final state does
not depend on the order in which concurrent reconciliation passes appended events.
That is what lets an incremental catch-up and a full rebuild agree.

Writes are a compare-and-swap on the roll-up's high-water mark: a writer that lost
the race reloads the roll-up and re-applies instead of double counting.
"""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from giftsync.domain.errors import ServiceUnavailableError
from giftsync.domain.event_log import CanonicalEventLog
from giftsync.domain.model import CampaignRollup

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from giftsync.domain.model import CampaignId, CanonicalEvent
    from giftsync.domain.ports import GiftUnitOfWork

log = getLogger(__name__)

DEFAULT_MAX_CONFLICTS = 5
DEFAULT_BATCH_SIZE = 500


@dataclass(slots=True)
class Materializer:
    unit_of_work_factory: Callable[[], GiftUnitOfWork]
    max_conflicts: int = DEFAULT_MAX_CONFLICTS
    batch_size: int = DEFAULT_BATCH_SIZE

    def apply(self, event: CanonicalEvent) -> bool:
        """Bring ``event``'s campaign up to and including ``event``.

        Unapplied events logged before it are applied first, so the high-water mark
        never jumps over one. Returns ``False`` if the roll-up already covered it.
        """

        if event.offset is None:
            raise ValueError("Only events read back from the log can be applied")
        return self._catch_up_campaign(event.campaign_id, through=event.offset) > 0

    def catch_up(self, campaign_id: CampaignId | None = None) -> int:
        """Apply every logged event past each roll-up's mark; return how many applied."""

        campaigns = [campaign_id] if campaign_id is not None else self._campaigns()
        return sum(self._catch_up_campaign(campaign) for campaign in campaigns)

    def rebuild(self, campaign_id: CampaignId) -> CampaignRollup:
        """Recompute a roll-up from an empty state and the full log."""

        with self.unit_of_work_factory() as uow:
            event_log = CanonicalEventLog(uow.repositories.events)
            events = list(event_log.iter_forward(campaign_id=campaign_id))
            rollup = CampaignRollup(campaign_id=campaign_id)
            for event in sorted(events, key=lambda item: item.chain_position):
                rollup.project(event)
            for event in events:
                rollup.mark(event)
            uow.repositories.rollups.replace(rollup)
            uow.commit()
        log.info(f"Rebuilt {campaign_id} from {len(events)} events: {rollup.counters()}")
        return rollup

    def rebuild_all(self) -> list[CampaignRollup]:
        return [self.rebuild(campaign) for campaign in self._campaigns()]

    def rollup(self, campaign_id: CampaignId) -> CampaignRollup | None:
        with self.unit_of_work_factory() as uow:
            return uow.repositories.rollups.get(campaign_id)

    def _campaigns(self) -> list[CampaignId]:
        with self.unit_of_work_factory() as uow:
            return list(uow.repositories.events.campaigns())

    def _catch_up_campaign(self, campaign_id: CampaignId, *, through: int | None = None) -> int:
        applied = 0
        while True:
            with self.unit_of_work_factory() as uow:
                current = uow.repositories.rollups.get(campaign_id)
                mark = current.last_offset if current else 0
                page = CanonicalEventLog(uow.repositories.events).read(
                    after_offset=mark, campaign_id=campaign_id, limit=self.batch_size
                )
            batch = [event for event in page if through is None or (event.offset or 0) <= through]
            if not batch:
                return applied
            applied += self._apply_batch(campaign_id, batch)
            if len(batch) < len(page) or len(page) < self.batch_size:
                return applied

    def _apply_batch(self, campaign_id: CampaignId, events: Sequence[CanonicalEvent]) -> int:
        for attempt in range(1, self.max_conflicts + 1):
            with self.unit_of_work_factory() as uow:
                rollups = uow.repositories.rollups
                current = rollups.get(campaign_id)
                expected = current.last_offset if current is not None else None
                rollup = current.copy() if current is not None else CampaignRollup(campaign_id)

                applied = 0
                for event in sorted(events, key=lambda item: item.offset or 0):
                    if rollup.has_applied(event):
                        continue
                    rollup.project(event)
                    rollup.mark(event)
                    applied += 1
                if applied == 0:
                    return 0

                if rollups.compare_and_swap(rollup, expected_offset=expected):
                    uow.commit()
                    return applied
                uow.rollback()
            log.info(f"Roll-up {campaign_id} moved underneath us (attempt {attempt}), reloading")
        raise ServiceUnavailableError(
            f"Roll-up {campaign_id} kept changing after {self.max_conflicts} attempts"
        )
