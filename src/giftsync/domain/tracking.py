"""Gift lifecycle events that do not come from escrow logs.

Views come from successful claim checks, expiries from the reconciliation sweep
or an operator, and values from an operator attaching a gift's worth. Each gets
a deterministic event id, so one gift is counted at most once per kind (views
once per device) however often the event is reported.
"""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from giftsync.domain.errors import ServiceUnavailableError
from giftsync.domain.event_log import CanonicalEventLog
from giftsync.domain.model import CanonicalEvent, EventType, make_event_id

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from datetime import datetime

    from giftsync.domain.materializer import Materializer
    from giftsync.domain.model import CampaignId, EventSource, GiftId, TokenId
    from giftsync.domain.ports import GiftUnitOfWork

log = getLogger(__name__)


def tracking_key(event_type: EventType, gift_id: GiftId, *, device_id: str | None = None) -> str:
    match event_type:
        case EventType.GIFT_VIEWED:
            return f"view:{gift_id}:{device_id or 'anonymous'}"
        case EventType.GIFT_EXPIRED:
            return f"expiry:{gift_id}"
        case EventType.GIFT_VALUED:
            return f"value:{gift_id}"
        case _:
            raise ValueError(f"{event_type} events are only derived from escrow logs")


def lifecycle_event(
    event_type: EventType,
    *,
    gift_id: GiftId,
    campaign_id: CampaignId,
    occurred_at: datetime,
    source: EventSource,
    processed_at: datetime | None = None,
    token_id: TokenId | None = None,
    device_id: str | None = None,
    block_number: int = 0,
    payload: Mapping[str, object] | None = None,
) -> CanonicalEvent:
    key = tracking_key(event_type, gift_id, device_id=device_id)
    return CanonicalEvent(
        event_id=make_event_id(key, 0),
        event_type=event_type,
        gift_id=gift_id,
        campaign_id=campaign_id,
        block_number=block_number,
        block_timestamp=occurred_at,
        tx_hash=key,
        log_index=0,
        processed_at=processed_at or occurred_at,
        source=source,
        token_id=token_id,
        payload=dict(payload or {}),
    )


@dataclass(slots=True)
class LifecycleTracker:
    unit_of_work_factory: Callable[[], GiftUnitOfWork]
    materializer: Materializer | None = None

    def record(self, event: CanonicalEvent) -> bool:
        """Append ``event`` and fold its campaign roll-up forward.

        Returns whether the event was new. A roll-up that cannot be updated right now
        is left for the next catch-up; the event itself is already durable.
        """

        with self.unit_of_work_factory() as uow:
            appended = CanonicalEventLog(uow.repositories.events).append(event)
            uow.commit()
        if self.materializer is not None:
            try:
                self.materializer.catch_up(event.campaign_id)
            except ServiceUnavailableError as exc:
                log.warning(
                    f"Roll-up {event.campaign_id} not updated after {event.event_type}: {exc}"
                )
        return appended
