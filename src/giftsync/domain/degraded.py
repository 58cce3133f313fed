"""Fallbacks used while the primary store is unreachable."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from giftsync.domain.errors import ServiceUnavailableError
from giftsync.domain.model import GiftAnnotations

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from giftsync.domain.model import AnnotationPatch, CampaignId, CampaignRollup, GiftId
    from giftsync.domain.ports import AnnotationStore

log = getLogger(__name__)


class DegradedModeStore:
    """Annotation store that buffers writes in process memory during an outage.

    Reads go to the primary first and only consult the buffer when the primary is
    unavailable. The buffer is keyed by canonical ``giftId`` exactly like the primary.

    Known gap: buffered writes are NOT flushed to the primary when it recovers, and
    they are lost when the process exits. After recovery a read is served by the
    primary and may not show a write accepted during the outage. Operators can take
    the buffered records with ``drain()`` and replay them; nothing does so on its own.
    """

    def __init__(self, primary: AnnotationStore) -> None:
        self._primary = primary
        self._buffer: dict[GiftId, GiftAnnotations] = {}
        self._lock = threading.Lock()

    def get(self, gift_id: GiftId) -> GiftAnnotations | None:
        try:
            return self._primary.get(gift_id)
        except ServiceUnavailableError:
            log.warning(f"Primary store unavailable, reading gift {gift_id} from the buffer")
            with self._lock:
                return self._buffer.get(gift_id)

    def merge(
        self, gift_id: GiftId, patch: AnnotationPatch, *, captured_at: datetime
    ) -> GiftAnnotations:
        try:
            return self._primary.merge(gift_id, patch, captured_at=captured_at)
        except ServiceUnavailableError:
            log.warning(f"Primary store unavailable, buffering annotation for gift {gift_id}")
            with self._lock:
                current = self._buffer.get(gift_id, GiftAnnotations())
                merged = current.merged_with(patch, captured_at=captured_at)
                self._buffer[gift_id] = merged
            return merged

    def pending(self) -> dict[GiftId, GiftAnnotations]:
        with self._lock:
            return dict(self._buffer)

    def drain(self) -> dict[GiftId, GiftAnnotations]:
        """Hand the buffered records to the caller and empty the buffer."""

        with self._lock:
            drained, self._buffer = self._buffer, {}
        if drained:
            log.info(f"Drained {len(drained)} buffered annotation records")
        return drained


@dataclass(frozen=True, slots=True)
class RollupView:
    rollup: CampaignRollup | None
    stale: bool = False


class LastKnownRollups:
    """Serve campaign analytics, falling back to the last successful read on outage."""

    def __init__(self, loader: Callable[[CampaignId], CampaignRollup | None]) -> None:
        self._loader = loader
        self._last: dict[CampaignId, CampaignRollup] = {}
        self._lock = threading.Lock()

    def get(self, campaign_id: CampaignId) -> RollupView:
        try:
            rollup = self._loader(campaign_id)
        except ServiceUnavailableError:
            log.warning(f"Store unavailable, serving last known stats for {campaign_id}")
            with self._lock:
                return RollupView(self._last.get(campaign_id), stale=True)
        if rollup is not None:
            with self._lock:
                self._last[campaign_id] = rollup
        return RollupView(rollup)
