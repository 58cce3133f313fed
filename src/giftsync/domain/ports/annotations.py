"""Port for the annotation store used by request handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import datetime

    from giftsync.domain.model import AnnotationPatch, GiftAnnotations, GiftId


@runtime_checkable
class AnnotationStore(Protocol):
    """Self-transacting annotation access keyed by canonical ``giftId``.

    Implementations raise ``ServiceUnavailableError`` when the backing store is down.
    """

    def get(self, gift_id: GiftId) -> GiftAnnotations | None: ...

    def merge(
        self, gift_id: GiftId, patch: AnnotationPatch, *, captured_at: datetime
    ) -> GiftAnnotations: ...
