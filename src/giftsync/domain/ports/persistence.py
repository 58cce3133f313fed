"""Ports for persisting gifts, mappings, annotations and the event log."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from giftsync.domain.model import (
        AnnotationPatch,
        CampaignId,
        CampaignRollup,
        CanonicalEvent,
        Gift,
        GiftAnnotations,
        GiftId,
        LegacyDetail,
        TokenId,
    )


class ReadOrder(StrEnum):
    FORWARD = "forward"
    REVERSE = "reverse"


@runtime_checkable
class GiftRepository(Protocol):
    def get(self, gift_id: GiftId) -> Gift | None: ...

    def add(self, gift: Gift) -> None: ...

    def update(self, gift: Gift) -> None: ...

    def expired_active(self, as_of: datetime) -> Sequence[Gift]:
        """Active gifts whose expiration time is at or before ``as_of``, by gift id."""
        ...


@runtime_checkable
class IdentifierMappingRepository(Protocol):
    """Two-way ``tokenId``/``giftId`` index."""

    def gift_id_for(self, token_id: TokenId) -> GiftId | None: ...

    def token_id_for(self, gift_id: GiftId) -> TokenId | None: ...

    def add(self, token_id: TokenId, gift_id: GiftId) -> bool:
        """Insert the pair; return ``False`` if either side is already taken."""
        ...


@runtime_checkable
class AnnotationRepository(Protocol):
    def get(self, gift_id: GiftId) -> GiftAnnotations | None: ...

    def merge(
        self, gift_id: GiftId, patch: AnnotationPatch, *, captured_at: datetime
    ) -> GiftAnnotations:
        """Write only the supplied fields and return the resulting record."""
        ...

    def fill(self, gift_id: GiftId, annotations: GiftAnnotations) -> None:
        """Write ``annotations`` where the stored record has no value yet."""
        ...


@runtime_checkable
class LegacyDetailRepository(Protocol):
    def get(self, raw_key: str) -> LegacyDetail | None: ...

    def add(self, detail: LegacyDetail) -> None: ...

    def mark_repaired(self, raw_key: str, gift_id: GiftId) -> None: ...


@runtime_checkable
class EventRepository(Protocol):
    def add(self, event: CanonicalEvent) -> CanonicalEvent:
        """Store ``event`` and return it with its offset.

        Raises ``DuplicateEventError`` when the event id is already present.
        """
        ...

    def read(
        self,
        *,
        after_offset: int | None = None,
        before_offset: int | None = None,
        order: ReadOrder = ReadOrder.FORWARD,
        limit: int | None = None,
        campaign_id: CampaignId | None = None,
        gift_id: GiftId | None = None,
    ) -> Sequence[CanonicalEvent]: ...

    def campaigns(self) -> Sequence[CampaignId]: ...


@runtime_checkable
class RollupRepository(Protocol):
    def get(self, campaign_id: CampaignId) -> CampaignRollup | None: ...

    def compare_and_swap(self, rollup: CampaignRollup, *, expected_offset: int | None) -> bool:
        """Persist ``rollup`` only if the stored mark still equals ``expected_offset``.

        ``expected_offset=None`` means the roll-up must not exist yet.
        """
        ...

    def replace(self, rollup: CampaignRollup) -> None: ...


@runtime_checkable
class CheckpointRepository(Protocol):
    def get(self, name: str) -> int | None: ...

    def advance(self, name: str, block_number: int) -> None: ...
