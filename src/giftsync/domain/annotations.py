"""Annotation writes routed to the canonical gift key."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from giftsync.domain.errors import ConsistencyError

if TYPE_CHECKING:
    from collections.abc import Callable

    from giftsync.domain.identifiers import IdentifierResolver
    from giftsync.domain.model import AnnotationPatch, GiftAnnotations, GiftId, TokenId
    from giftsync.domain.ports import AnnotationStore

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class GiftRef:
    """A caller's reference to a gift by either identifier."""

    gift_id: GiftId | None = None
    token_id: TokenId | None = None

    def __post_init__(self) -> None:
        if self.gift_id is None and self.token_id is None:
            raise ValueError("A gift reference needs a giftId or a tokenId")


@dataclass(slots=True)
class AnnotationService:
    resolver: IdentifierResolver
    store: AnnotationStore
    clock: Callable[[], datetime] = _utcnow

    def canonical_gift_id(self, ref: GiftRef) -> GiftId:
        """Translate ``ref`` to the canonical key before anything is written."""

        if ref.token_id is None:
            if ref.gift_id is None:
                raise ValueError("A gift reference needs a giftId or a tokenId")
            return ref.gift_id
        resolved = self.resolver.resolve(ref.token_id)
        if ref.gift_id is not None and ref.gift_id != resolved:
            error = ConsistencyError(
                f"Request pairs token {ref.token_id} with gift {ref.gift_id}, "
                f"but the token belongs to gift {resolved}",
                key=f"token:{ref.token_id}",
            )
            log.error(str(error))
            raise error
        return resolved

    def annotate(self, ref: GiftRef, patch: AnnotationPatch) -> tuple[GiftId, GiftAnnotations]:
        if patch.is_empty:
            raise ValueError("Annotation write carries no fields")
        gift_id = self.canonical_gift_id(ref)
        merged = self.store.merge(gift_id, patch, captured_at=self.clock())
        log.info(f"Annotated gift {gift_id}: {sorted(patch.supplied())}")
        return gift_id, merged

    def read(self, ref: GiftRef) -> tuple[GiftId, GiftAnnotations | None]:
        gift_id = self.canonical_gift_id(ref)
        return gift_id, self.store.get(gift_id)
