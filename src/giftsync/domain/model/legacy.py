"""Records left behind by the dual-key era, awaiting repair."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from .annotations import GiftAnnotations

if TYPE_CHECKING:
    from .primitives import Address, GiftId


class LegacyKeyKind(StrEnum):
    GIFT = "gift"
    TOKEN = "token"


def legacy_key(kind: LegacyKeyKind, value: int) -> str:
    return f"{kind.value}:{value}"


@dataclass(slots=True)
class LegacyDetail:
    """One physical row from the old store, keyed by its raw key.

    ``stamped_gift_id``/``stamped_token_id`` are the identifiers the old writer
    recorded inside the row, when it recorded any.
    """

    raw_key: str
    kind: LegacyKeyKind
    key_value: int
    annotations: GiftAnnotations = field(default_factory=GiftAnnotations)
    claimer: Address | None = None
    stamped_gift_id: GiftId | None = None
    stamped_token_id: int | None = None
    repaired_into: GiftId | None = None
