"""Domain model for escrowed gifts."""

from __future__ import annotations

from .annotations import (
    ALL_FIELDS,
    CAPTURE_FIELDS,
    FIELD_GROUPS,
    VALUE_FIELDS,
    AnnotationPatch,
    GiftAnnotations,
)
from .enums import ChainStatusCode, EventSource, EventType, GiftStatus, TrackedStatus
from .event import CanonicalEvent, make_event_id
from .gift import Gift, InvalidTransitionError
from .legacy import LegacyDetail, LegacyKeyKind, legacy_key
from .primitives import (
    ZERO_ADDRESS,
    Address,
    CampaignId,
    ChainPosition,
    GiftId,
    TokenId,
    campaign_for,
    normalize_address,
    same_address,
)
from .rollup import CampaignRollup, GiftStatusState

__all__ = [
    "ALL_FIELDS",
    "CAPTURE_FIELDS",
    "FIELD_GROUPS",
    "VALUE_FIELDS",
    "ZERO_ADDRESS",
    "Address",
    "AnnotationPatch",
    "CampaignId",
    "CampaignRollup",
    "CanonicalEvent",
    "ChainPosition",
    "ChainStatusCode",
    "EventSource",
    "EventType",
    "Gift",
    "GiftAnnotations",
    "GiftId",
    "GiftStatus",
    "GiftStatusState",
    "InvalidTransitionError",
    "LegacyDetail",
    "LegacyKeyKind",
    "TokenId",
    "TrackedStatus",
    "campaign_for",
    "legacy_key",
    "make_event_id",
    "normalize_address",
    "same_address",
]
