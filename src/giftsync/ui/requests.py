"""Boundary models for handler payloads (camelCase on the wire)."""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Literal, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from giftsync.domain.model import (
    AnnotationPatch,
    EventType,
    GiftAnnotations,
    LegacyDetail,
    LegacyKeyKind,
    legacy_key,
)

SALT_PATTERN = r"^(0x)?[0-9a-fA-F]{64}$"
_LEGACY_KEY = re.compile(r"^(?P<kind>gift|token):(?P<value>\d+)$")


class RequestModel(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class ClaimRequest(RequestModel):
    token_id: int = Field(ge=0)
    password: str = Field(min_length=1, max_length=256)
    salt: str = Field(pattern=SALT_PATTERN)
    device_id: str | None = Field(default=None, max_length=128)


class AnnotationRequest(RequestModel):
    token_id: int | None = Field(default=None, ge=0)
    gift_id: int | None = Field(default=None, ge=0)
    email_encrypted: str | None = None
    email_hmac: str | None = Field(default=None, max_length=128)
    appointment_date: date | None = None
    appointment_time: str | None = Field(default=None, max_length=16)
    appointment_duration: int | None = Field(default=None, gt=0)
    appointment_timezone: str | None = Field(default=None, max_length=64)
    appointment_meeting_url: str | None = None
    appointment_invitee_name: str | None = Field(default=None, max_length=255)
    education_score: int | None = Field(default=None, ge=0, le=100)

    @model_validator(mode="after")
    def _needs_identifier(self) -> Self:
        if self.token_id is None and self.gift_id is None:
            raise ValueError("tokenId or giftId is required")
        return self

    def to_patch(self) -> AnnotationPatch:
        return AnnotationPatch(
            email_encrypted=self.email_encrypted,
            email_hmac=self.email_hmac,
            appointment_date=self.appointment_date,
            appointment_time=self.appointment_time,
            appointment_duration=self.appointment_duration,
            appointment_timezone=self.appointment_timezone,
            appointment_meeting_url=self.appointment_meeting_url,
            appointment_invitee_name=self.appointment_invitee_name,
            education_score=self.education_score,
        )


TRACKED_KINDS: dict[str, EventType] = {
    "viewed": EventType.GIFT_VIEWED,
    "expired": EventType.GIFT_EXPIRED,
    "valued": EventType.GIFT_VALUED,
}


class TrackEventRequest(RequestModel):
    """Lifecycle event reported from outside the chain; ``valued`` carries ``amountWei``."""

    token_id: int | None = Field(default=None, ge=0)
    gift_id: int | None = Field(default=None, ge=0)
    event_type: Literal["viewed", "expired", "valued"]
    amount_wei: int | None = Field(default=None, ge=0, lt=2**256)
    device_id: str | None = Field(default=None, max_length=128)
    occurred_at: datetime | None = None

    @model_validator(mode="after")
    def _check_shape(self) -> Self:
        if self.token_id is None and self.gift_id is None:
            raise ValueError("tokenId or giftId is required")
        if (self.event_type == "valued") != (self.amount_wei is not None):
            raise ValueError("amountWei is required for valued events and only for them")
        return self

    @property
    def kind(self) -> EventType:
        return TRACKED_KINDS[self.event_type]


class ReconcileRequest(RequestModel):
    from_block: int | None = Field(default=None, ge=0)
    to_block: int | None = Field(default=None, ge=0)


class RepairRequest(RequestModel):
    token_id: int = Field(ge=0)
    gift_id: int = Field(ge=0)


class LegacyRecord(BaseModel):
    """One dual-key-era row; unknown keys from the old store are tolerated."""

    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)

    key: str = Field(pattern=_LEGACY_KEY.pattern)
    email_encrypted: str | None = None
    email_hmac: str | None = None
    appointment_date: date | None = None
    appointment_time: str | None = None
    appointment_duration: int | None = None
    appointment_timezone: str | None = None
    appointment_meeting_url: str | None = None
    appointment_invitee_name: str | None = None
    education_score: int | None = Field(default=None, ge=0, le=100)
    email_captured_at: datetime | None = None
    appointment_captured_at: datetime | None = None
    education_captured_at: datetime | None = None
    claimer: str | None = None
    gift_id: int | None = None
    token_id: int | None = None

    def to_detail(self) -> LegacyDetail:
        match = _LEGACY_KEY.match(self.key)
        if match is None:
            raise ValueError(f"Unrecognised legacy key: {self.key!r}")
        kind = LegacyKeyKind(match["kind"])
        value = int(match["value"])
        annotations = GiftAnnotations.from_mapping(
            self.model_dump(exclude={"key", "claimer", "gift_id", "token_id"}, exclude_none=True)
        )
        return LegacyDetail(
            raw_key=legacy_key(kind, value),
            kind=kind,
            key_value=value,
            annotations=annotations,
            claimer=self.claimer,
            stamped_gift_id=self.gift_id,
            stamped_token_id=self.token_id,
        )
