"""Post-creation gift annotations and their merge rules."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from datetime import date, datetime

FIELD_GROUPS: Final[dict[str, tuple[str, ...]]] = {
    "email": ("email_encrypted", "email_hmac"),
    "appointment": (
        "appointment_date",
        "appointment_time",
        "appointment_duration",
        "appointment_timezone",
        "appointment_meeting_url",
        "appointment_invitee_name",
    ),
    "education": ("education_score",),
}
VALUE_FIELDS: Final[tuple[str, ...]] = tuple(
    name for group in FIELD_GROUPS.values() for name in group
)
CAPTURE_FIELDS: Final[dict[str, str]] = {group: f"{group}_captured_at" for group in FIELD_GROUPS}
ALL_FIELDS: Final[tuple[str, ...]] = VALUE_FIELDS + tuple(CAPTURE_FIELDS.values())


@dataclass(frozen=True, slots=True)
class AnnotationPatch:
    """Fields supplied by one annotation write. ``None`` means "not supplied"."""

    email_encrypted: str | None = None
    email_hmac: str | None = None
    appointment_date: date | None = None
    appointment_time: str | None = None
    appointment_duration: int | None = None
    appointment_timezone: str | None = None
    appointment_meeting_url: str | None = None
    appointment_invitee_name: str | None = None
    education_score: int | None = None

    def supplied(self) -> dict[str, object]:
        values = {name: getattr(self, name) for name in VALUE_FIELDS}
        return {name: value for name, value in values.items() if value is not None}

    def touched_groups(self) -> tuple[str, ...]:
        supplied = self.supplied()
        return tuple(
            group for group, names in FIELD_GROUPS.items() if any(n in supplied for n in names)
        )

    @property
    def is_empty(self) -> bool:
        return not self.supplied()


@dataclass(frozen=True, slots=True)
class GiftAnnotations:
    """Off-chain data attached to one gift, stored under its canonical ``giftId``."""

    email_encrypted: str | None = None
    email_hmac: str | None = None
    appointment_date: date | None = None
    appointment_time: str | None = None
    appointment_duration: int | None = None
    appointment_timezone: str | None = None
    appointment_meeting_url: str | None = None
    appointment_invitee_name: str | None = None
    education_score: int | None = None
    email_captured_at: datetime | None = None
    appointment_captured_at: datetime | None = None
    education_captured_at: datetime | None = None

    @classmethod
    def from_mapping(cls, values: Mapping[str, object]) -> GiftAnnotations:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in values.items() if k in known})

    def as_dict(self) -> dict[str, object]:
        """Return only the populated fields."""

        values = {name: getattr(self, name) for name in ALL_FIELDS}
        return {name: value for name, value in values.items() if value is not None}

    @property
    def is_empty(self) -> bool:
        return not any(getattr(self, name) is not None for name in VALUE_FIELDS)

    def merged_with(self, patch: AnnotationPatch, *, captured_at: datetime) -> GiftAnnotations:
        """Apply the fields a write supplied; everything else is left untouched."""

        updates: dict[str, object] = dict(patch.supplied())
        for group in patch.touched_groups():
            updates[CAPTURE_FIELDS[group]] = captured_at
        if not updates:
            return self
        return replace(self, **updates)

    def filled_from(self, other: GiftAnnotations) -> tuple[GiftAnnotations, tuple[str, ...]]:
        """Copy fields missing here from ``other``; never overwrite a present field."""

        copied: dict[str, object] = {}
        for name in ALL_FIELDS:
            if getattr(self, name) is None and getattr(other, name) is not None:
                copied[name] = getattr(other, name)
        if not copied:
            return self, ()
        return replace(self, **copied), tuple(copied)

    def missing(self, names: Iterable[str] = VALUE_FIELDS) -> tuple[str, ...]:
        return tuple(name for name in names if getattr(self, name) is None)
