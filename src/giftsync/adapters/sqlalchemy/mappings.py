"""SQLAlchemy table metadata for gifts, annotations and the canonical event log."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    Dialect,
    Enum,
    Index,
    Integer,
    LargeBinary,
    MetaData,
    String,
    Table,
    Text,
    TypeDecorator,
    UniqueConstraint,
)

from giftsync.domain.model import EventSource, EventType, GiftStatus, LegacyKeyKind


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


class Uint256(TypeDecorator[int]):
    """EVM ``uint256`` stored as decimal text; native integer columns stop at 64 bits."""

    impl = String(78)
    cache_ok = True

    def process_bind_param(self, value: int | None, dialect: Dialect) -> str | None:
        _ = dialect
        if value is None:
            return None
        if value < 0:
            raise ValueError(f"uint256 cannot be negative: {value}")
        return str(value)

    def process_result_value(self, value: str | None, dialect: Dialect) -> int | None:
        _ = dialect
        if value is None:
            return None
        return int(value)


metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_label)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)


def _annotation_columns() -> list[Column[object]]:
    return [
        Column("email_encrypted", Text, nullable=True),
        Column("email_hmac", String(128), nullable=True),
        Column("appointment_date", Date, nullable=True),
        Column("appointment_time", String(16), nullable=True),
        Column("appointment_duration", Integer, nullable=True),
        Column("appointment_timezone", String(64), nullable=True),
        Column("appointment_meeting_url", Text, nullable=True),
        Column("appointment_invitee_name", String(255), nullable=True),
        Column("education_score", Integer, nullable=True),
        Column("email_captured_at", UTCDateTime(), nullable=True),
        Column("appointment_captured_at", UTCDateTime(), nullable=True),
        Column("education_captured_at", UTCDateTime(), nullable=True),
    ]


# Gift state ------------------------------------------------------------------

gift_table = Table(
    "gift",
    metadata,
    Column("gift_id", Integer, primary_key=True, autoincrement=False),
    Column("creator", String(42), nullable=False),
    Column("nft_contract", String(42), nullable=False),
    Column("token_id", Uint256(), nullable=False),
    Column("expiration_time", UTCDateTime(), nullable=False),
    Column("password_hash", LargeBinary(32), nullable=False),
    Column("status", Enum(GiftStatus, native_enum=False), nullable=False),
    Column("claimer", String(42), nullable=True),
    Column("updated_at", UTCDateTime(), nullable=False),
    Index("ix_gift_status_expiration", "status", "expiration_time"),
)

identifier_mapping_table = Table(
    "identifier_mapping",
    metadata,
    Column("token_id", Uint256(), primary_key=True),
    Column("gift_id", Integer, nullable=False),
    Column("recorded_at", UTCDateTime(), nullable=False),
    UniqueConstraint("gift_id"),
)

gift_annotation_table = Table(
    "gift_annotation",
    metadata,
    Column("gift_id", Integer, primary_key=True, autoincrement=False),
    *_annotation_columns(),
    Column("updated_at", UTCDateTime(), nullable=False),
)

legacy_detail_table = Table(
    "legacy_detail",
    metadata,
    Column("raw_key", String(96), primary_key=True),
    Column("kind", Enum(LegacyKeyKind, native_enum=False), nullable=False),
    Column("key_value", Uint256(), nullable=False),
    *_annotation_columns(),
    Column("claimer", String(42), nullable=True),
    Column("stamped_gift_id", Integer, nullable=True),
    Column("stamped_token_id", Uint256(), nullable=True),
    Column("repaired_into", Integer, nullable=True),
    Column("imported_at", UTCDateTime(), nullable=False),
)

# Event log and projections ---------------------------------------------------

gift_event_table = Table(
    "gift_event",
    metadata,
    Column("event_offset", Integer, primary_key=True, autoincrement=True),
    Column("event_id", String(66), nullable=False),
    Column("event_type", Enum(EventType, native_enum=False), nullable=False),
    Column("gift_id", Integer, nullable=False),
    Column("campaign_id", String(64), nullable=False),
    Column("block_number", Integer, nullable=False),
    Column("block_timestamp", UTCDateTime(), nullable=False),
    Column("tx_hash", String(128), nullable=False),
    Column("log_index", Integer, nullable=False),
    Column("processed_at", UTCDateTime(), nullable=False),
    Column("source", Enum(EventSource, native_enum=False), nullable=False),
    Column("token_id", Uint256(), nullable=True),
    Column("payload", JSON, nullable=False),
    UniqueConstraint("event_id"),
    Index("ix_gift_event_campaign_offset", "campaign_id", "event_offset"),
    Index("ix_gift_event_gift_id", "gift_id"),
)

campaign_rollup_table = Table(
    "campaign_rollup",
    metadata,
    Column("campaign_id", String(64), primary_key=True),
    Column("total_gifts", Integer, nullable=False),
    Column("viewed", Integer, nullable=False),
    Column("total_value", Uint256(), nullable=False),
    Column("gift_states", JSON, nullable=False),
    Column("last_offset", Integer, nullable=False),
    Column("last_event_id", String(66), nullable=True),
    Column("updated_at", UTCDateTime(), nullable=False),
)

reconcile_checkpoint_table = Table(
    "reconcile_checkpoint",
    metadata,
    Column("name", String(64), primary_key=True),
    Column("block_number", Integer, nullable=False),
    Column("updated_at", UTCDateTime(), nullable=False),
)

