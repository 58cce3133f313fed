"""initial gift store schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

UINT256 = sa.String(length=78)
UTC_DATETIME = sa.DateTime(timezone=True)


def _annotation_columns() -> list[sa.Column[object]]:
    return [
        sa.Column("email_encrypted", sa.Text(), nullable=True),
        sa.Column("email_hmac", sa.String(length=128), nullable=True),
        sa.Column("appointment_date", sa.Date(), nullable=True),
        sa.Column("appointment_time", sa.String(length=16), nullable=True),
        sa.Column("appointment_duration", sa.Integer(), nullable=True),
        sa.Column("appointment_timezone", sa.String(length=64), nullable=True),
        sa.Column("appointment_meeting_url", sa.Text(), nullable=True),
        sa.Column("appointment_invitee_name", sa.String(length=255), nullable=True),
        sa.Column("education_score", sa.Integer(), nullable=True),
        sa.Column("email_captured_at", UTC_DATETIME, nullable=True),
        sa.Column("appointment_captured_at", UTC_DATETIME, nullable=True),
        sa.Column("education_captured_at", UTC_DATETIME, nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "gift",
        sa.Column("gift_id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("creator", sa.String(length=42), nullable=False),
        sa.Column("nft_contract", sa.String(length=42), nullable=False),
        sa.Column("token_id", UINT256, nullable=False),
        sa.Column("expiration_time", UTC_DATETIME, nullable=False),
        sa.Column("password_hash", sa.LargeBinary(length=32), nullable=False),
        sa.Column(
            "status",
            sa.Enum("ACTIVE", "CLAIMED", "RETURNED", name="giftstatus", native_enum=False),
            nullable=False,
        ),
        sa.Column("claimer", sa.String(length=42), nullable=True),
        sa.Column("updated_at", UTC_DATETIME, nullable=False),
        sa.PrimaryKeyConstraint("gift_id", name=op.f("pk_gift")),
    )
    op.create_table(
        "identifier_mapping",
        sa.Column("token_id", UINT256, nullable=False),
        sa.Column("gift_id", sa.Integer(), nullable=False),
        sa.Column("recorded_at", UTC_DATETIME, nullable=False),
        sa.PrimaryKeyConstraint("token_id", name=op.f("pk_identifier_mapping")),
        sa.UniqueConstraint("gift_id", name=op.f("uq_identifier_mapping_gift_id")),
    )
    op.create_table(
        "gift_annotation",
        sa.Column("gift_id", sa.Integer(), autoincrement=False, nullable=False),
        *_annotation_columns(),
        sa.Column("updated_at", UTC_DATETIME, nullable=False),
        sa.PrimaryKeyConstraint("gift_id", name=op.f("pk_gift_annotation")),
    )
    op.create_table(
        "legacy_detail",
        sa.Column("raw_key", sa.String(length=96), nullable=False),
        sa.Column(
            "kind",
            sa.Enum("GIFT", "TOKEN", name="legacykeykind", native_enum=False),
            nullable=False,
        ),
        sa.Column("key_value", UINT256, nullable=False),
        *_annotation_columns(),
        sa.Column("claimer", sa.String(length=42), nullable=True),
        sa.Column("stamped_gift_id", sa.Integer(), nullable=True),
        sa.Column("stamped_token_id", UINT256, nullable=True),
        sa.Column("repaired_into", sa.Integer(), nullable=True),
        sa.Column("imported_at", UTC_DATETIME, nullable=False),
        sa.PrimaryKeyConstraint("raw_key", name=op.f("pk_legacy_detail")),
    )
    op.create_table(
        "gift_event",
        sa.Column("event_offset", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("event_id", sa.String(length=66), nullable=False),
        sa.Column(
            "event_type",
            sa.Enum(
                "GIFT_CREATED",
                "GIFT_CLAIMED",
                "GIFT_RETURNED",
                "GIFT_EXPIRED",
                "GIFT_VIEWED",
                name="eventtype",
                native_enum=False,
            ),
            nullable=False,
        ),
        sa.Column("gift_id", sa.Integer(), nullable=False),
        sa.Column("campaign_id", sa.String(length=64), nullable=False),
        sa.Column("block_number", sa.Integer(), nullable=False),
        sa.Column("block_timestamp", UTC_DATETIME, nullable=False),
        sa.Column("tx_hash", sa.String(length=128), nullable=False),
        sa.Column("log_index", sa.Integer(), nullable=False),
        sa.Column("processed_at", UTC_DATETIME, nullable=False),
        sa.Column(
            "source",
            sa.Enum("RECONCILIATION", "REALTIME", "MANUAL", name="eventsource", native_enum=False),
            nullable=False,
        ),
        sa.Column("token_id", UINT256, nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("event_offset", name=op.f("pk_gift_event")),
        sa.UniqueConstraint("event_id", name=op.f("uq_gift_event_event_id")),
    )
    op.create_index(
        "ix_gift_event_campaign_offset", "gift_event", ["campaign_id", "event_offset"]
    )
    op.create_index("ix_gift_event_gift_id", "gift_event", ["gift_id"])
    op.create_table(
        "campaign_rollup",
        sa.Column("campaign_id", sa.String(length=64), nullable=False),
        sa.Column("total_gifts", sa.Integer(), nullable=False),
        sa.Column("viewed", sa.Integer(), nullable=False),
        sa.Column("total_value", UINT256, nullable=False),
        sa.Column("gift_states", sa.JSON(), nullable=False),
        sa.Column("last_offset", sa.Integer(), nullable=False),
        sa.Column("last_event_id", sa.String(length=66), nullable=True),
        sa.Column("updated_at", UTC_DATETIME, nullable=False),
        sa.PrimaryKeyConstraint("campaign_id", name=op.f("pk_campaign_rollup")),
    )
    op.create_table(
        "reconcile_checkpoint",
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("block_number", sa.Integer(), nullable=False),
        sa.Column("updated_at", UTC_DATETIME, nullable=False),
        sa.PrimaryKeyConstraint("name", name=op.f("pk_reconcile_checkpoint")),
    )


def downgrade() -> None:
    op.drop_table("reconcile_checkpoint")
    op.drop_table("campaign_rollup")
    op.drop_index("ix_gift_event_gift_id", table_name="gift_event")
    op.drop_index("ix_gift_event_campaign_offset", table_name="gift_event")
    op.drop_table("gift_event")
    op.drop_table("legacy_detail")
    op.drop_table("gift_annotation")
    op.drop_table("identifier_mapping")
    op.drop_table("gift")
