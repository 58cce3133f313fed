"""gift valued events and expiry sweep index

Revision ID: 0002_gift_valued
Revises: 0001_initial
Create Date: 2026-10-19 16:00:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0002_gift_valued"
down_revision = "0001_initial"
branch_labels = None
depends_on = None

_OLD_TYPES = ("GIFT_CREATED", "GIFT_CLAIMED", "GIFT_RETURNED", "GIFT_EXPIRED", "GIFT_VIEWED")
_NEW_TYPES = (*_OLD_TYPES, "GIFT_VALUED")


def _event_type(values: tuple[str, ...]) -> sa.Enum:
    return sa.Enum(*values, name="eventtype", native_enum=False)


def upgrade() -> None:
    with op.batch_alter_table("gift_event") as batch_op:
        batch_op.alter_column(
            "event_type",
            existing_type=_event_type(_OLD_TYPES),
            type_=_event_type(_NEW_TYPES),
            existing_nullable=False,
        )
    op.create_index("ix_gift_status_expiration", "gift", ["status", "expiration_time"])


def downgrade() -> None:
    op.drop_index("ix_gift_status_expiration", table_name="gift")
    op.execute("DELETE FROM gift_event WHERE event_type = 'GIFT_VALUED'")
    with op.batch_alter_table("gift_event") as batch_op:
        batch_op.alter_column(
            "event_type",
            existing_type=_event_type(_NEW_TYPES),
            type_=_event_type(_OLD_TYPES),
            existing_nullable=False,
        )
