from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING

import pytest
from sqlalchemy.exc import StatementError

from giftsync.domain.errors import DuplicateEventError
from giftsync.domain.model import (
    AnnotationPatch,
    EventType,
    GiftAnnotations,
    GiftStatus,
    LegacyDetail,
    LegacyKeyKind,
)
from tests.helpers.chain import CLAIMER, make_on_chain_gift
from tests.helpers.store import make_event

if TYPE_CHECKING:
    from collections.abc import Callable

    from giftsync.adapters.sqlalchemy import SqlAlchemyGiftUnitOfWork

CAPTURED = datetime(2025, 2, 1, 12, 0, tzinfo=UTC)
HUGE_TOKEN = 2**255 + 17


def test_gift_round_trip_and_status_update(
    unit_of_work_factory: Callable[[], SqlAlchemyGiftUnitOfWork],
) -> None:
    gift = make_on_chain_gift(209, token_id=HUGE_TOKEN).to_gift()

    with unit_of_work_factory() as uow:
        uow.repositories.gifts.add(gift)
        uow.repositories.gifts.add(gift)
        uow.commit()

    with unit_of_work_factory() as uow:
        stored = uow.repositories.gifts.get(209)
        assert stored is not None
        stored.advance(GiftStatus.CLAIMED, claimer=CLAIMER)
        uow.repositories.gifts.update(stored)
        uow.commit()

    with unit_of_work_factory() as uow:
        reloaded = uow.repositories.gifts.get(209)

    assert reloaded is not None
    assert reloaded.token_id == HUGE_TOKEN
    assert reloaded.password_hash == gift.password_hash
    assert reloaded.status is GiftStatus.CLAIMED
    assert reloaded.claimer == CLAIMER
    assert reloaded.expiration_time.tzinfo is not None


def test_expired_active_lists_only_lapsed_active_gifts(
    unit_of_work_factory: Callable[[], SqlAlchemyGiftUnitOfWork],
) -> None:
    lapsed = -timedelta(hours=1)
    gifts = [
        make_on_chain_gift(3, token_id=13, expires_in=lapsed),
        make_on_chain_gift(1, token_id=11, expires_in=lapsed),
        make_on_chain_gift(2, token_id=12),
        make_on_chain_gift(4, token_id=14, expires_in=lapsed, status=GiftStatus.RETURNED),
    ]
    with unit_of_work_factory() as uow:
        for gift in gifts:
            uow.repositories.gifts.add(gift.to_gift())
        uow.commit()

    with unit_of_work_factory() as uow:
        expired = uow.repositories.gifts.expired_active(datetime.now(UTC))
        boundary = uow.repositories.gifts.expired_active(gifts[1].expiration_time)

    assert [gift.gift_id for gift in expired] == [1, 3]
    assert [gift.gift_id for gift in boundary] == [1, 3]


def test_mapping_is_unique_in_both_directions(
    unit_of_work_factory: Callable[[], SqlAlchemyGiftUnitOfWork],
) -> None:
    with unit_of_work_factory() as uow:
        mappings = uow.repositories.mappings
        assert mappings.add(HUGE_TOKEN, 209) is True
        assert mappings.add(HUGE_TOKEN, 300) is False
        assert mappings.add(1, 209) is False
        assert mappings.gift_id_for(HUGE_TOKEN) == 209
        assert mappings.token_id_for(209) == HUGE_TOKEN


def test_negative_uint256_is_rejected(
    unit_of_work_factory: Callable[[], SqlAlchemyGiftUnitOfWork],
) -> None:
    with pytest.raises(StatementError), unit_of_work_factory() as uow:
        uow.repositories.mappings.add(-1, 1)


def test_annotation_merge_only_touches_supplied_columns(
    unit_of_work_factory: Callable[[], SqlAlchemyGiftUnitOfWork],
) -> None:
    with unit_of_work_factory() as uow:
        annotations = uow.repositories.annotations
        annotations.merge(209, AnnotationPatch(email_encrypted="a"), captured_at=CAPTURED)
        merged = annotations.merge(
            209, AnnotationPatch(appointment_date=date(2025, 3, 1)), captured_at=CAPTURED
        )
        uow.commit()

    assert merged.email_encrypted == "a"
    assert merged.appointment_date == date(2025, 3, 1)
    assert merged.email_captured_at == CAPTURED


def test_annotation_fill_never_overwrites(
    unit_of_work_factory: Callable[[], SqlAlchemyGiftUnitOfWork],
) -> None:
    with unit_of_work_factory() as uow:
        annotations = uow.repositories.annotations
        annotations.fill(5, GiftAnnotations(education_score=1))
        annotations.fill(5, GiftAnnotations(education_score=2, appointment_date=date(2025, 1, 2)))
        stored = annotations.get(5)

    assert stored == GiftAnnotations(education_score=1, appointment_date=date(2025, 1, 2))


def test_legacy_rows_round_trip(
    unit_of_work_factory: Callable[[], SqlAlchemyGiftUnitOfWork],
) -> None:
    detail = LegacyDetail(
        raw_key="token:186",
        kind=LegacyKeyKind.TOKEN,
        key_value=186,
        annotations=GiftAnnotations(appointment_time="10:00", email_captured_at=CAPTURED),
        claimer=CLAIMER,
        stamped_token_id=186,
    )

    with unit_of_work_factory() as uow:
        uow.repositories.legacy.add(detail)
        uow.repositories.legacy.mark_repaired("token:186", 209)
        uow.commit()
        stored = uow.repositories.legacy.get("token:186")

    assert stored is not None
    assert stored.kind is LegacyKeyKind.TOKEN
    assert stored.annotations == detail.annotations
    assert stored.claimer == CLAIMER
    assert stored.repaired_into == 209


def test_duplicate_event_raises(
    unit_of_work_factory: Callable[[], SqlAlchemyGiftUnitOfWork],
) -> None:
    event = make_event(EventType.GIFT_CREATED, 1, 10)

    with unit_of_work_factory() as uow:
        stored = uow.repositories.events.add(event)
        with pytest.raises(DuplicateEventError) as excinfo:
            uow.repositories.events.add(event)

    assert stored.offset == 1
    assert excinfo.value.event_id == event.event_id


def test_checkpoint_only_moves_forward(
    unit_of_work_factory: Callable[[], SqlAlchemyGiftUnitOfWork],
) -> None:
    with unit_of_work_factory() as uow:
        checkpoints = uow.repositories.checkpoints
        assert checkpoints.get("escrow") is None
        checkpoints.advance("escrow", 10)
        checkpoints.advance("escrow", 8)
        assert checkpoints.get("escrow") == 10
        checkpoints.advance("escrow", 12)
        assert checkpoints.get("escrow") == 12
