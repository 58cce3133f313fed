from __future__ import annotations

import random
from typing import TYPE_CHECKING

import pytest

from giftsync.adapters.sqlalchemy.repositories import SqlAlchemyRollupRepository
from giftsync.domain.errors import ServiceUnavailableError
from giftsync.domain.event_log import CanonicalEventLog
from giftsync.domain.materializer import Materializer
from giftsync.domain.model import CampaignRollup, EventType, TrackedStatus
from tests.helpers.store import make_event

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from giftsync.adapters.sqlalchemy import SqlAlchemyGiftUnitOfWork
    from giftsync.domain.model import CanonicalEvent

CAMPAIGN = "campaign_0x11111111"


def _history() -> list[CanonicalEvent]:
    return [
        make_event(EventType.GIFT_CREATED, 1, 10, payload={"amount": 100}),
        make_event(EventType.GIFT_CREATED, 2, 11, payload={"amount": "0x32"}),
        make_event(EventType.GIFT_CREATED, 3, 12),
        make_event(EventType.GIFT_VIEWED, 1, 13),
        make_event(EventType.GIFT_EXPIRED, 2, 14),
        make_event(EventType.GIFT_CLAIMED, 1, 15),
        make_event(EventType.GIFT_RETURNED, 2, 16),
        make_event(EventType.GIFT_VIEWED, 3, 17),
    ]


def _append(
    factory: Callable[[], SqlAlchemyGiftUnitOfWork], events: Sequence[CanonicalEvent]
) -> None:
    with factory() as uow:
        event_log = CanonicalEventLog(uow.repositories.events)
        for event in events:
            event_log.append(event)
        uow.commit()


def test_counters_follow_the_log(
    unit_of_work_factory: Callable[[], SqlAlchemyGiftUnitOfWork],
) -> None:
    _append(unit_of_work_factory, _history())
    materializer = Materializer(unit_of_work_factory)

    assert materializer.catch_up() == 8
    rollup = materializer.rollup(CAMPAIGN)

    assert rollup is not None
    assert rollup.counters() == {
        "total_gifts": 3,
        "claimed": 1,
        "returned": 1,
        "expired": 0,
        "viewed": 2,
        "total_value": 150,
    }
    assert rollup.gift_states[3].status is TrackedStatus.ACTIVE
    assert materializer.catch_up() == 0


@pytest.mark.parametrize("seed", [1, 7, 42])
def test_incremental_matches_rebuild_for_any_append_order(
    unit_of_work_factory: Callable[[], SqlAlchemyGiftUnitOfWork], seed: int
) -> None:
    events = _history()
    random.Random(seed).shuffle(events)
    materializer = Materializer(unit_of_work_factory, batch_size=3)

    for chunk in (events[:3], events[3:5], events[5:]):
        _append(unit_of_work_factory, chunk)
        materializer.catch_up(CAMPAIGN)
    incremental = materializer.rollup(CAMPAIGN)

    rebuilt = materializer.rebuild(CAMPAIGN)

    assert incremental is not None
    assert incremental.counters() == rebuilt.counters()
    assert incremental.gift_states == rebuilt.gift_states
    assert incremental.last_offset == rebuilt.last_offset
    assert rebuilt.gift_states[1].status is TrackedStatus.CLAIMED
    assert rebuilt.gift_states[2].status is TrackedStatus.RETURNED


def test_rebuild_replaces_a_corrupted_rollup(
    unit_of_work_factory: Callable[[], SqlAlchemyGiftUnitOfWork],
) -> None:
    _append(unit_of_work_factory, _history())
    with unit_of_work_factory() as uow:
        uow.repositories.rollups.replace(CampaignRollup(CAMPAIGN, total_gifts=99, last_offset=8))
        uow.commit()

    materializer = Materializer(unit_of_work_factory)
    assert materializer.catch_up(CAMPAIGN) == 0
    rebuilt = materializer.rebuild_all()

    assert [rollup.total_gifts for rollup in rebuilt] == [3]
    stored = materializer.rollup(CAMPAIGN)
    assert stored is not None
    assert stored.total_gifts == 3


def test_rollup_write_is_compare_and_swap(
    unit_of_work_factory: Callable[[], SqlAlchemyGiftUnitOfWork],
) -> None:
    with unit_of_work_factory() as uow:
        rollups = uow.repositories.rollups
        assert rollups.compare_and_swap(CampaignRollup(CAMPAIGN), expected_offset=None)
        assert not rollups.compare_and_swap(CampaignRollup(CAMPAIGN), expected_offset=None)
        assert rollups.compare_and_swap(
            CampaignRollup(CAMPAIGN, total_gifts=1, last_offset=4), expected_offset=0
        )
        assert not rollups.compare_and_swap(
            CampaignRollup(CAMPAIGN, total_gifts=2, last_offset=5), expected_offset=0
        )
        uow.commit()
        stored = rollups.get(CAMPAIGN)

    assert stored is not None
    assert (stored.total_gifts, stored.last_offset) == (1, 4)


def test_losing_writer_reloads_instead_of_double_counting(
    file_unit_of_work_factory: Callable[[], SqlAlchemyGiftUnitOfWork],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    factory = file_unit_of_work_factory
    first, second, third = _history()[:3]
    _append(factory, [first])
    materializer = Materializer(factory)
    materializer.catch_up(CAMPAIGN)
    _append(factory, [second, third])

    with factory() as uow:
        competing = uow.repositories.events.read(after_offset=1, limit=1)[0]

    original = SqlAlchemyRollupRepository.compare_and_swap
    raced: list[bool] = []

    def racing_compare_and_swap(
        self: SqlAlchemyRollupRepository, rollup: CampaignRollup, *, expected_offset: int | None
    ) -> bool:
        if not raced:
            raced.append(True)
            # another worker applies the next event between our read and our write
            Materializer(factory).apply(competing)
        return original(self, rollup, expected_offset=expected_offset)

    monkeypatch.setattr(SqlAlchemyRollupRepository, "compare_and_swap", racing_compare_and_swap)

    assert materializer.catch_up(CAMPAIGN) == 1
    rollup = materializer.rollup(CAMPAIGN)

    assert rollup is not None
    assert rollup.total_gifts == 3
    assert rollup.last_offset == 3


def test_endless_contention_surfaces_as_unavailable(
    unit_of_work_factory: Callable[[], SqlAlchemyGiftUnitOfWork],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _append(unit_of_work_factory, _history()[:1])
    monkeypatch.setattr(
        SqlAlchemyRollupRepository,
        "compare_and_swap",
        lambda self, rollup, *, expected_offset: False,
    )

    with pytest.raises(ServiceUnavailableError):
        Materializer(unit_of_work_factory, max_conflicts=2).catch_up(CAMPAIGN)


def test_apply_requires_a_stored_event(
    unit_of_work_factory: Callable[[], SqlAlchemyGiftUnitOfWork],
) -> None:
    with pytest.raises(ValueError, match="read back"):
        Materializer(unit_of_work_factory).apply(_history()[0])


def test_apply_folds_in_earlier_unapplied_events_first(
    unit_of_work_factory: Callable[[], SqlAlchemyGiftUnitOfWork],
) -> None:
    _append(unit_of_work_factory, _history()[:4])
    with unit_of_work_factory() as uow:
        stored = CanonicalEventLog(uow.repositories.events).read()
    materializer = Materializer(unit_of_work_factory)

    assert materializer.apply(stored[2]) is True
    rollup = materializer.rollup(CAMPAIGN)

    assert rollup is not None
    assert rollup.total_gifts == 3
    assert rollup.total_value == 150
    assert rollup.viewed == 0
    assert rollup.last_offset == stored[2].offset
    assert materializer.apply(stored[1]) is False
    assert materializer.catch_up(CAMPAIGN) == 1
