from __future__ import annotations

from typing import TYPE_CHECKING

from giftsync.domain.event_log import CanonicalEventLog
from giftsync.domain.model import EventType
from giftsync.domain.ports import ReadOrder
from tests.helpers.store import make_event

if TYPE_CHECKING:
    from collections.abc import Callable

    from giftsync.adapters.sqlalchemy import SqlAlchemyGiftUnitOfWork


def test_duplicate_append_is_a_noop(
    unit_of_work_factory: Callable[[], SqlAlchemyGiftUnitOfWork],
) -> None:
    event = make_event(EventType.GIFT_CREATED, 1, 10, payload={"amount": 5})

    with unit_of_work_factory() as uow:
        event_log = CanonicalEventLog(uow.repositories.events)
        assert event_log.append(event) is True
        assert event_log.append(event) is False
        uow.commit()

    with unit_of_work_factory() as uow:
        assert CanonicalEventLog(uow.repositories.events).append(event) is False
        stored = CanonicalEventLog(uow.repositories.events).read()

    assert len(stored) == 1
    assert stored[0].event_id == event.event_id
    assert stored[0].payload == {"amount": 5}
    assert stored[0].offset is not None


def test_offsets_follow_append_order_not_chain_order(
    unit_of_work_factory: Callable[[], SqlAlchemyGiftUnitOfWork],
) -> None:
    late = make_event(EventType.GIFT_CLAIMED, 1, 50)
    early = make_event(EventType.GIFT_CREATED, 1, 10)

    with unit_of_work_factory() as uow:
        event_log = CanonicalEventLog(uow.repositories.events)
        event_log.append(late)
        event_log.append(early)
        uow.commit()
        forward = event_log.read()
        reverse = event_log.read(order=ReadOrder.REVERSE)

    assert [event.block_number for event in forward] == [50, 10]
    assert [event.block_number for event in reverse] == [10, 50]
    assert forward[0].offset is not None
    assert forward[1].offset is not None
    assert forward[0].offset < forward[1].offset


def test_read_filters_and_pages(
    unit_of_work_factory: Callable[[], SqlAlchemyGiftUnitOfWork],
) -> None:
    with unit_of_work_factory() as uow:
        event_log = CanonicalEventLog(uow.repositories.events)
        for block in range(1, 8):
            event_log.append(
                make_event(
                    EventType.GIFT_CREATED,
                    block,
                    block,
                    campaign_id="campaign_a" if block % 2 else "campaign_b",
                )
            )
        uow.commit()

        everything = list(event_log.iter_forward(page_size=2))
        campaign_a = event_log.read(campaign_id="campaign_a")
        after_third = event_log.read(after_offset=everything[2].offset, limit=2)
        for_gift = event_log.read(gift_id=4)
        newest = event_log.recent(limit=1)
        campaigns = list(uow.repositories.events.campaigns())

    assert [event.gift_id for event in everything] == list(range(1, 8))
    assert [event.gift_id for event in campaign_a] == [1, 3, 5, 7]
    assert [event.gift_id for event in after_third] == [4, 5]
    assert [event.gift_id for event in for_gift] == [4]
    assert [event.gift_id for event in newest] == [7]
    assert campaigns == ["campaign_a", "campaign_b"]
