from __future__ import annotations

from datetime import UTC, datetime

import pytest

from giftsync.adapters.chain import ChainRpcError, EscrowLogFetcher
from giftsync.adapters.chain.abi import GIFT_CREATED, GIFT_RETURNED
from giftsync.domain.model import ZERO_ADDRESS, EventType
from tests.helpers.chain import CREATOR, ESCROW_ADDRESS, NFT_ADDRESS
from tests.helpers.rpc import BLOCK_TIME_BASE, FakeNode, chain_config, escrow_log, transfer_log


def _created(gift_id: int, token_id: int, block: int, log_index: int = 0) -> dict[str, object]:
    return escrow_log(
        GIFT_CREATED,
        gift_id,
        (CREATOR, NFT_ADDRESS),
        (token_id, 1_767_225_600, ZERO_ADDRESS, ""),
        block_number=block,
        log_index=log_index,
    )


def _returned(gift_id: int, block: int) -> dict[str, object]:
    return escrow_log(
        GIFT_RETURNED, gift_id, (CREATOR, CREATOR), (BLOCK_TIME_BASE,), block_number=block
    )


def test_fetch_sorts_and_stamps_block_times() -> None:
    node = FakeNode(
        logs=[_returned(1, 9), _created(2, 11, 7, log_index=4), _created(1, 10, 7, log_index=1)]
    )
    fetcher = EscrowLogFetcher(chain_config(), client_factory=node.client_factory)

    result = fetcher(from_block=0, to_block=19)

    assert result.to_block == 19
    assert [(log.block_number, log.log_index) for log in result.logs] == [(7, 1), (7, 4), (9, 0)]
    assert [log.event_type for log in result.logs] == [
        EventType.GIFT_CREATED,
        EventType.GIFT_CREATED,
        EventType.GIFT_RETURNED,
    ]
    assert result.logs[0].block_timestamp == datetime.fromtimestamp(BLOCK_TIME_BASE + 14, tz=UTC)
    assert node.methods.count("eth_getBlockByNumber") == 2


def test_rejected_range_is_halved() -> None:
    node = FakeNode(logs=[_created(1, 10, 3), _created(2, 11, 12)], max_span=5)
    fetcher = EscrowLogFetcher(chain_config(), client_factory=node.client_factory)

    result = fetcher(from_block=0, to_block=19)

    assert (result.from_block, result.to_block) == (0, 4)
    assert [log.gift_id for log in result.logs] == [1]
    assert node.log_queries[:3] == [(0, 19), (0, 9), (0, 4)]


def test_single_block_rejection_propagates() -> None:
    node = FakeNode(max_span=0)
    fetcher = EscrowLogFetcher(chain_config(), client_factory=node.client_factory)

    with pytest.raises(ChainRpcError):
        fetcher(from_block=5, to_block=6)


def test_transfers_into_escrow_are_fetched() -> None:
    node = FakeNode(
        logs=[
            transfer_log(11, CREATOR, ESCROW_ADDRESS, block_number=8, log_index=2),
            transfer_log(10, CREATOR, ESCROW_ADDRESS, block_number=8, log_index=1),
        ]
    )
    fetcher = EscrowLogFetcher(chain_config(), client_factory=node.client_factory)

    result = fetcher(from_block=0, to_block=10)

    assert [transfer.token_id for transfer in result.transfers] == [10, 11]
    assert result.logs == []


def test_transfer_query_is_skipped_without_nft_contract() -> None:
    node = FakeNode(logs=[transfer_log(10, CREATOR, ESCROW_ADDRESS, block_number=8)])
    fetcher = EscrowLogFetcher(chain_config(nft_address=None), client_factory=node.client_factory)

    result = fetcher(from_block=0, to_block=10)

    assert result.transfers == []
    assert node.methods == ["eth_getLogs"]


def test_empty_range_makes_no_calls() -> None:
    node = FakeNode()
    fetcher = EscrowLogFetcher(chain_config(), client_factory=node.client_factory)

    result = fetcher(from_block=10, to_block=9)

    assert (result.from_block, result.to_block) == (10, 9)
    assert node.methods == []


def test_latest_block() -> None:
    node = FakeNode(head=4_321)
    fetcher = EscrowLogFetcher(chain_config(), client_factory=node.client_factory)

    assert fetcher.latest_block() == 4_321
