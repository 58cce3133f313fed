"""Fetch escrow and NFT logs for a block range."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from giftsync.adapters.http_resilience import ResilientClient
from giftsync.domain.ports import LogFetchResult

from .abi import ESCROW_EVENTS, TRANSFER_TOPIC, address_topic
from .client import ChainRpcError, JsonRpcSession
from .translator import block_time, translate_escrow_log, translate_transfer

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from giftsync.config.chain import ChainConfig
    from giftsync.config.http_resilience import ResilienceConfig
    from giftsync.domain.ports import ChainLog, TokenTransfer

    from .schema import LogEntry

log = getLogger(__name__)


@dataclass(slots=True)
class EscrowLogFetcher:
    """``GiftLogFetcher`` over ``eth_getLogs``.

    When the node rejects a range (most providers cap the span or result size) the
    window is halved until it is accepted, down to a single block. The returned
    ``LogFetchResult.to_block`` tells the caller how far this call actually got.
    """

    config: ChainConfig
    client_factory: Callable[[ResilienceConfig], ResilientClient] = ResilientClient

    def latest_block(self) -> int:
        return asyncio.run(self._latest_block())

    def __call__(self, *, from_block: int, to_block: int) -> LogFetchResult:
        if to_block < from_block:
            return LogFetchResult(from_block=from_block, to_block=to_block)
        return asyncio.run(self._fetch(from_block=from_block, to_block=to_block))

    async def _latest_block(self) -> int:
        async with self.client_factory(self.config.resilience) as client:
            return await JsonRpcSession(client, self.config.rpc_url).block_number()

    async def _fetch(self, *, from_block: int, to_block: int) -> LogFetchResult:
        async with self.client_factory(self.config.resilience) as client:
            rpc = JsonRpcSession(client, self.config.rpc_url)
            end = to_block
            while True:
                try:
                    escrow_entries, transfer_entries = await self._query(
                        rpc, from_block=from_block, to_block=end
                    )
                    break
                except ChainRpcError as exc:
                    if end <= from_block:
                        raise
                    end = from_block + (end - from_block) // 2
                    log.warning(
                        f"eth_getLogs rejected the range, retrying {from_block}..{end}: {exc}"
                    )

            timestamps: dict[int, datetime] = {}
            for block_number in sorted({entry.block_number for entry in escrow_entries}):
                header = await rpc.get_block(block_number)
                timestamps[block_number] = block_time(header.timestamp)

        logs: list[ChainLog] = []
        for entry in escrow_entries:
            if entry.removed:
                continue
            chain_log = translate_escrow_log(entry, block_timestamp=timestamps[entry.block_number])
            if chain_log is not None:
                logs.append(chain_log)
        transfers: list[TokenTransfer] = []
        for entry in transfer_entries:
            transfer = translate_transfer(entry)
            if transfer is not None:
                transfers.append(transfer)

        logs.sort(key=lambda item: (item.block_number, item.log_index))
        transfers.sort(key=lambda item: (item.block_number, item.log_index))
        log.debug(
            f"Fetched blocks {from_block}..{end}: {len(logs)} escrow logs, "
            f"{len(transfers)} transfers"
        )
        return LogFetchResult(from_block=from_block, to_block=end, logs=logs, transfers=transfers)

    async def _query(
        self, rpc: JsonRpcSession, *, from_block: int, to_block: int
    ) -> tuple[list[LogEntry], list[LogEntry]]:
        escrow_entries = await rpc.get_logs(
            address=self.config.escrow_address,
            topics=[list(ESCROW_EVENTS)],
            from_block=from_block,
            to_block=to_block,
        )
        if self.config.nft_address is None:
            return escrow_entries, []
        transfer_entries = await rpc.get_logs(
            address=self.config.nft_address,
            topics=[TRANSFER_TOPIC, None, address_topic(self.config.escrow_address)],
            from_block=from_block,
            to_block=to_block,
        )
        return escrow_entries, transfer_entries


if TYPE_CHECKING:
    from giftsync.domain.ports import GiftLogFetcher

    def _fetcher_check(config: ChainConfig) -> GiftLogFetcher:
        return EscrowLogFetcher(config)
