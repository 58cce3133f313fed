"""Read gift records straight from the escrow contract."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from giftsync.adapters.http_resilience import ResilientClient
from giftsync.domain.errors import ServiceUnavailableError
from giftsync.domain.model import ZERO_ADDRESS, GiftStatus, same_address
from giftsync.domain.ports import OnChainGift

from .abi import decode_get_gift, decode_uint, encode_get_gift, encode_gift_counter
from .client import ChainRpcError, JsonRpcSession
from .translator import block_time

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from giftsync.config.chain import ChainConfig
    from giftsync.config.http_resilience import ResilienceConfig

log = getLogger(__name__)


@dataclass(slots=True)
class JsonRpcEscrowReader:
    """``EscrowReader`` backed by ``eth_call`` against the configured escrow.

    Every public call runs its own event loop and client, so a multi-gift read
    should go through ``scan_gifts`` to share one connection and one rate limit.
    """

    config: ChainConfig
    client_factory: Callable[[ResilienceConfig], ResilientClient] = ResilientClient

    def get_gift(self, gift_id: int) -> OnChainGift | None:
        return self.scan_gifts([gift_id])[0]

    def gift_counter(self) -> int:
        return asyncio.run(self._gift_counter())

    def scan_gifts(
        self,
        gift_ids: Sequence[int],
        *,
        until: Callable[[OnChainGift], bool] | None = None,
        timeout: float | None = None,
    ) -> list[OnChainGift | None]:
        return asyncio.run(self._scan(list(gift_ids), until, timeout))

    async def _scan(
        self,
        gift_ids: list[int],
        until: Callable[[OnChainGift], bool] | None,
        timeout: float | None,
    ) -> list[OnChainGift | None]:
        gifts: list[OnChainGift | None] = []
        try:
            async with asyncio.timeout(timeout):
                async with self.client_factory(self.config.resilience) as client:
                    rpc = JsonRpcSession(client, self.config.rpc_url)
                    for gift_id in gift_ids:
                        gift = await self._read_gift(rpc, gift_id)
                        gifts.append(gift)
                        if gift is not None and until is not None and until(gift):
                            break
        except TimeoutError as exc:
            raise ServiceUnavailableError(
                f"getGift scan timed out after {len(gifts)} of {len(gift_ids)} reads"
            ) from exc
        return gifts

    async def _read_gift(self, rpc: JsonRpcSession, gift_id: int) -> OnChainGift | None:
        try:
            raw = await rpc.call_contract(self.config.escrow_address, encode_get_gift(gift_id))
        except ChainRpcError as exc:
            if exc.reverted:
                log.debug(f"getGift({gift_id}) reverted: {exc}")
                return None
            raise

        creator, expiration, nft_contract, token_id, password_hash, status = decode_get_gift(raw)
        if same_address(creator, ZERO_ADDRESS):
            return None
        return OnChainGift(
            gift_id=gift_id,
            creator=creator,
            expiration_time=block_time(expiration),
            nft_contract=nft_contract,
            token_id=token_id,
            password_hash=password_hash,
            status=GiftStatus.from_chain(status),
        )

    async def _gift_counter(self) -> int:
        async with self.client_factory(self.config.resilience) as client:
            rpc = JsonRpcSession(client, self.config.rpc_url)
            raw = await rpc.call_contract(self.config.escrow_address, encode_gift_counter())
        return decode_uint(raw)


if TYPE_CHECKING:
    from giftsync.domain.ports import EscrowReader

    def _escrow_check(config: ChainConfig) -> EscrowReader:
        return JsonRpcEscrowReader(config)
