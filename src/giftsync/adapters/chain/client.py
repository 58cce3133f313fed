"""JSON-RPC client for an Ethereum-compatible node."""

from __future__ import annotations

import itertools
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from eth_utils import decode_hex
from pydantic import ValidationError

from giftsync.domain.errors import ServiceUnavailableError

from .schema import BlockHeader, LogEntry, RpcResponse

if TYPE_CHECKING:
    from collections.abc import Sequence

    from giftsync.adapters.http_resilience import ResilientClient

log = getLogger(__name__)

EXECUTION_REVERTED = 3


class ChainRpcError(RuntimeError):
    """Raised when the node answers with a JSON-RPC error object or garbage."""

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code

    @property
    def reverted(self) -> bool:
        return self.code == EXECUTION_REVERTED or "revert" in str(self).lower()


class JsonRpcSession:
    """Issues JSON-RPC calls over an open ``ResilientClient``.

    Transport failures that survive the retry layer surface as
    ``ServiceUnavailableError``; error objects returned by the node surface as
    ``ChainRpcError`` so callers can tell "node down" from "request rejected".
    """

    def __init__(self, client: ResilientClient, url: str) -> None:
        self._client = client
        self._url = url
        self._ids = itertools.count(1)

    async def call(self, method: str, params: Sequence[object] = ()) -> object:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": list(params),
        }
        try:
            response = await self._client.post(self._url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ServiceUnavailableError(f"RPC {method} failed: {exc}") from exc

        try:
            body = RpcResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ChainRpcError(f"RPC {method} returned an unreadable body") from exc
        if body.error is not None:
            log.warning(f"RPC {method} error {body.error.code}: {body.error.message}")
            raise ChainRpcError(body.error.message, code=body.error.code)
        return body.result

    async def block_number(self) -> int:
        return _quantity(await self.call("eth_blockNumber"), method="eth_blockNumber")

    async def call_contract(self, to: str, data: str, *, block: str = "latest") -> bytes:
        result = await self.call("eth_call", [{"to": to, "data": data}, block])
        if not isinstance(result, str):
            raise ChainRpcError("eth_call returned a non-hex result")
        return decode_hex(result)

    async def get_logs(
        self,
        *,
        address: str,
        topics: Sequence[object],
        from_block: int,
        to_block: int,
    ) -> list[LogEntry]:
        query = {
            "address": address,
            "topics": list(topics),
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block),
        }
        result = await self.call("eth_getLogs", [query])
        if not isinstance(result, list):
            raise ChainRpcError("eth_getLogs returned a non-list result")
        try:
            return [LogEntry.model_validate(entry) for entry in result]
        except ValidationError as exc:
            raise ChainRpcError("eth_getLogs returned a malformed log entry") from exc

    async def get_block(self, number: int) -> BlockHeader:
        result = await self.call("eth_getBlockByNumber", [hex(number), False])
        if result is None:
            raise ChainRpcError(f"Block {number} is not available")
        try:
            return BlockHeader.model_validate(result)
        except ValidationError as exc:
            raise ChainRpcError(f"Block {number} header is malformed") from exc


def _quantity(value: object, *, method: str) -> int:
    if isinstance(value, str) and value.startswith("0x"):
        return int(value, 16)
    raise ChainRpcError(f"{method} returned a non-quantity result: {value!r}")
