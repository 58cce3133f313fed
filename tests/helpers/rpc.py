"""A scripted JSON-RPC node served through ``httpx.MockTransport``."""

from __future__ import annotations

import json
from dataclasses import dataclass, field

import httpx
from eth_abi import encode

from giftsync.adapters.chain.abi import (
    GET_GIFT_OUTPUT,
    GET_GIFT_SIGNATURE,
    GIFT_COUNTER_SIGNATURE,
    TRANSFER_TOPIC,
    EventSpec,
    address_topic,
    function_selector,
)
from giftsync.adapters.http_resilience import ResilientClient
from giftsync.config.chain import ChainConfig
from giftsync.config.http_resilience import ResilienceConfig, RetryPolicy
from giftsync.domain.model import ZERO_ADDRESS

from .chain import CHAIN_ID, ESCROW_ADDRESS, NFT_ADDRESS

BLOCK_TIME_BASE = 1_735_689_600
RPC_URL = "http://node.test/rpc"


class RpcFault(Exception):
    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def uint_topic(value: int) -> str:
    return "0x" + encode(["uint256"], [value]).hex()


def escrow_log(
    spec: EventSpec,
    gift_id: int,
    addresses: tuple[str, str],
    data: tuple[object, ...],
    *,
    block_number: int,
    log_index: int = 0,
    tx_hash: str | None = None,
) -> dict[str, object]:
    return {
        "address": ESCROW_ADDRESS,
        "topics": [spec.topic, uint_topic(gift_id), *(address_topic(a) for a in addresses)],
        "data": "0x" + encode(list(spec.data_types), list(data)).hex(),
        "blockNumber": hex(block_number),
        "transactionHash": tx_hash or f"0x{block_number:064X}",
        "logIndex": hex(log_index),
        "removed": False,
    }


def transfer_log(
    token_id: int, sender: str, recipient: str, *, block_number: int, log_index: int = 0
) -> dict[str, object]:
    return {
        "address": NFT_ADDRESS,
        "topics": [
            TRANSFER_TOPIC,
            address_topic(sender),
            address_topic(recipient),
            uint_topic(token_id),
        ],
        "data": "0x",
        "blockNumber": hex(block_number),
        "transactionHash": f"0x{block_number:064x}",
        "logIndex": hex(log_index),
    }


@dataclass
class FakeNode:
    """Answers the handful of methods the chain adapter uses."""

    head: int = 1_000
    gifts: dict[int, tuple[object, ...]] = field(default_factory=dict)
    counter: int = 0
    logs: list[dict[str, object]] = field(default_factory=list)
    max_span: int | None = None
    revert_gift_ids: set[int] = field(default_factory=set)
    status_code: int = 200
    methods: list[str] = field(default_factory=list)
    log_queries: list[tuple[int, int]] = field(default_factory=list)

    def add_gift(
        self,
        gift_id: int,
        *,
        creator: str,
        expiration: int,
        token_id: int,
        password_hash: bytes,
        status: int = 0,
    ) -> None:
        self.gifts[gift_id] = (creator, expiration, NFT_ADDRESS, token_id, password_hash, status)
        self.counter = max(self.counter, gift_id)

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.methods.append(body["method"])
        if self.status_code != 200:
            return httpx.Response(self.status_code, text="upstream unavailable")
        try:
            result = self._dispatch(body["method"], body["params"])
        except RpcFault as fault:
            error = {"code": fault.code, "message": fault.message}
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": error})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    def client_factory(self, config: ResilienceConfig) -> ResilientClient:
        return ResilientClient(config, transport=httpx.MockTransport(self.handler))

    def _dispatch(self, method: str, params: list[object]) -> object:
        if method == "eth_blockNumber":
            return hex(self.head)
        if method == "eth_call":
            call = params[0]
            assert isinstance(call, dict)
            return self._eth_call(str(call["data"]))
        if method == "eth_getLogs":
            query = params[0]
            assert isinstance(query, dict)
            return self._get_logs(query)
        if method == "eth_getBlockByNumber":
            number = int(str(params[0]), 16)
            return {
                "number": hex(number),
                "timestamp": hex(BLOCK_TIME_BASE + 2 * number),
                "hash": f"0x{number:064x}",
            }
        raise RpcFault(-32601, f"the method {method} does not exist")

    def _eth_call(self, data: str) -> str:
        if data == function_selector(GIFT_COUNTER_SIGNATURE):
            return "0x" + encode(["uint256"], [self.counter]).hex()
        if data.startswith(function_selector(GET_GIFT_SIGNATURE)):
            gift_id = int(data[10:], 16)
            if gift_id in self.revert_gift_ids:
                raise RpcFault(3, "execution reverted: Gift does not exist")
            values = self.gifts.get(
                gift_id, (ZERO_ADDRESS, 0, ZERO_ADDRESS, 0, b"\x00" * 32, 0)
            )
            return "0x" + encode(list(GET_GIFT_OUTPUT), list(values)).hex()
        raise RpcFault(-32000, "execution reverted")

    def _get_logs(self, query: dict[str, object]) -> list[dict[str, object]]:
        from_block = int(str(query["fromBlock"]), 16)
        to_block = int(str(query["toBlock"]), 16)
        self.log_queries.append((from_block, to_block))
        if self.max_span is not None and to_block - from_block + 1 > self.max_span:
            raise RpcFault(-32005, "query returned more than 10000 results")
        address = str(query["address"]).lower()
        topics = query["topics"]
        assert isinstance(topics, list)
        first = topics[0]
        wanted = {t.lower() for t in first} if isinstance(first, list) else {str(first).lower()}
        matched: list[dict[str, object]] = []
        for entry in self.logs:
            block = int(str(entry["blockNumber"]), 16)
            entry_topics = entry["topics"]
            assert isinstance(entry_topics, list)
            if str(entry["address"]).lower() != address or not from_block <= block <= to_block:
                continue
            if str(entry_topics[0]).lower() not in wanted:
                continue
            matched.append(entry)
        return matched


def chain_config(*, nft_address: str | None = NFT_ADDRESS) -> ChainConfig:
    return ChainConfig(
        rpc_url=RPC_URL,
        escrow_address=ESCROW_ADDRESS,
        chain_id=CHAIN_ID,
        nft_address=nft_address,
        resilience=ResilienceConfig(
            name="chain-rpc-test",
            timeout_seconds=1.0,
            retry=RetryPolicy(total=0),
        ),
    )
