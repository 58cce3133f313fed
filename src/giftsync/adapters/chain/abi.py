"""Escrow and ERC-721 ABI fragments used by the chain adapter."""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property

from eth_abi import decode, encode
from eth_utils import decode_hex, keccak, to_checksum_address

from giftsync.domain.model import EventType

GET_GIFT_SIGNATURE = "getGift(uint256)"
GIFT_COUNTER_SIGNATURE = "giftCounter()"
TRANSFER_SIGNATURE = "Transfer(address,address,uint256)"

# creator, expirationTime, nftContract, tokenId, passwordHash, status
GET_GIFT_OUTPUT = ("address", "uint96", "address", "uint256", "bytes32", "uint8")


def event_topic(signature: str) -> str:
    return "0x" + keccak(text=signature).hex()


def function_selector(signature: str) -> str:
    return "0x" + keccak(text=signature)[:4].hex()


@dataclass(frozen=True)
class EventSpec:
    """One escrow event: which topics are indexed and how its data decodes."""

    name: str
    event_type: EventType
    indexed: tuple[str, ...]
    data_names: tuple[str, ...]
    data_types: tuple[str, ...]
    indexed_types: tuple[str, ...] = ("uint256", "address", "address")

    @property
    def signature(self) -> str:
        types = ",".join((*self.indexed_types, *self.data_types))
        return f"{self.name}({types})"

    @cached_property
    def topic(self) -> str:
        return event_topic(self.signature)


GIFT_REGISTERED_FROM_MINT = EventSpec(
    name="GiftRegisteredFromMint",
    event_type=EventType.GIFT_CREATED,
    indexed=("gift_id", "creator", "nft_contract"),
    data_names=("token_id", "expires_at", "gate", "gift_message", "registered_by"),
    data_types=("uint256", "uint40", "address", "string", "address"),
)
GIFT_CREATED = EventSpec(
    name="GiftCreated",
    event_type=EventType.GIFT_CREATED,
    indexed=("gift_id", "creator", "nft_contract"),
    data_names=("token_id", "expires_at", "gate", "gift_message"),
    data_types=("uint256", "uint40", "address", "string"),
)
GIFT_CLAIMED = EventSpec(
    name="GiftClaimed",
    event_type=EventType.GIFT_CLAIMED,
    indexed=("gift_id", "claimer", "recipient"),
    data_names=("gate", "gate_reason"),
    data_types=("address", "string"),
)
GIFT_RETURNED = EventSpec(
    name="GiftReturned",
    event_type=EventType.GIFT_RETURNED,
    indexed=("gift_id", "creator", "returned_by"),
    data_names=("timestamp",),
    data_types=("uint256",),
)

ESCROW_EVENTS: dict[str, EventSpec] = {
    event.topic: event
    for event in (GIFT_REGISTERED_FROM_MINT, GIFT_CREATED, GIFT_CLAIMED, GIFT_RETURNED)
}
TRANSFER_TOPIC = event_topic(TRANSFER_SIGNATURE)


def address_topic(address: str) -> str:
    """Left-pad an address to a 32-byte topic for ``eth_getLogs`` filters."""

    return "0x" + decode_hex(address).rjust(32, b"\x00").hex()


def topic_to_int(topic: str) -> int:
    return int(topic, 16)


def topic_to_address(topic: str) -> str:
    return to_checksum_address(decode_hex(topic)[-20:])


def encode_get_gift(gift_id: int) -> str:
    return function_selector(GET_GIFT_SIGNATURE) + encode(["uint256"], [gift_id]).hex()


def encode_gift_counter() -> str:
    return function_selector(GIFT_COUNTER_SIGNATURE)


def decode_get_gift(data: bytes) -> tuple[str, int, str, int, bytes, int]:
    creator, expiration, nft_contract, token_id, password_hash, status = decode(
        list(GET_GIFT_OUTPUT), data
    )
    return (
        to_checksum_address(creator),
        int(expiration),
        to_checksum_address(nft_contract),
        int(token_id),
        bytes(password_hash),
        int(status),
    )


def decode_uint(data: bytes) -> int:
    (value,) = decode(["uint256"], data)
    return int(value)


def decode_event_data(event: EventSpec, data: bytes) -> dict[str, object]:
    values = decode(list(event.data_types), data)
    decoded: dict[str, object] = {}
    for name, abi_type, value in zip(event.data_names, event.data_types, values, strict=True):
        if abi_type == "address":
            decoded[name] = to_checksum_address(value)
        elif abi_type.startswith("uint"):
            decoded[name] = int(value)
        else:
            decoded[name] = value
    return decoded
