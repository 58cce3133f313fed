"""Translate raw ``eth_getLogs`` entries into domain chain logs."""

from __future__ import annotations

from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from eth_abi.exceptions import DecodingError
from eth_utils import decode_hex

from giftsync.domain.ports import ChainLog, TokenTransfer

from .abi import ESCROW_EVENTS, TRANSFER_TOPIC, decode_event_data, topic_to_address, topic_to_int

if TYPE_CHECKING:
    from .schema import LogEntry

log = getLogger(__name__)


def block_time(timestamp: int) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=UTC)


def translate_escrow_log(entry: LogEntry, *, block_timestamp: datetime) -> ChainLog | None:
    """Decode an escrow log; return ``None`` for events the engine does not track."""

    if entry.removed or not entry.topics:
        return None
    event = ESCROW_EVENTS.get(entry.topics[0].lower())
    if event is None:
        return None
    if len(entry.topics) != len(event.indexed) + 1:
        log.warning(
            f"Skipping {event.name} at {entry.transaction_hash}:{entry.log_index}: "
            f"expected {len(event.indexed)} indexed topics, got {len(entry.topics) - 1}"
        )
        return None

    try:
        data = decode_event_data(event, decode_hex(entry.data))
    except DecodingError as exc:
        log.warning(f"Skipping undecodable {event.name} at {entry.transaction_hash}: {exc}")
        return None

    gift_id = topic_to_int(entry.topics[1])
    payload: dict[str, object] = {"event": event.name}
    for name, topic in zip(event.indexed[1:], entry.topics[2:], strict=True):
        payload[name] = topic_to_address(topic)
    payload.update(data)

    token_id = data.get("token_id")
    return ChainLog(
        event_type=event.event_type,
        gift_id=gift_id,
        block_number=entry.block_number,
        log_index=entry.log_index,
        tx_hash=entry.transaction_hash.lower(),
        block_timestamp=block_timestamp,
        token_id=token_id if isinstance(token_id, int) else None,
        payload=payload,
    )


def translate_transfer(entry: LogEntry) -> TokenTransfer | None:
    """Decode an ERC-721 ``Transfer``; ERC-20 transfers (3 topics) are ignored."""

    if entry.removed or len(entry.topics) != 4 or entry.topics[0].lower() != TRANSFER_TOPIC:
        return None
    return TokenTransfer(
        token_id=topic_to_int(entry.topics[3]),
        from_address=topic_to_address(entry.topics[1]),
        to_address=topic_to_address(entry.topics[2]),
        block_number=entry.block_number,
        log_index=entry.log_index,
        tx_hash=entry.transaction_hash.lower(),
    )
