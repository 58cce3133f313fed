"""Re-derive off-chain gift state from escrow logs.

Responsibilities of this stage:
- walk confirmed blocks from the stored checkpoint in fixed windows
- keep the gift table and identifier mappings in step with creation/claim/return logs
- append every log as a canonical event (duplicates are no-ops)
- advance the checkpoint last, in the same transaction as the appends
- log an expiry for active gifts whose expiration time has passed

Because the checkpoint only moves once a window's appends are committed, a crash
anywhere inside a window means the window is read again on the next run. The event
log's idempotence makes that replay harmless.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from giftsync.config.reconcile import ReconcileConfig
from giftsync.domain.errors import ConsistencyError, NotFoundError, ServiceUnavailableError
from giftsync.domain.event_log import CanonicalEventLog
from giftsync.domain.model import (
    CanonicalEvent,
    EventSource,
    EventType,
    GiftStatus,
    InvalidTransitionError,
    campaign_for,
    make_event_id,
    same_address,
)
from giftsync.domain.tracking import lifecycle_event

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from giftsync.domain.identifiers import IdentifierResolver
    from giftsync.domain.materializer import Materializer
    from giftsync.domain.model import Address, CampaignId, Gift, GiftId, TokenId
    from giftsync.domain.ports import (
        ChainLog,
        EscrowReader,
        GiftLogFetcher,
        GiftRepositories,
        GiftUnitOfWork,
        LogFetchResult,
        OnChainGift,
    )

log = getLogger(__name__)

CHECKPOINT_NAME = "escrow"

_STATUS_BY_EVENT: dict[EventType, GiftStatus] = {
    EventType.GIFT_CLAIMED: GiftStatus.CLAIMED,
    EventType.GIFT_RETURNED: GiftStatus.RETURNED,
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class ReconcileResult:
    """Outcome of one reconciliation run."""

    from_block: int
    to_block: int
    fetched: int = 0
    events_processed: int = 0
    duplicates: int = 0
    mappings_recorded: int = 0
    expired: int = 0
    windows: int = 0
    conflicts: list[ConsistencyError] = field(default_factory=list)
    campaigns: set[CampaignId] = field(default_factory=set)


@dataclass(slots=True)
class Reconciler:
    fetcher: GiftLogFetcher
    escrow: EscrowReader
    resolver: IdentifierResolver
    unit_of_work_factory: Callable[[], GiftUnitOfWork]
    materializer: Materializer | None = None
    config: ReconcileConfig = field(default_factory=ReconcileConfig)
    escrow_address: Address | None = None
    deployment_block: int = 0
    clock: Callable[[], datetime] = _utcnow

    def run(self, *, from_block: int | None = None, to_block: int | None = None) -> ReconcileResult:
        start = self.start_block(from_block)
        head = (
            to_block
            if to_block is not None
            else self.fetcher.latest_block() - self.config.confirmations
        )
        result = ReconcileResult(from_block=start, to_block=head)
        if start > head:
            log.info(f"Nothing to reconcile: start {start} is past confirmed head {head}")
            return result

        log.info(f"Reconciling blocks {start}..{head}")
        window_start = start
        while window_start <= head:
            window_end = min(window_start + self.config.block_window - 1, head)
            fetched = self.fetcher(from_block=window_start, to_block=window_end)
            self._ingest_window(fetched, result)
            result.windows += 1
            window_start = fetched.to_block + 1
        self._sweep_expired(head, result)

        if self.materializer is not None:
            for campaign in sorted(result.campaigns):
                self.materializer.catch_up(campaign)

        log.info(
            f"Reconciled blocks {start}..{head}: fetched={result.fetched}, "
            f"appended={result.events_processed}, duplicates={result.duplicates}, "
            f"mappings={result.mappings_recorded}, expired={result.expired}, "
            f"conflicts={len(result.conflicts)}"
        )
        return result

    def start_block(self, from_block: int | None = None) -> int:
        if from_block is not None:
            return max(from_block, 0)
        with self.unit_of_work_factory() as uow:
            checkpoint = uow.repositories.checkpoints.get(CHECKPOINT_NAME)
        if checkpoint is None:
            return self.deployment_block
        return max(checkpoint + 1 - self.config.rewind_blocks, self.deployment_block)

    def _sweep_expired(self, head: int, result: ReconcileResult) -> None:
        """Log ``GiftExpired`` once for every active gift past its expiration time."""

        now = self.clock()
        with self.unit_of_work_factory() as uow:
            event_log = CanonicalEventLog(uow.repositories.events)
            for gift in uow.repositories.gifts.expired_active(now):
                event = lifecycle_event(
                    EventType.GIFT_EXPIRED,
                    gift_id=gift.gift_id,
                    campaign_id=campaign_for(creator=gift.creator, gift_id=gift.gift_id),
                    occurred_at=gift.expiration_time,
                    processed_at=now,
                    source=EventSource.RECONCILIATION,
                    token_id=gift.token_id,
                    block_number=head,
                )
                if event_log.append(event):
                    result.expired += 1
                    result.campaigns.add(event.campaign_id)
            uow.commit()
        if result.expired:
            log.info(f"Recorded {result.expired} gift expiries")

    def _ingest_window(self, fetched: LogFetchResult, result: ReconcileResult) -> None:
        on_chain = self._prefetch_gifts(fetched)
        unmapped: list[TokenId] = []
        with self.unit_of_work_factory() as uow:
            repositories = uow.repositories
            event_log = CanonicalEventLog(repositories.events)
            for chain_log in fetched.logs:
                result.fetched += 1
                gift = self._sync_gift(repositories, chain_log, on_chain, result)
                event = self._to_event(chain_log, gift)
                result.campaigns.add(event.campaign_id)
                if event_log.append(event):
                    result.events_processed += 1
                else:
                    result.duplicates += 1

            for transfer in fetched.transfers:
                if self.escrow_address is None or not same_address(
                    transfer.to_address, self.escrow_address
                ):
                    continue
                if repositories.mappings.gift_id_for(transfer.token_id) is None:
                    unmapped.append(transfer.token_id)

            repositories.checkpoints.advance(CHECKPOINT_NAME, fetched.to_block)
            uow.commit()

        log.debug(
            f"Committed window {fetched.from_block}..{fetched.to_block} "
            f"with {len(fetched.logs)} logs"
        )
        for token_id in unmapped:
            self._resolve_deposit(token_id, result)

    def _prefetch_gifts(self, fetched: LogFetchResult) -> dict[GiftId, OnChainGift | None]:
        """Read gifts the store lacks before the write transaction opens."""

        referenced = sorted({chain_log.gift_id for chain_log in fetched.logs})
        if not referenced:
            return {}
        with self.unit_of_work_factory() as uow:
            gifts = uow.repositories.gifts
            missing = [gift_id for gift_id in referenced if gifts.get(gift_id) is None]
        if not missing:
            return {}
        return dict(zip(missing, self.escrow.scan_gifts(missing), strict=True))

    def _sync_gift(
        self,
        repositories: GiftRepositories,
        chain_log: ChainLog,
        on_chain: Mapping[GiftId, OnChainGift | None],
        result: ReconcileResult,
    ) -> Gift | None:
        gift = repositories.gifts.get(chain_log.gift_id)
        if gift is None:
            fetched_gift = on_chain.get(chain_log.gift_id)
            if fetched_gift is None:
                log.warning(f"Log references gift {chain_log.gift_id} unknown to the escrow")
                return None
            gift = fetched_gift.to_gift()
            repositories.gifts.add(gift)

        if chain_log.event_type is EventType.GIFT_CREATED:
            token_id = chain_log.token_id if chain_log.token_id is not None else gift.token_id
            try:
                if self.resolver.record_mapping(
                    token_id, gift.gift_id, mappings=repositories.mappings
                ):
                    result.mappings_recorded += 1
            except ConsistencyError as exc:
                result.conflicts.append(exc)
            return gift

        status = _STATUS_BY_EVENT.get(chain_log.event_type)
        if status is None:
            return gift
        claimer = chain_log.payload.get("claimer")
        try:
            if gift.advance(status, claimer=claimer if isinstance(claimer, str) else None):
                repositories.gifts.update(gift)
        except InvalidTransitionError as exc:
            error = ConsistencyError(str(exc), key=f"gift:{gift.gift_id}")
            log.error(str(error))
            result.conflicts.append(error)
        return gift

    def _to_event(self, chain_log: ChainLog, gift: Gift | None) -> CanonicalEvent:
        creator = gift.creator if gift is not None else chain_log.payload.get("creator")
        token_id = chain_log.token_id
        if token_id is None and gift is not None:
            token_id = gift.token_id
        return CanonicalEvent(
            event_id=make_event_id(chain_log.tx_hash, chain_log.log_index),
            event_type=chain_log.event_type,
            gift_id=chain_log.gift_id,
            campaign_id=campaign_for(
                creator=creator if isinstance(creator, str) else None,
                gift_id=chain_log.gift_id,
            ),
            block_number=chain_log.block_number,
            block_timestamp=chain_log.block_timestamp,
            tx_hash=chain_log.tx_hash,
            log_index=chain_log.log_index,
            processed_at=self.clock(),
            source=EventSource.RECONCILIATION,
            token_id=token_id,
            payload=dict(chain_log.payload),
        )

    def _resolve_deposit(self, token_id: TokenId, result: ReconcileResult) -> None:
        try:
            gift_id = self.resolver.resolve(token_id)
        except (NotFoundError, ServiceUnavailableError) as exc:
            log.info(f"Token {token_id} deposited in escrow is not mapped yet: {exc}")
            return
        except ConsistencyError as exc:
            result.conflicts.append(exc)
            return
        result.mappings_recorded += 1
        log.debug(f"Mapped deposited token {token_id} to gift {gift_id}")
