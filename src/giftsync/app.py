"""Application orchestration entry points."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from giftsync.adapters.chain import EscrowLogFetcher, JsonRpcEscrowReader
from giftsync.adapters.sqlalchemy import (
    SqlAlchemyAnnotationStore,
    SqlAlchemyGiftUnitOfWork,
    is_started,
    startup,
)
from giftsync.config import get_chain_config, get_reconcile_config, get_resolver_config
from giftsync.domain.annotations import AnnotationService, GiftRef
from giftsync.domain.claims import ClaimAttempt, ClaimStatus, ClaimVerifier
from giftsync.domain.degraded import DegradedModeStore, LastKnownRollups
from giftsync.domain.errors import NotFoundError, ServiceUnavailableError
from giftsync.domain.identifiers import IdentifierResolver
from giftsync.domain.materializer import Materializer
from giftsync.domain.model import EventSource, EventType, campaign_for
from giftsync.domain.ports import GiftUnitOfWork
from giftsync.domain.reconciliation import GiftRepairer, Reconciler
from giftsync.domain.tracking import LifecycleTracker, lifecycle_event
from giftsync.ui.requests import (
    AnnotationRequest,
    ClaimRequest,
    LegacyRecord,
    ReconcileRequest,
    RepairRequest,
    TrackEventRequest,
)

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from giftsync.config import ChainConfig
    from giftsync.domain.claims import ClaimOutcome
    from giftsync.domain.model import CampaignId, CampaignRollup, Gift, GiftAnnotations, GiftId
    from giftsync.domain.ports import EscrowReader, GiftLogFetcher, OnChainGift
    from giftsync.domain.reconciliation import ReconcileResult, RepairReport

UnitOfWorkFactory = Callable[[], GiftUnitOfWork]

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class LegacyImportResult:
    read: int = 0
    imported: int = 0
    rejected: list[int] = field(default_factory=list)


@dataclass(slots=True)
class GiftSyncApp:
    """Long-lived handler set; the resolver caches and degraded buffer live here."""

    escrow: EscrowReader
    fetcher: GiftLogFetcher
    unit_of_work_factory: UnitOfWorkFactory
    resolver: IdentifierResolver
    verifier: ClaimVerifier
    annotations: AnnotationService
    annotation_buffer: DegradedModeStore
    materializer: Materializer
    tracker: LifecycleTracker
    reconciler: Reconciler
    repairer: GiftRepairer
    stats: LastKnownRollups
    clock: Callable[[], datetime] = _utcnow

    # claims -------------------------------------------------------------------

    def validate_claim(self, payload: Mapping[str, object]) -> dict[str, object]:
        """Verify a claim attempt.

        The answer is ``{"valid": true, "giftId": ...}``, ``{"valid": false, "error":
        "invalid_password"}`` for a genuine mismatch, and a bare ``{"valid": false}``
        for everything else, so failures cannot be told apart from outside.
        """

        try:
            request = ClaimRequest.model_validate(payload)
        except ValidationError as exc:
            log.info(f"Rejected malformed claim request: {exc.error_count()} errors")
            return {"valid": False}

        attempt = ClaimAttempt(
            token_id=request.token_id,
            password=request.password,
            salt=request.salt,
            device_id=request.device_id,
            timestamp=self.clock(),
        )
        try:
            outcome = self.verifier.verify(attempt)
        except Exception:
            log.exception(f"Unexpected failure verifying claim for token {request.token_id}")
            return {"valid": False}

        if outcome.status is ClaimStatus.INVALID_PASSWORD:
            return {"valid": False, "error": "invalid_password"}
        if not outcome.valid or outcome.gift_id is None:
            return {"valid": False}

        self._record_view(outcome, attempt)
        return {"valid": True, "giftId": outcome.gift_id}

    def _record_view(self, outcome: ClaimOutcome, attempt: ClaimAttempt) -> None:
        gift_id = outcome.gift_id
        if gift_id is None:
            return
        event = lifecycle_event(
            EventType.GIFT_VIEWED,
            gift_id=gift_id,
            campaign_id=campaign_for(creator=outcome.creator, gift_id=gift_id),
            occurred_at=self.clock(),
            source=EventSource.REALTIME,
            token_id=attempt.token_id,
            device_id=attempt.device_id,
        )
        # the claim answer stands even when the view cannot be recorded
        try:
            appended = self.tracker.record(event)
        except ServiceUnavailableError as exc:
            log.warning(f"Could not record view of gift {gift_id}: {exc}")
            return
        except Exception:
            log.exception(f"Unexpected failure recording view of gift {gift_id}")
            return
        if appended:
            log.debug(f"Recorded view of gift {gift_id}")

    # lifecycle tracking -----------------------------------------------------------

    def track_event(self, payload: Mapping[str, object]) -> dict[str, object]:
        """Record a view, expiry or value reported from outside the chain.

        Raises ``pydantic.ValidationError`` for a malformed payload and ``NotFoundError``
        when the gift cannot be located. Repeats of the same event are acknowledged
        with ``recorded: false``.
        """

        request = TrackEventRequest.model_validate(payload)
        gift_id = self.annotations.canonical_gift_id(
            GiftRef(gift_id=request.gift_id, token_id=request.token_id)
        )
        gift = self._find_gift(gift_id)
        event = lifecycle_event(
            request.kind,
            gift_id=gift_id,
            campaign_id=campaign_for(creator=gift.creator, gift_id=gift_id),
            occurred_at=request.occurred_at or self.clock(),
            processed_at=self.clock(),
            source=EventSource.MANUAL,
            token_id=gift.token_id,
            device_id=request.device_id,
            payload={"amount": str(request.amount_wei)} if request.amount_wei is not None else None,
        )
        recorded = self.tracker.record(event)
        return {
            "eventId": event.event_id,
            "giftId": gift_id,
            "campaignId": event.campaign_id,
            "recorded": recorded,
        }

    def _find_gift(self, gift_id: GiftId) -> Gift | OnChainGift:
        with self.unit_of_work_factory() as uow:
            stored = uow.repositories.gifts.get(gift_id)
        if stored is not None:
            return stored
        on_chain = self.escrow.get_gift(gift_id)
        if on_chain is None:
            raise NotFoundError(f"Gift {gift_id} does not exist in the escrow")
        return on_chain

    # annotations ----------------------------------------------------------------

    def annotate_gift(self, payload: Mapping[str, object]) -> dict[str, object]:
        """Merge annotation fields into the canonical record.

        Raises ``pydantic.ValidationError`` for unknown or malformed fields and
        ``NotFoundError``/``ConsistencyError`` when the reference does not resolve.
        """

        request = AnnotationRequest.model_validate(payload)
        gift_id, merged = self.annotations.annotate(
            GiftRef(gift_id=request.gift_id, token_id=request.token_id), request.to_patch()
        )
        return {"giftId": gift_id, "annotations": _annotation_payload(merged)}

    def read_annotations(
        self, *, gift_id: int | None = None, token_id: int | None = None
    ) -> dict[str, object]:
        resolved, annotations = self.annotations.read(GiftRef(gift_id=gift_id, token_id=token_id))
        return {
            "giftId": resolved,
            "annotations": _annotation_payload(annotations) if annotations else None,
        }

    # reconciliation ---------------------------------------------------------------

    def trigger_reconciliation(
        self, payload: Mapping[str, object] | None = None
    ) -> dict[str, object]:
        request = ReconcileRequest.model_validate(payload or {})
        result = self.reconcile(from_block=request.from_block, to_block=request.to_block)
        return {
            "eventsProcessed": result.events_processed,
            "fromBlock": result.from_block,
            "toBlock": result.to_block,
        }

    def reconcile(
        self, *, from_block: int | None = None, to_block: int | None = None
    ) -> ReconcileResult:
        result = self.reconciler.run(from_block=from_block, to_block=to_block)
        for conflict in result.conflicts:
            log.error(f"Reconciliation conflict ({conflict.key}): {conflict}")
        return result

    def repair_gift(self, payload: Mapping[str, object]) -> dict[str, object]:
        request = RepairRequest.model_validate(payload)
        report = self.repair(token_id=request.token_id, gift_id=request.gift_id)
        return {
            "giftId": report.gift_id,
            "tokenId": report.token_id,
            "copiedFields": list(report.copied_fields),
            "mergedFrom": list(report.merged_from),
            "skippedKeys": list(report.skipped_keys),
            "conflicts": [str(conflict) for conflict in report.conflicts],
            "hasAnnotationData": report.has_annotation_data,
        }

    def repair(self, *, token_id: int, gift_id: int) -> RepairReport:
        return self.repairer.repair(token_id=token_id, gift_id=gift_id)

    def rebuild_rollups(self, campaign_id: CampaignId | None = None) -> list[CampaignRollup]:
        if campaign_id is not None:
            return [self.materializer.rebuild(campaign_id)]
        return self.materializer.rebuild_all()

    # analytics ----------------------------------------------------------------------

    def campaign_stats(self, campaign_id: CampaignId) -> dict[str, object]:
        view = self.stats.get(campaign_id)
        if view.rollup is None:
            return {"campaignId": campaign_id, "stale": view.stale, "stats": None}
        return {
            "campaignId": campaign_id,
            "stale": view.stale,
            "stats": view.rollup.counters(),
            "lastOffset": view.rollup.last_offset,
        }

    # legacy import -------------------------------------------------------------------

    def import_legacy_details(self, path: Path) -> LegacyImportResult:
        """Load dual-key-era rows from a JSON-lines file; malformed lines are skipped."""

        result = LegacyImportResult()
        with path.open(encoding="utf-8") as handle, self.unit_of_work_factory() as uow:
            for line_number, line in enumerate(handle, start=1):
                if not line.strip():
                    continue
                result.read += 1
                try:
                    record = LegacyRecord.model_validate(json.loads(line))
                    detail = record.to_detail()
                except (ValueError, ValidationError) as exc:
                    log.warning(f"Skipping legacy line {line_number}: {exc}")
                    result.rejected.append(line_number)
                    continue
                uow.repositories.legacy.add(detail)
                result.imported += 1
            uow.commit()
        log.info(
            f"Imported {result.imported} of {result.read} legacy rows from {path} "
            f"({len(result.rejected)} rejected)"
        )
        return result


def _annotation_payload(annotations: GiftAnnotations) -> dict[str, object]:
    return {
        to_camel(name): value.isoformat() if isinstance(value, date) else value
        for name, value in annotations.as_dict().items()
    }


def _load_rollup(
    unit_of_work_factory: UnitOfWorkFactory,
) -> Callable[[CampaignId], CampaignRollup | None]:
    def load(campaign_id: CampaignId) -> CampaignRollup | None:
        with unit_of_work_factory() as uow:
            return uow.repositories.rollups.get(campaign_id)

    return load


def build_app(
    *,
    chain: ChainConfig | None = None,
    escrow: EscrowReader | None = None,
    fetcher: GiftLogFetcher | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> GiftSyncApp:
    """Wire adapters from the environment; any collaborator can be injected instead."""

    if unit_of_work_factory is None:
        if not is_started():
            startup()
        unit_of_work_factory = SqlAlchemyGiftUnitOfWork

    chain_config = chain or get_chain_config()
    effective_escrow = escrow or JsonRpcEscrowReader(chain_config)
    effective_fetcher = fetcher or EscrowLogFetcher(chain_config)

    resolver = IdentifierResolver(
        escrow=effective_escrow,
        unit_of_work_factory=unit_of_work_factory,
        config=get_resolver_config(),
        nft_contract=chain_config.nft_address,
    )
    buffer = DegradedModeStore(SqlAlchemyAnnotationStore(unit_of_work_factory))
    materializer = Materializer(unit_of_work_factory)
    reconciler = Reconciler(
        fetcher=effective_fetcher,
        escrow=effective_escrow,
        resolver=resolver,
        unit_of_work_factory=unit_of_work_factory,
        materializer=materializer,
        config=get_reconcile_config(),
        escrow_address=chain_config.escrow_address,
        deployment_block=chain_config.deployment_block,
    )
    log.info(
        f"Wired giftsync for escrow {chain_config.escrow_address} on chain {chain_config.chain_id}"
    )
    return GiftSyncApp(
        escrow=effective_escrow,
        fetcher=effective_fetcher,
        unit_of_work_factory=unit_of_work_factory,
        resolver=resolver,
        verifier=ClaimVerifier(
            resolver=resolver,
            escrow=effective_escrow,
            contract_address=chain_config.escrow_address,
            chain_id=chain_config.chain_id,
        ),
        annotations=AnnotationService(resolver=resolver, store=buffer),
        annotation_buffer=buffer,
        materializer=materializer,
        tracker=LifecycleTracker(unit_of_work_factory, materializer),
        reconciler=reconciler,
        repairer=GiftRepairer(resolver=resolver, unit_of_work_factory=unit_of_work_factory),
        stats=LastKnownRollups(_load_rollup(unit_of_work_factory)),
    )


__all__ = ["GiftSyncApp", "LegacyImportResult", "build_app"]
