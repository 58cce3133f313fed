"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import func, literal, select

from giftsync.adapters.sqlalchemy.mappings import (
    campaign_rollup_table,
    gift_annotation_table,
    gift_event_table,
    gift_table,
    identifier_mapping_table,
    legacy_detail_table,
    reconcile_checkpoint_table,
)
from giftsync.domain.errors import DuplicateEventError
from giftsync.domain.model import (
    ALL_FIELDS,
    CAPTURE_FIELDS,
    CampaignRollup,
    CanonicalEvent,
    ChainPosition,
    Gift,
    GiftAnnotations,
    GiftStatus,
    GiftStatusState,
    LegacyDetail,
    TrackedStatus,
)
from giftsync.domain.ports import ReadOrder

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from sqlalchemy import CursorResult, Row
    from sqlalchemy.orm import Session

    from giftsync.domain.model import AnnotationPatch, CampaignId, GiftId, TokenId


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _rowcount(result: object) -> int:
    return cast("CursorResult[Any]", result).rowcount


def _gift_from_row(row: Row[Any]) -> Gift:
    return Gift(
        gift_id=row.gift_id,
        creator=row.creator,
        nft_contract=row.nft_contract,
        token_id=row.token_id,
        expiration_time=row.expiration_time,
        password_hash=row.password_hash,
        status=row.status,
        claimer=row.claimer,
    )


class SqlAlchemyGiftRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, gift_id: GiftId) -> Gift | None:
        row = self.session.execute(
            select(gift_table).where(gift_table.c.gift_id == gift_id)
        ).one_or_none()
        return _gift_from_row(row) if row is not None else None

    def expired_active(self, as_of: datetime) -> Sequence[Gift]:
        stmt = (
            select(gift_table)
            .where(gift_table.c.status == GiftStatus.ACTIVE)
            .where(gift_table.c.expiration_time <= as_of)
            .order_by(gift_table.c.gift_id)
        )
        return [_gift_from_row(row) for row in self.session.execute(stmt)]

    def add(self, gift: Gift) -> None:
        stmt = (
            gift_table.insert()
            .prefix_with("OR IGNORE")
            .values(
                gift_id=gift.gift_id,
                creator=gift.creator,
                nft_contract=gift.nft_contract,
                token_id=gift.token_id,
                expiration_time=gift.expiration_time,
                password_hash=gift.password_hash,
                status=gift.status,
                claimer=gift.claimer,
                updated_at=_utcnow(),
            )
        )
        self.session.execute(stmt)

    def update(self, gift: Gift) -> None:
        stmt = (
            gift_table.update()
            .where(gift_table.c.gift_id == gift.gift_id)
            .values(status=gift.status, claimer=gift.claimer, updated_at=_utcnow())
        )
        self.session.execute(stmt)


class SqlAlchemyIdentifierMappingRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def gift_id_for(self, token_id: TokenId) -> GiftId | None:
        stmt = select(identifier_mapping_table.c.gift_id).where(
            identifier_mapping_table.c.token_id == token_id
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def token_id_for(self, gift_id: GiftId) -> TokenId | None:
        stmt = select(identifier_mapping_table.c.token_id).where(
            identifier_mapping_table.c.gift_id == gift_id
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def add(self, token_id: TokenId, gift_id: GiftId) -> bool:
        stmt = (
            identifier_mapping_table.insert()
            .prefix_with("OR IGNORE")
            .values(token_id=token_id, gift_id=gift_id, recorded_at=_utcnow())
        )
        return _rowcount(self.session.execute(stmt)) == 1


def _annotations_from_row(row: Row[Any]) -> GiftAnnotations:
    mapping = row._mapping
    return GiftAnnotations.from_mapping({name: mapping[name] for name in ALL_FIELDS})


class SqlAlchemyAnnotationRepository:
    """Annotation rows keyed by canonical ``giftId``.

    Writes only touch the columns they carry, so two writers updating different
    fields of the same gift both land.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, gift_id: GiftId) -> GiftAnnotations | None:
        row = self.session.execute(
            select(gift_annotation_table).where(gift_annotation_table.c.gift_id == gift_id)
        ).one_or_none()
        if row is None:
            return None
        return _annotations_from_row(row)

    def merge(
        self, gift_id: GiftId, patch: AnnotationPatch, *, captured_at: datetime
    ) -> GiftAnnotations:
        values: dict[str, object] = dict(patch.supplied())
        for group in patch.touched_groups():
            values[CAPTURE_FIELDS[group]] = captured_at
        if values:
            self._upsert_columns(gift_id, values)
        return self.get(gift_id) or GiftAnnotations()

    def fill(self, gift_id: GiftId, annotations: GiftAnnotations) -> None:
        values = annotations.as_dict()
        if not values:
            return
        table = gift_annotation_table
        update = (
            table.update()
            .where(table.c.gift_id == gift_id)
            .values(
                {
                    name: func.coalesce(table.c[name], literal(value, table.c[name].type))
                    for name, value in values.items()
                },
            )
            .values(updated_at=_utcnow())
        )
        if _rowcount(self.session.execute(update)) == 0:
            self._insert_or_retry(gift_id, values, update)

    def _upsert_columns(self, gift_id: GiftId, values: Mapping[str, object]) -> None:
        table = gift_annotation_table
        update = (
            table.update()
            .where(table.c.gift_id == gift_id)
            .values(**values, updated_at=_utcnow())
        )
        if _rowcount(self.session.execute(update)) == 0:
            self._insert_or_retry(gift_id, values, update)

    def _insert_or_retry(self, gift_id: GiftId, values: Mapping[str, object], update: Any) -> None:
        insert = (
            gift_annotation_table.insert()
            .prefix_with("OR IGNORE")
            .values(gift_id=gift_id, **values, updated_at=_utcnow())
        )
        if _rowcount(self.session.execute(insert)) == 0:
            # another writer created the row first
            self.session.execute(update)


class SqlAlchemyLegacyDetailRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, raw_key: str) -> LegacyDetail | None:
        row = self.session.execute(
            select(legacy_detail_table).where(legacy_detail_table.c.raw_key == raw_key)
        ).one_or_none()
        if row is None:
            return None
        return LegacyDetail(
            raw_key=row.raw_key,
            kind=row.kind,
            key_value=row.key_value,
            annotations=_annotations_from_row(row),
            claimer=row.claimer,
            stamped_gift_id=row.stamped_gift_id,
            stamped_token_id=row.stamped_token_id,
            repaired_into=row.repaired_into,
        )

    def add(self, detail: LegacyDetail) -> None:
        stmt = (
            legacy_detail_table.insert()
            .prefix_with("OR IGNORE")
            .values(
                raw_key=detail.raw_key,
                kind=detail.kind,
                key_value=detail.key_value,
                **detail.annotations.as_dict(),
                claimer=detail.claimer,
                stamped_gift_id=detail.stamped_gift_id,
                stamped_token_id=detail.stamped_token_id,
                repaired_into=detail.repaired_into,
                imported_at=_utcnow(),
            )
        )
        self.session.execute(stmt)

    def mark_repaired(self, raw_key: str, gift_id: GiftId) -> None:
        stmt = (
            legacy_detail_table.update()
            .where(legacy_detail_table.c.raw_key == raw_key)
            .values(repaired_into=gift_id)
        )
        self.session.execute(stmt)


class SqlAlchemyEventRepository:
    """Append-only event rows; ``event_offset`` is the store-assigned append order."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, event: CanonicalEvent) -> CanonicalEvent:
        stmt = (
            gift_event_table.insert()
            .prefix_with("OR IGNORE")
            .values(
                event_id=event.event_id,
                event_type=event.event_type,
                gift_id=event.gift_id,
                campaign_id=event.campaign_id,
                block_number=event.block_number,
                block_timestamp=event.block_timestamp,
                tx_hash=event.tx_hash,
                log_index=event.log_index,
                processed_at=event.processed_at,
                source=event.source,
                token_id=event.token_id,
                payload=dict(event.payload),
            )
        )
        result = cast("CursorResult[Any]", self.session.execute(stmt))
        if result.rowcount == 0:
            raise DuplicateEventError(event.event_id)
        primary_key = result.inserted_primary_key
        if primary_key is None:
            raise RuntimeError(f"Store did not assign an offset to event {event.event_id}")
        return event.with_offset(int(primary_key[0]))

    def read(
        self,
        *,
        after_offset: int | None = None,
        before_offset: int | None = None,
        order: ReadOrder = ReadOrder.FORWARD,
        limit: int | None = None,
        campaign_id: CampaignId | None = None,
        gift_id: GiftId | None = None,
    ) -> Sequence[CanonicalEvent]:
        table = gift_event_table
        stmt = select(table)
        if after_offset is not None:
            stmt = stmt.where(table.c.event_offset > after_offset)
        if before_offset is not None:
            stmt = stmt.where(table.c.event_offset < before_offset)
        if campaign_id is not None:
            stmt = stmt.where(table.c.campaign_id == campaign_id)
        if gift_id is not None:
            stmt = stmt.where(table.c.gift_id == gift_id)
        if order is ReadOrder.REVERSE:
            stmt = stmt.order_by(table.c.event_offset.desc())
        else:
            stmt = stmt.order_by(table.c.event_offset.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return [self._event_from_row(row) for row in self.session.execute(stmt)]

    def campaigns(self) -> Sequence[CampaignId]:
        stmt = (
            select(gift_event_table.c.campaign_id)
            .distinct()
            .order_by(gift_event_table.c.campaign_id)
        )
        return list(self.session.execute(stmt).scalars())

    @staticmethod
    def _event_from_row(row: Row[Any]) -> CanonicalEvent:
        return CanonicalEvent(
            event_id=row.event_id,
            event_type=row.event_type,
            gift_id=row.gift_id,
            campaign_id=row.campaign_id,
            block_number=row.block_number,
            block_timestamp=row.block_timestamp,
            tx_hash=row.tx_hash,
            log_index=row.log_index,
            processed_at=row.processed_at,
            source=row.source,
            token_id=row.token_id,
            payload=dict(row.payload or {}),
            offset=row.event_offset,
        )


def _dump_states(states: Mapping[GiftId, GiftStatusState]) -> dict[str, list[object]]:
    return {
        str(gift_id): [state.status.value, state.position.block_number, state.position.log_index]
        for gift_id, state in states.items()
    }


def _load_states(raw: object) -> dict[GiftId, GiftStatusState]:
    if not isinstance(raw, dict):
        return {}
    states: dict[GiftId, GiftStatusState] = {}
    for key, value in cast("dict[str, list[Any]]", raw).items():
        status, block_number, log_index = value
        states[int(key)] = GiftStatusState(
            status=TrackedStatus(status),
            position=ChainPosition(int(block_number), int(log_index)),
        )
    return states


class SqlAlchemyRollupRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, campaign_id: CampaignId) -> CampaignRollup | None:
        row = self.session.execute(
            select(campaign_rollup_table).where(campaign_rollup_table.c.campaign_id == campaign_id)
        ).one_or_none()
        if row is None:
            return None
        return CampaignRollup(
            campaign_id=row.campaign_id,
            total_gifts=row.total_gifts,
            viewed=row.viewed,
            total_value=row.total_value,
            gift_states=_load_states(row.gift_states),
            last_offset=row.last_offset,
            last_event_id=row.last_event_id,
        )

    def compare_and_swap(self, rollup: CampaignRollup, *, expected_offset: int | None) -> bool:
        table = campaign_rollup_table
        if expected_offset is None:
            stmt = (
                table.insert()
                .prefix_with("OR IGNORE")
                .values(campaign_id=rollup.campaign_id, **self._values(rollup))
            )
        else:
            stmt = (
                table.update()
                .where(table.c.campaign_id == rollup.campaign_id)
                .where(table.c.last_offset == expected_offset)
                .values(**self._values(rollup))
            )
        return _rowcount(self.session.execute(stmt)) == 1

    def replace(self, rollup: CampaignRollup) -> None:
        table = campaign_rollup_table
        self.session.execute(table.delete().where(table.c.campaign_id == rollup.campaign_id))
        self.session.execute(
            table.insert().values(campaign_id=rollup.campaign_id, **self._values(rollup))
        )

    @staticmethod
    def _values(rollup: CampaignRollup) -> dict[str, object]:
        return {
            "total_gifts": rollup.total_gifts,
            "viewed": rollup.viewed,
            "total_value": rollup.total_value,
            "gift_states": _dump_states(rollup.gift_states),
            "last_offset": rollup.last_offset,
            "last_event_id": rollup.last_event_id,
            "updated_at": _utcnow(),
        }


class SqlAlchemyCheckpointRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, name: str) -> int | None:
        stmt = select(reconcile_checkpoint_table.c.block_number).where(
            reconcile_checkpoint_table.c.name == name
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def advance(self, name: str, block_number: int) -> None:
        """Move the checkpoint forward; an older block never overwrites a newer one."""

        table = reconcile_checkpoint_table
        update = (
            table.update()
            .where(table.c.name == name)
            .where(table.c.block_number < block_number)
            .values(block_number=block_number, updated_at=_utcnow())
        )
        if _rowcount(self.session.execute(update)) == 1:
            return
        self.session.execute(
            table.insert()
            .prefix_with("OR IGNORE")
            .values(name=name, block_number=block_number, updated_at=_utcnow())
        )


if TYPE_CHECKING:
    from giftsync.domain.ports import (
        AnnotationRepository,
        CheckpointRepository,
        EventRepository,
        GiftRepository,
        IdentifierMappingRepository,
        LegacyDetailRepository,
        RollupRepository,
    )

    def _repository_checks(session: Session) -> None:
        _gifts: GiftRepository = SqlAlchemyGiftRepository(session)
        _mappings: IdentifierMappingRepository = SqlAlchemyIdentifierMappingRepository(session)
        _annotations: AnnotationRepository = SqlAlchemyAnnotationRepository(session)
        _legacy: LegacyDetailRepository = SqlAlchemyLegacyDetailRepository(session)
        _events: EventRepository = SqlAlchemyEventRepository(session)
        _rollups: RollupRepository = SqlAlchemyRollupRepository(session)
        _checkpoints: CheckpointRepository = SqlAlchemyCheckpointRepository(session)
