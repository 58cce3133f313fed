"""Repair gifts whose off-chain data was split across ``giftId`` and ``tokenId`` keys.

Merge rules, applied in a fixed order so every run produces the same record:
1. the canonical record stored under ``giftId`` wins every field it already has
2. missing fields are filled from the legacy row stored under ``gift:<giftId>``
3. then from the legacy row stored under ``token:<tokenId>``

Divergence is reported, never resolved: a legacy row stamped for a different gift is
skipped, and a claimer that disagrees with the gift record becomes a
``ConsistencyError`` in the report. Legacy rows are stamped ``repaired_into`` and kept.
"""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from giftsync.domain.errors import ConsistencyError
from giftsync.domain.model import GiftAnnotations, LegacyKeyKind, legacy_key, same_address

if TYPE_CHECKING:
    from collections.abc import Callable

    from giftsync.domain.identifiers import IdentifierResolver
    from giftsync.domain.model import Address, GiftId, LegacyDetail, TokenId
    from giftsync.domain.ports import GiftUnitOfWork

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RepairReport:
    gift_id: GiftId
    token_id: TokenId
    copied_fields: tuple[str, ...] = ()
    merged_from: tuple[str, ...] = ()
    skipped_keys: tuple[str, ...] = ()
    conflicts: tuple[ConsistencyError, ...] = ()
    has_annotation_data: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.copied_fields)

    @property
    def consistent(self) -> bool:
        return not self.conflicts


@dataclass(slots=True)
class GiftRepairer:
    resolver: IdentifierResolver
    unit_of_work_factory: Callable[[], GiftUnitOfWork]

    def repair(self, *, token_id: TokenId, gift_id: GiftId) -> RepairReport:
        on_chain_token = self.resolver.resolve_reverse(gift_id)
        if on_chain_token != token_id:
            error = ConsistencyError(
                f"Gift {gift_id} holds token {on_chain_token}, not {token_id}",
                key=legacy_key(LegacyKeyKind.TOKEN, token_id),
            )
            log.error(str(error))
            return RepairReport(gift_id=gift_id, token_id=token_id, conflicts=(error,))

        copied: list[str] = []
        merged_from: list[str] = []
        skipped: list[str] = []
        conflicts: list[ConsistencyError] = []

        with self.unit_of_work_factory() as uow:
            repositories = uow.repositories
            try:
                self.resolver.record_mapping(token_id, gift_id, mappings=repositories.mappings)
            except ConsistencyError as exc:
                return RepairReport(gift_id=gift_id, token_id=token_id, conflicts=(exc,))

            gift = repositories.gifts.get(gift_id)
            claimer: Address | None = gift.claimer if gift is not None else None
            merged = repositories.annotations.get(gift_id) or GiftAnnotations()

            for kind, key_value in ((LegacyKeyKind.GIFT, gift_id), (LegacyKeyKind.TOKEN, token_id)):
                raw_key = legacy_key(kind, key_value)
                detail = repositories.legacy.get(raw_key)
                if detail is None:
                    continue
                foreign = self._foreign_owner(detail, gift_id=gift_id, token_id=token_id)
                if foreign is not None:
                    skipped.append(raw_key)
                    conflicts.append(foreign)
                    continue

                if detail.claimer is not None:
                    if claimer is not None and not same_address(claimer, detail.claimer):
                        conflicts.append(
                            ConsistencyError(
                                f"Claimer {detail.claimer} under {raw_key} differs from "
                                f"{claimer} for gift {gift_id}",
                                key=raw_key,
                            )
                        )
                    claimer = claimer or detail.claimer

                merged, filled = merged.filled_from(detail.annotations)
                copied.extend(name for name in filled if name not in copied)
                merged_from.append(raw_key)
                if detail.repaired_into is None:
                    repositories.legacy.mark_repaired(raw_key, gift_id)

            if copied:
                repositories.annotations.fill(gift_id, merged)
            uow.commit()

        for conflict in conflicts:
            log.error(str(conflict))
        report = RepairReport(
            gift_id=gift_id,
            token_id=token_id,
            copied_fields=tuple(copied),
            merged_from=tuple(merged_from),
            skipped_keys=tuple(skipped),
            conflicts=tuple(conflicts),
            has_annotation_data=not merged.is_empty,
        )
        log.info(
            f"Repaired gift {gift_id} (token {token_id}): copied={list(report.copied_fields)}, "
            f"sources={list(report.merged_from)}, conflicts={len(report.conflicts)}"
        )
        return report

    @staticmethod
    def _foreign_owner(
        detail: LegacyDetail, *, gift_id: GiftId, token_id: TokenId
    ) -> ConsistencyError | None:
        if detail.stamped_gift_id is not None and detail.stamped_gift_id != gift_id:
            return ConsistencyError(
                f"{detail.raw_key} is stamped for gift {detail.stamped_gift_id}, not {gift_id}",
                key=detail.raw_key,
            )
        if detail.stamped_token_id is not None and detail.stamped_token_id != token_id:
            return ConsistencyError(
                f"{detail.raw_key} is stamped for token {detail.stamped_token_id}, not {token_id}",
                key=detail.raw_key,
            )
        return None
