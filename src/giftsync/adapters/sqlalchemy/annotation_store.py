"""Self-transacting annotation store over the primary database."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from giftsync.common.retry import retry_transient

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from giftsync.domain.model import AnnotationPatch, GiftAnnotations, GiftId
    from giftsync.domain.ports import GiftUnitOfWork

log = getLogger(__name__)


class SqlAlchemyAnnotationStore:
    """``AnnotationStore`` that opens one unit of work per call.

    Transient failures are retried a bounded number of times before the
    ``ServiceUnavailableError`` reaches the caller.
    """

    def __init__(self, unit_of_work_factory: Callable[[], GiftUnitOfWork]) -> None:
        self._unit_of_work_factory = unit_of_work_factory

    @retry_transient()
    def get(self, gift_id: GiftId) -> GiftAnnotations | None:
        with self._unit_of_work_factory() as uow:
            return uow.repositories.annotations.get(gift_id)

    @retry_transient()
    def merge(
        self, gift_id: GiftId, patch: AnnotationPatch, *, captured_at: datetime
    ) -> GiftAnnotations:
        with self._unit_of_work_factory() as uow:
            merged = uow.repositories.annotations.merge(gift_id, patch, captured_at=captured_at)
            uow.commit()
        log.debug(f"Stored annotation fields {sorted(patch.supplied())} for gift {gift_id}")
        return merged


if TYPE_CHECKING:
    from giftsync.domain.ports import AnnotationStore

    def _store_check(factory: Callable[[], GiftUnitOfWork]) -> AnnotationStore:
        return SqlAlchemyAnnotationStore(factory)
