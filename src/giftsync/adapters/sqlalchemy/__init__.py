"""SQLAlchemy adapter package for giftsync."""

from __future__ import annotations

from .annotation_store import SqlAlchemyAnnotationStore
from .mappings import metadata
from .repositories import (
    SqlAlchemyAnnotationRepository,
    SqlAlchemyCheckpointRepository,
    SqlAlchemyEventRepository,
    SqlAlchemyGiftRepository,
    SqlAlchemyIdentifierMappingRepository,
    SqlAlchemyLegacyDetailRepository,
    SqlAlchemyRollupRepository,
)
from .unit_of_work import (
    SqlAlchemyGiftUnitOfWork,
    StartupError,
    configured_engine,
    is_started,
    shutdown,
    startup,
)

__all__ = [
    "SqlAlchemyAnnotationRepository",
    "SqlAlchemyAnnotationStore",
    "SqlAlchemyCheckpointRepository",
    "SqlAlchemyEventRepository",
    "SqlAlchemyGiftRepository",
    "SqlAlchemyGiftUnitOfWork",
    "SqlAlchemyIdentifierMappingRepository",
    "SqlAlchemyLegacyDetailRepository",
    "SqlAlchemyRollupRepository",
    "StartupError",
    "configured_engine",
    "is_started",
    "metadata",
    "shutdown",
    "startup",
]
