"""Domain ports."""

from __future__ import annotations

from .annotations import AnnotationStore
from .chain import (
    ChainLog,
    EscrowReader,
    GiftLogFetcher,
    LogFetchResult,
    OnChainGift,
    TokenTransfer,
)
from .persistence import (
    AnnotationRepository,
    CheckpointRepository,
    EventRepository,
    GiftRepository,
    IdentifierMappingRepository,
    LegacyDetailRepository,
    ReadOrder,
    RollupRepository,
)
from .unit_of_work import GiftRepositories, GiftUnitOfWork, RepositoryCollection, UnitOfWork

__all__ = [
    "AnnotationRepository",
    "AnnotationStore",
    "ChainLog",
    "CheckpointRepository",
    "EscrowReader",
    "EventRepository",
    "GiftLogFetcher",
    "GiftRepositories",
    "GiftRepository",
    "GiftUnitOfWork",
    "IdentifierMappingRepository",
    "LegacyDetailRepository",
    "LogFetchResult",
    "OnChainGift",
    "ReadOrder",
    "RepositoryCollection",
    "RollupRepository",
    "TokenTransfer",
    "UnitOfWork",
]
