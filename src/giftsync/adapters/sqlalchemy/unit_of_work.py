"""SQLAlchemy-backed unit of work for the gift store."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Any, Literal

from sqlalchemy import create_engine, event
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from giftsync.adapters.sqlalchemy.migrations import upgrade_head
from giftsync.adapters.sqlalchemy.repositories import (
    SqlAlchemyAnnotationRepository,
    SqlAlchemyCheckpointRepository,
    SqlAlchemyEventRepository,
    SqlAlchemyGiftRepository,
    SqlAlchemyIdentifierMappingRepository,
    SqlAlchemyLegacyDetailRepository,
    SqlAlchemyRollupRepository,
)
from giftsync.config.storage import DatabaseConfig, get_database_config
from giftsync.domain.errors import ServiceUnavailableError
from giftsync.domain.ports import GiftRepositories, RepositoryCollection

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.engine import Engine

log = getLogger(__name__)

SQLITE_BUSY_TIMEOUT_MS = 5000


class StartupError(RuntimeError):
    """Raised when a SQLAlchemy unit of work is used before initialisation."""


@dataclass(slots=True)
class _AdapterState:
    _engine: Engine | None = None
    _session_factory: sessionmaker[Session] | None = None

    @property
    def engine(self) -> Engine | None:
        return self._engine

    @engine.setter
    def engine(self, value: Engine | None) -> None:
        self._session_factory = None
        self._engine = value

    @property
    def session_factory(self) -> sessionmaker[Session]:
        if self._engine is None:
            raise StartupError(
                "SQLAlchemy adapter not initialised. Call giftsync.adapters.sqlalchemy."
                "unit_of_work.startup() before requesting a unit of work."
            )
        if self._session_factory is None:
            self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        return self._session_factory


_STATE = _AdapterState()


def _configure_sqlite(engine: Engine) -> None:
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def _set_pragmas(dbapi_connection: Any, connection_record: object) -> None:
        _ = connection_record
        cursor = dbapi_connection.cursor()
        cursor.execute(f"PRAGMA busy_timeout = {SQLITE_BUSY_TIMEOUT_MS}")
        cursor.close()


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Initialise the engine and bring the schema to head.

    Running the migrations doubles as the startup check: an unreachable or
    unwritable store fails here with ``StartupError`` instead of on the first request.
    """

    if _STATE.engine is not None and not force:
        raise StartupError(
            "SQLAlchemy adapter already initialised. Pass force=True to reconfigure."
        )

    if engine is None:
        database = DatabaseConfig(uri=database_uri) if database_uri else get_database_config()
        engine = create_engine(database.uri, echo=database.echo, future=True)
    _configure_sqlite(engine)
    try:
        upgrade_head(engine=engine)
    except SQLAlchemyError as exc:
        log.exception("Primary store failed the startup check")
        raise StartupError(f"Primary store is not usable: {exc}") from exc

    _STATE.engine = engine


def configured_engine() -> Engine | None:
    """Return the engine currently managed by the adapter (if any)."""

    return _STATE.engine


def is_started() -> bool:
    """Return whether the adapter has been initialised."""

    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the managed engine and reset state (primarily for tests)."""

    if _STATE.engine is not None:
        _STATE.engine.dispose()
    _STATE.engine = None


class BaseSqlAlchemyUnitOfWork[TRepositories: RepositoryCollection](ABC):
    """Generic SQLAlchemy unit of work with pluggable repository collections.

    Driver-level operational failures (locked or unreachable database) leave the
    ``with`` block as ``ServiceUnavailableError``.
    """

    def __init__(self) -> None:
        self.session_factory: sessionmaker[Session] = _STATE.session_factory
        self._session: Session | None = None

    @abstractmethod
    def _build_repositories(self, session: Session) -> TRepositories: ...

    def __enter__(self) -> BaseSqlAlchemyUnitOfWork[TRepositories]:
        self.session = self.session_factory()
        self._repositories = self._build_repositories(self.session)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        try:
            if exc_type is not None:
                self.rollback()
        finally:
            self.session.close()
            self.session = None
        if isinstance(exc_value, OperationalError):
            message = f"Primary store unavailable: {exc_value.orig}"
            raise ServiceUnavailableError(message) from exc_value
        return False

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    @property
    def repositories(self) -> TRepositories:
        if self._session is None:
            raise StartupError("Unit of work session not initialised")
        return self._repositories

    @property
    def session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work session not initialised")
        return self._session

    @session.setter
    def session(self, session: Session | None) -> None:
        if self._session is not None and session is not None:
            raise StartupError("Unit of work session already initialised")
        self._session = session


class SqlAlchemyGiftUnitOfWork(BaseSqlAlchemyUnitOfWork[GiftRepositories]):
    """Unit of work over every repository of the primary store."""

    def _build_repositories(self, session: Session) -> GiftRepositories:
        return GiftRepositories(
            gifts=SqlAlchemyGiftRepository(session),
            mappings=SqlAlchemyIdentifierMappingRepository(session),
            annotations=SqlAlchemyAnnotationRepository(session),
            legacy=SqlAlchemyLegacyDetailRepository(session),
            events=SqlAlchemyEventRepository(session),
            rollups=SqlAlchemyRollupRepository(session),
            checkpoints=SqlAlchemyCheckpointRepository(session),
        )


if TYPE_CHECKING:
    from giftsync.domain.ports import GiftUnitOfWork

    _uow_check: GiftUnitOfWork = SqlAlchemyGiftUnitOfWork()
