from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002

from giftsync.adapters.sqlalchemy.unit_of_work import SqlAlchemyGiftUnitOfWork, shutdown, startup
from tests.helpers.chain import FakeEscrow, FakeFetcher

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def unit_of_work_factory(
    sqlite_engine: Engine,
) -> Iterator[Callable[[], SqlAlchemyGiftUnitOfWork]]:
    startup(engine=sqlite_engine, force=True)
    try:
        yield SqlAlchemyGiftUnitOfWork
    finally:
        shutdown()


@pytest.fixture
def file_unit_of_work_factory(
    tmp_path: Path,
) -> Iterator[Callable[[], SqlAlchemyGiftUnitOfWork]]:
    """Unit of work over an on-disk database, for tests that need separate connections."""

    startup(database_uri=f"sqlite+pysqlite:///{tmp_path / 'giftsync.db'}", force=True)
    try:
        yield SqlAlchemyGiftUnitOfWork
    finally:
        shutdown()


@pytest.fixture
def escrow() -> FakeEscrow:
    return FakeEscrow()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()
