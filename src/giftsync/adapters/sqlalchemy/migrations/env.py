"""Alembic environment for the gift ledger schema.

Runs against the connection handed over by ``upgrade_head`` when there is one,
otherwise opens a throwaway engine on ``sqlalchemy.url`` or the configured database.
"""

from __future__ import annotations

from logging.config import fileConfig
from pathlib import Path
from typing import TYPE_CHECKING, Any

from alembic import context
from sqlalchemy import create_engine, pool

from giftsync.adapters.sqlalchemy.mappings import metadata
from giftsync.config import get_database_config

if TYPE_CHECKING:
    from sqlalchemy.engine import Connection

alembic_config = context.config

if alembic_config.config_file_name and Path(alembic_config.config_file_name).suffix == ".ini":
    fileConfig(alembic_config.config_file_name, disable_existing_loggers=False)

# batch mode is needed for ALTER on SQLite
_OPTIONS: dict[str, Any] = {
    "target_metadata": metadata,
    "render_as_batch": True,
    "compare_type": True,
}


def _database_url() -> str:
    return alembic_config.get_main_option("sqlalchemy.url") or get_database_config().uri


def _migrate(connection: Connection | None = None) -> None:
    if connection is None:
        context.configure(url=_database_url(), literal_binds=True, **_OPTIONS)
    else:
        context.configure(connection=connection, **_OPTIONS)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_offline() -> None:
    _migrate()


def run_migrations_online() -> None:
    shared = alembic_config.attributes.get("connection")
    if shared is not None:
        _migrate(shared)
        return

    engine = create_engine(_database_url(), poolclass=pool.NullPool, future=True)
    try:
        with engine.connect() as connection:
            _migrate(connection)
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
