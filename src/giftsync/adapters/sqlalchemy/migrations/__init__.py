"""Schema migrations for the gift ledger, applied with Alembic at startup."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import TYPE_CHECKING, Final

from alembic import command
from alembic.config import Config

from giftsync.config.storage import get_database_config

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

MIGRATIONS_PATH: Final[Path] = Path(__file__).resolve().parent
# only present in a source checkout, an installed wheel has no pyproject.toml
PYPROJECT_PATH: Final[Path] = MIGRATIONS_PATH.parents[4] / "pyproject.toml"
_IGNORED_OPTIONS: Final = frozenset({"script_location", "prepend_sys_path"})


def _alembic_options() -> dict[str, str]:
    if not PYPROJECT_PATH.is_file():
        return {}
    with PYPROJECT_PATH.open("rb") as handle:
        section = tomllib.load(handle).get("tool", {}).get("alembic", {})
    return {str(key): str(value) for key, value in section.items() if key not in _IGNORED_OPTIONS}


def _build_config() -> Config:
    config = Config()
    # scripts always ship inside the package, whatever the checkout layout
    config.set_main_option("script_location", str(MIGRATIONS_PATH))
    for key, value in _alembic_options().items():
        config.set_main_option(key, value)
    return config


def upgrade_head(*, engine: Engine | None = None, database_uri: str | None = None) -> None:
    """Bring the schema to the latest revision.

    With ``engine`` the upgrade runs on one of its connections, so in-memory
    SQLite databases are migrated in place.
    """

    config = _build_config()
    if engine is None:
        config.set_main_option("sqlalchemy.url", database_uri or get_database_config().uri)
        command.upgrade(config, "head")
        return
    with engine.begin() as connection:
        config.attributes["connection"] = connection
        command.upgrade(config, "head")
