"""Location of the primary store."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

APP_DIR_NAME: Final[str] = "giftsync"
DEFAULT_DB_FILENAME: Final[str] = "giftsync.db"
_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})


@dataclass(frozen=True, slots=True)
class StorageConfig:
    """On-disk home of the default SQLite store."""

    data_dir: Path
    database_filename: str = DEFAULT_DB_FILENAME

    @property
    def database_path(self) -> Path:
        return self.data_dir.expanduser().resolve() / self.database_filename

    def sqlite_uri(self) -> str:
        """Return the SQLite URI, creating the data directory on first use."""

        path = self.database_path
        path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite+pysqlite:///{path}"


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str
    echo: bool = False

    @property
    def is_sqlite(self) -> bool:
        return self.uri.startswith("sqlite")


def default_data_dir() -> Path:
    """``GIFTSYNC_DATA_DIR``, else the platform's per-user data directory."""

    override = os.getenv("GIFTSYNC_DATA_DIR")
    if override and override.strip():
        return Path(override.strip())
    if os.name == "nt":
        root = os.getenv("LOCALAPPDATA") or str(Path.home() / "AppData" / "Local")
    else:
        root = os.getenv("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(root) / APP_DIR_NAME


def get_storage_config() -> StorageConfig:
    return StorageConfig(data_dir=default_data_dir())


def get_database_config(*, storage: StorageConfig | None = None) -> DatabaseConfig:
    """``DATABASE_URI`` wins; otherwise a SQLite file under the data directory."""

    echo = os.getenv("GIFTSYNC_SQL_ECHO", "").strip().lower() in _TRUTHY
    env_uri = os.getenv("DATABASE_URI", "").strip()
    if env_uri:
        return DatabaseConfig(uri=env_uri, echo=echo)
    return DatabaseConfig(uri=(storage or get_storage_config()).sqlite_uri(), echo=echo)
