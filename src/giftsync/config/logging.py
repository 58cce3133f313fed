"""Logging setup for the giftsync CLI and workers."""

from __future__ import annotations

import logging
import os

from .errors import ConfigurationError

LOG_LEVEL_ENV = "GIFTSYNC_LOG_LEVEL"
# httpx logs every request at INFO.
QUIET_LOGGERS = ("httpx", "httpcore")


def resolve_level(default: int = logging.INFO) -> int:
    """Read ``GIFTSYNC_LOG_LEVEL`` (a level name such as ``DEBUG``)."""

    raw = os.getenv(LOG_LEVEL_ENV)
    if raw is None or not raw.strip():
        return default
    level = logging.getLevelNamesMapping().get(raw.strip().upper())
    if level is None:
        raise ConfigurationError(f"{LOG_LEVEL_ENV} is not a logging level: {raw!r}")
    return level


def configure_logging(*, level: int | None = None, force: bool = False) -> None:
    """Configure the root logger; ``level`` defaults to ``resolve_level()``."""

    effective = resolve_level() if level is None else level
    logging.basicConfig(
        level=effective,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        force=force,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(effective, logging.WARNING))
