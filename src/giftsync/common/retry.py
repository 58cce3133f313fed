"""Bounded retry helpers for transient store failures."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from giftsync.domain.errors import ServiceUnavailableError

if TYPE_CHECKING:
    from collections.abc import Callable

log = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 3
DEFAULT_INITIAL_WAIT_SECONDS = 0.05
DEFAULT_MAX_WAIT_SECONDS = 1.0


def retry_transient[**P, T](
    *,
    attempts: int = DEFAULT_ATTEMPTS,
    initial_wait: float = DEFAULT_INITIAL_WAIT_SECONDS,
    max_wait: float = DEFAULT_MAX_WAIT_SECONDS,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Retry ``ServiceUnavailableError`` with exponential backoff, then re-raise it."""

    return retry(
        retry=retry_if_exception_type(ServiceUnavailableError),
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=initial_wait, max=max_wait),
        before_sleep=before_sleep_log(log, logging.WARNING),
        reraise=True,
    )
