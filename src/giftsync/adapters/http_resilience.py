from __future__ import annotations

import time
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from aiolimiter import AsyncLimiter
from httpx_retries import Retry, RetryTransport

if TYPE_CHECKING:
    from types import TracebackType

    from giftsync.config.http_resilience import RateLimit, ResilienceConfig, RetryPolicy

log = getLogger(__name__)


def build_retry(policy: RetryPolicy) -> Retry:
    return Retry(
        total=policy.total,
        backoff_factor=policy.backoff_factor,
        max_backoff_wait=policy.max_backoff_wait,
        backoff_jitter=policy.backoff_jitter,
        respect_retry_after_header=policy.respect_retry_after_header,
        allowed_methods=tuple(policy.allowed_methods),
        status_forcelist=tuple(policy.status_forcelist),
        retry_on_exceptions=policy.retry_on_exceptions,
    )


def build_limiter(limit: RateLimit | None) -> AsyncLimiter | None:
    if limit is None:
        return None
    return AsyncLimiter(limit.max_calls, limit.per_seconds)


class ResilientClient:
    """Async client for JSON POSTs: retries underneath, a rate limit on top.

    ``transport`` replaces the network transport below the retry layer, which is
    how tests plug in ``httpx.MockTransport``. ``requests_sent`` counts calls that
    left the rate limiter, not transport-level retries.
    """

    def __init__(
        self,
        config: ResilienceConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.requests_sent = 0
        self._limiter = build_limiter(config.ratelimit)
        self._client = httpx.AsyncClient(
            timeout=config.timeout_seconds,
            headers=dict(config.headers),
            transport=RetryTransport(transport=transport, retry=build_retry(config.retry)),
        )

    async def __aenter__(self) -> ResilientClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def post(self, url: str, *, json: object) -> httpx.Response:
        if self._limiter is None:
            return await self._post(url, json)
        async with self._limiter:
            return await self._post(url, json)

    async def _post(self, url: str, payload: object) -> httpx.Response:
        started = time.perf_counter()
        response = await self._client.post(url, json=payload)
        self.requests_sent += 1
        elapsed_ms = (time.perf_counter() - started) * 1000
        log.debug(
            f"{self.config.name}: POST {url} -> {response.status_code} in {elapsed_ms:.0f}ms"
        )
        return response


__all__ = ["ResilientClient", "build_limiter", "build_retry"]
