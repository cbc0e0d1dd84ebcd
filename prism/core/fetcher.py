"""
Fetch Orchestrator — bounded-concurrency retrieval of external resources.

A fixed number of fetch tasks share one cursor over the URL list; whenever a
task finishes a URL it claims the next unclaimed one, so no slot idles while
work remains and at most `concurrency_limit` requests are ever in flight.

Policy:
  - network error, timeout or non-2xx: status FAILED, empty findings, counted
  - body above the size limit: status SKIPPED, never scanned, not a failure
  - no retries; one failing URL never affects its siblings
  - requests carry no cookies or credentials; cached bodies are reused
"""

from __future__ import annotations

import asyncio
import logging
from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import Awaitable, Callable

import httpx

from prism.cache.resource_cache import ResourceCache
from prism.config import settings
from prism.models.rule_models import Finding
from prism.models.scan_models import FetchResult, FetchStatus

logger = logging.getLogger("prism.fetch")

OnBody = Callable[[str, str], Awaitable[list[Finding]]]


class _Oversize(Exception):
    def __init__(self, size_bytes: int) -> None:
        super().__init__(size_bytes)
        self.size_bytes = size_bytes


def _credentialless_cookies() -> CookieJar:
    """A cookie jar that refuses to store or send any cookie."""
    return CookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))


def build_client(
    timeout_seconds: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """HTTP client for resource fetches: no cookies, no auth, redirects followed."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout_seconds or settings.fetch_timeout_seconds),
        follow_redirects=True,
        cookies=_credentialless_cookies(),
        headers={"User-Agent": settings.user_agent},
        transport=transport,
    )


class FetchOrchestrator:
    """Fetches resource bodies under a concurrency cap and hands them to a callback."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        cache: ResourceCache | None = None,
        max_file_size_bytes: int | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.client = client
        self.cache = cache
        self.max_file_size_bytes = (
            max_file_size_bytes
            if max_file_size_bytes is not None
            else settings.max_file_size_kb * 1024
        )
        self.timeout_seconds = timeout_seconds or settings.fetch_timeout_seconds
        self.failures = 0
        self.skipped = 0

    async def fetch_all(
        self,
        urls: list[str],
        concurrency_limit: int,
        on_body: OnBody,
    ) -> list[FetchResult]:
        """
        Fetch every URL and pass each in-limit body to `on_body`.

        Returns:
            One FetchResult per URL, in input order regardless of completion order.
        """
        if concurrency_limit < 1:
            raise ValueError(f"concurrency_limit must be >= 1, got {concurrency_limit}")
        if not urls:
            return []

        results: list[FetchResult | None] = [None] * len(urls)
        cursor = 0

        async def fetch_slot(client: httpx.AsyncClient) -> None:
            nonlocal cursor
            while cursor < len(urls):
                index = cursor
                cursor += 1
                results[index] = await self._fetch_one(client, urls[index], on_body)

        slots = min(concurrency_limit, len(urls))
        logger.debug(f"Fetching {len(urls)} resources with {slots} slots")

        if self.client is not None:
            await asyncio.gather(*(fetch_slot(self.client) for _ in range(slots)))
        else:
            async with build_client(self.timeout_seconds) as client:
                await asyncio.gather(*(fetch_slot(client) for _ in range(slots)))

        return [r for r in results if r is not None]

    async def _fetch_one(
        self, client: httpx.AsyncClient, url: str, on_body: OnBody
    ) -> FetchResult:
        cached = self.cache.get(url) if self.cache is not None else None
        try:
            if cached is not None:
                if cached.size_bytes > self.max_file_size_bytes:
                    raise _Oversize(cached.size_bytes)
                body, size_bytes = cached.body, cached.size_bytes
            else:
                body, size_bytes = await self.fetch_body(client, url)
                if self.cache is not None:
                    self.cache.put(url, body, size_bytes)
        except _Oversize as e:
            self.skipped += 1
            logger.info(f"Skipping {url}: {e.size_bytes} bytes exceeds limit")
            return FetchResult(url=url, status=FetchStatus.SKIPPED, size_bytes=e.size_bytes)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            self.failures += 1
            logger.warning(f"Failed to fetch {url}: {type(e).__name__}: {e}")
            return FetchResult(url=url, status=FetchStatus.FAILED, error=str(e))

        findings = await on_body(url, body)
        return FetchResult(
            url=url, status=FetchStatus.OK, findings=findings, size_bytes=size_bytes
        )

    async def fetch_body(self, client: httpx.AsyncClient, url: str) -> tuple[str, int]:
        """
        GET a resource body, enforcing the size limit while streaming.

        Raises:
            httpx.HTTPError: network failure, timeout, or non-2xx status.
            _Oversize: body larger than max_file_size_bytes.
        """
        limit = self.max_file_size_bytes
        async with client.stream("GET", url) as response:
            response.raise_for_status()

            declared = response.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > limit:
                raise _Oversize(int(declared))

            chunks: list[bytes] = []
            received = 0
            async for chunk in response.aiter_bytes():
                received += len(chunk)
                if received > limit:
                    raise _Oversize(received)
                chunks.append(chunk)

            return _decode(b"".join(chunks), response.encoding), received


def _decode(raw: bytes, encoding: str | None) -> str:
    try:
        return raw.decode(encoding or "utf-8", errors="replace")
    except LookupError:
        return raw.decode("utf-8", errors="replace")
