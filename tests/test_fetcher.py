"""
Tests for the Fetch Orchestrator — ordering, concurrency cap, failures, size skips.
"""

import asyncio

import httpx
import pytest

from prism.cache.resource_cache import ResourceCache
from prism.core.fetcher import FetchOrchestrator, build_client
from prism.models.rule_models import Finding, SourceType
from prism.models.scan_models import FetchStatus


def _finding_for(url: str) -> Finding:
    return Finding(
        rule_id="r",
        rule_name="R",
        value=url,
        source=url,
        source_type=SourceType.EXTERNAL_JS,
        line_number=1,
    )


async def _echo_on_body(url: str, body: str) -> list[Finding]:
    return [_finding_for(url)]


def _run(coro):
    return asyncio.run(coro)


def _client(handler) -> httpx.AsyncClient:
    return build_client(timeout_seconds=5, transport=httpx.MockTransport(handler))


def test_thirty_urls_five_failures():
    urls = [f"https://cdn.example.com/lib{i}.js" for i in range(30)]
    failing = {urls[i] for i in (0, 7, 13, 21, 29)}
    in_flight = 0
    max_in_flight = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal in_flight, max_in_flight
        in_flight += 1
        max_in_flight = max(max_in_flight, in_flight)
        await asyncio.sleep(0.005)
        in_flight -= 1
        if str(request.url) in failing:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, text="var x = 1;")

    async def scenario():
        async with _client(handler) as client:
            orchestrator = FetchOrchestrator(client=client)
            results = await orchestrator.fetch_all(urls, 10, _echo_on_body)
            return orchestrator, results

    orchestrator, results = _run(scenario())

    assert len(results) == 30
    assert [r.url for r in results] == urls
    failed = [r for r in results if r.status == FetchStatus.FAILED]
    assert len(failed) == 5
    assert all(r.findings == [] for r in failed)
    assert orchestrator.failures == 5
    assert max_in_flight <= 10


@pytest.mark.parametrize("limit", [1, 3, 7, 12])
def test_output_order_preserved_for_any_completion_order(limit):
    urls = [f"https://cdn.example.com/{i}.js" for i in range(12)]

    async def handler(request: httpx.Request) -> httpx.Response:
        index = int(request.url.path.strip("/").split(".")[0])
        # later URLs finish first
        await asyncio.sleep((12 - index) * 0.002)
        return httpx.Response(200, text=f"body {index}")

    async def scenario():
        async with _client(handler) as client:
            return await FetchOrchestrator(client=client).fetch_all(urls, limit, _echo_on_body)

    results = _run(scenario())
    assert [r.url for r in results] == urls
    assert [r.findings[0].value for r in results] == urls


def test_concurrency_cap_respected():
    urls = [f"https://cdn.example.com/{i}.css" for i in range(20)]
    in_flight = 0
    max_in_flight = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal in_flight, max_in_flight
        in_flight += 1
        max_in_flight = max(max_in_flight, in_flight)
        await asyncio.sleep(0.002)
        in_flight -= 1
        return httpx.Response(200, text="a{}")

    async def scenario():
        async with _client(handler) as client:
            return await FetchOrchestrator(client=client).fetch_all(urls, 3, _echo_on_body)

    results = _run(scenario())
    assert len(results) == 20
    assert 1 <= max_in_flight <= 3


def test_oversize_body_skipped_not_failed():
    scanned: list[str] = []

    async def on_body(url: str, body: str) -> list[Finding]:
        scanned.append(url)
        return []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/big.js":
            return httpx.Response(200, content=b"x" * 4096)
        return httpx.Response(200, content=b"small")

    async def scenario():
        async with _client(handler) as client:
            orchestrator = FetchOrchestrator(client=client, max_file_size_bytes=1024)
            results = await orchestrator.fetch_all(
                ["https://a.test/big.js", "https://a.test/small.js"], 2, on_body
            )
            return orchestrator, results

    orchestrator, results = _run(scenario())

    assert [r.status for r in results] == [FetchStatus.SKIPPED, FetchStatus.OK]
    assert results[0].size_bytes == 4096
    assert scanned == ["https://a.test/small.js"]
    assert orchestrator.failures == 0
    assert orchestrator.skipped == 1


def test_network_error_is_a_failure_and_siblings_continue():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "down.test":
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, text="ok")

    async def scenario():
        async with _client(handler) as client:
            orchestrator = FetchOrchestrator(client=client)
            results = await orchestrator.fetch_all(
                ["https://down.test/a.js", "https://up.test/b.js"], 1, _echo_on_body
            )
            return orchestrator, results

    orchestrator, results = _run(scenario())
    assert results[0].status == FetchStatus.FAILED
    assert "connection refused" in results[0].error
    assert results[1].status == FetchStatus.OK
    assert orchestrator.failures == 1


def test_fetch_timeout_is_a_failure_and_siblings_continue():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/slow.js":
            raise httpx.ReadTimeout("timed out", request=request)
        return httpx.Response(200, text="ok")

    urls = ["https://cdn.test/a.js", "https://cdn.test/slow.js", "https://cdn.test/c.js"]

    async def scenario():
        async with _client(handler) as client:
            orchestrator = FetchOrchestrator(client=client)
            results = await orchestrator.fetch_all(urls, 2, _echo_on_body)
            return orchestrator, results

    orchestrator, results = _run(scenario())
    assert [r.status for r in results] == [FetchStatus.OK, FetchStatus.FAILED, FetchStatus.OK]
    assert results[1].findings == []
    assert orchestrator.failures == 1


def test_client_applies_fetch_timeout():
    client = build_client(timeout_seconds=2.5)
    assert client.timeout.connect == 2.5
    assert client.timeout.read == 2.5


def test_server_error_not_retried():
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(503)

    async def scenario():
        async with _client(handler) as client:
            return await FetchOrchestrator(client=client).fetch_all(
                ["https://flaky.test/a.js"], 4, _echo_on_body
            )

    results = _run(scenario())
    assert results[0].status == FetchStatus.FAILED
    assert calls == 1


def test_cached_bodies_are_reused():
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200, text="cached body")

    cache = ResourceCache(ttl_seconds=60)
    urls = ["https://cdn.test/a.js", "https://cdn.test/b.js"]

    async def scenario():
        async with _client(handler) as client:
            first = await FetchOrchestrator(client=client, cache=cache).fetch_all(urls, 2, _echo_on_body)
            second = await FetchOrchestrator(client=client, cache=cache).fetch_all(urls, 2, _echo_on_body)
            return first, second

    first, second = _run(scenario())
    assert calls == 2
    assert [r.status for r in second] == [FetchStatus.OK, FetchStatus.OK]
    assert cache.hits == 2


def test_no_cookies_are_stored_or_sent():
    seen_cookie_headers: list[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_cookie_headers.append(request.headers.get("cookie"))
        return httpx.Response(200, text="ok", headers={"set-cookie": "session=abc123; Path=/"})

    async def scenario():
        async with _client(handler) as client:
            await FetchOrchestrator(client=client).fetch_all(
                ["https://a.test/1.js", "https://a.test/2.js"], 1, _echo_on_body
            )

    _run(scenario())
    assert seen_cookie_headers == [None, None]


def test_empty_url_list():
    results = _run(FetchOrchestrator().fetch_all([], 5, _echo_on_body))
    assert results == []


def test_invalid_concurrency_limit():
    with pytest.raises(ValueError):
        _run(FetchOrchestrator().fetch_all(["https://a.test/x.js"], 0, _echo_on_body))
