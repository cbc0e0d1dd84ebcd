"""
Scan Worker — Async orchestrator for a full page scan.

Pipeline:
1. Refuse restricted / excluded pages and empty rule sets
2. Wait the settle delay, obtain the page HTML (given or fetched)
3. Collect inline scripts, inline styles and external resource URLs
4. Match HTML and inline bodies in the pool; fetch external resources under
   the concurrency cap and match their bodies as they arrive
5. Merge in collection order, deduplicate
6. Drop false positives, compute new findings, update the seen index
7. Audit and return the ScanResult
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid

import httpx

from prism.audit.logger import AuditLogger
from prism.core.collector import collect
from prism.core.deduplicator import dedupe
from prism.core.domain_policy import is_domain_excluded, is_restricted_url, select_resources
from prism.core.engine import ScanEngine
from prism.core.fetcher import FetchOrchestrator, build_client
from prism.core.fingerprint import FingerprintFilters
from prism.errors import FatalScanError, ScanRejectedError
from prism.models.rule_models import Finding, Rule, SourceType
from prism.models.scan_models import (
    FetchResult,
    FetchStatus,
    ScanResult,
    ScanSettings,
    ScanStats,
)

logger = logging.getLogger("prism.worker")


class ScanWorker:
    """Async scan orchestrator implementing the full page scan pipeline."""

    def __init__(
        self,
        engine: ScanEngine | None = None,
        filters: FingerprintFilters | None = None,
        audit: AuditLogger | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.engine = engine or ScanEngine()
        self.filters = filters or FingerprintFilters()
        self.audit = audit
        self.client = client

    async def run_scan(
        self,
        page_url: str,
        rules: list[Rule],
        scan_settings: ScanSettings | None = None,
        html: str | None = None,
        mark_seen: bool = True,
        scan_id: str | None = None,
    ) -> ScanResult:
        """
        Scan one page.

        Args:
            page_url: URL of the page; base for relative resource URLs.
            rules: Rule snapshot for this scan.
            scan_settings: Per-scan options; defaults when omitted.
            html: Rendered page HTML. Fetched from page_url when None.
            mark_seen: Record findings in the seen index afterwards.

        Raises:
            ScanRejectedError: the page may not be scanned, or no rule is enabled.
            FatalScanError: anything unexpected; no partial result is returned.
        """
        scan_settings = scan_settings or ScanSettings()
        scan_id = scan_id or str(uuid.uuid4())[:8]

        if is_restricted_url(page_url):
            raise ScanRejectedError("Scanning is not allowed on browser internal pages")
        if is_domain_excluded(page_url, scan_settings.excluded_domains):
            raise ScanRejectedError("Scanning is disabled for this domain in settings")

        enabled_rules = [r for r in rules if r.enabled]
        if not enabled_rules:
            raise ScanRejectedError("No enabled rules found")

        try:
            if self.client is not None:
                return await self._execute(
                    scan_id, page_url, enabled_rules, scan_settings, html, mark_seen, self.client
                )
            async with build_client(scan_settings.fetch_timeout_seconds) as client:
                return await self._execute(
                    scan_id, page_url, enabled_rules, scan_settings, html, mark_seen, client
                )
        except Exception as e:
            logger.exception(f"[{scan_id}] Scan of {page_url} failed")
            raise FatalScanError(page_url, e) from e

    async def _execute(
        self,
        scan_id: str,
        page_url: str,
        rules: list[Rule],
        scan_settings: ScanSettings,
        html: str | None,
        mark_seen: bool,
        client: httpx.AsyncClient,
    ) -> ScanResult:
        start_time = time.monotonic()
        logger.info(f"[{scan_id}] Starting scan of {page_url} with {len(rules)} rules")

        if scan_settings.settle_delay_seconds > 0:
            await asyncio.sleep(scan_settings.settle_delay_seconds)

        # ── Step 1: Document ──
        if html is None:
            response = await client.get(page_url)
            response.raise_for_status()
            html = response.text

        resources = await asyncio.to_thread(collect, html, page_url)

        scripts = select_resources(resources.scripts, page_url, scan_settings)
        stylesheets = select_resources(resources.stylesheets, page_url, scan_settings)
        logger.info(
            f"[{scan_id}] Collected {len(resources.inline_scripts)} inline scripts, "
            f"{len(resources.inline_styles)} inline styles, {len(scripts)} scripts, "
            f"{len(stylesheets)} stylesheets"
        )

        # ── Step 2: Match inline content, fetch and match external content ──
        engine = self.engine
        external_types = {url: SourceType.EXTERNAL_CSS for url in stylesheets}
        external_types.update({url: SourceType.EXTERNAL_JS for url in scripts})

        async def on_body(url: str, body: str) -> list[Finding]:
            return await engine.scan(body, rules, url, external_types[url])

        fetcher = FetchOrchestrator(
            client=client,
            cache=engine.cache,
            max_file_size_bytes=scan_settings.max_file_size_bytes,
            timeout_seconds=scan_settings.fetch_timeout_seconds,
        )

        html_findings, script_findings, style_findings, fetched = await asyncio.gather(
            engine.scan(html, rules, page_url, SourceType.HTML),
            asyncio.gather(
                *(
                    engine.scan(s.content, rules, s.source, SourceType.INLINE_SCRIPT)
                    for s in resources.inline_scripts
                )
            ),
            asyncio.gather(
                *(
                    engine.scan(s.content, rules, s.source, SourceType.INLINE_STYLE)
                    for s in resources.inline_styles
                )
            ),
            fetcher.fetch_all(scripts + stylesheets, scan_settings.concurrency_limit, on_body),
        )

        script_results = fetched[: len(scripts)]
        style_results = fetched[len(scripts) :]

        stats = ScanStats(
            html_scanned=True,
            inline_scripts_scanned=len(resources.inline_scripts),
            inline_styles_scanned=len(resources.inline_styles),
            external_scripts_scanned=_count(script_results, FetchStatus.OK),
            external_styles_scanned=_count(style_results, FetchStatus.OK),
            external_scripts_failed=_count(script_results, FetchStatus.FAILED),
            external_styles_failed=_count(style_results, FetchStatus.FAILED),
            external_scripts_skipped=_count(script_results, FetchStatus.SKIPPED),
            external_styles_skipped=_count(style_results, FetchStatus.SKIPPED),
        )

        # ── Step 3: Merge in collection order ──
        findings: list[Finding] = list(html_findings)
        for group in (*script_findings, *style_findings):
            findings.extend(group)
        for result in fetched:
            findings.extend(result.findings)

        unique = dedupe(findings)
        logger.info(f"[{scan_id}] {len(findings)} raw findings, {len(unique)} unique")

        # ── Step 4: Fingerprint filters ──
        # Stores may hit the disk; keep their I/O off the event loop
        filters = self.filters
        filtered = await asyncio.to_thread(filters.filter_false_positives, unique)
        new_findings = await asyncio.to_thread(filters.get_new_findings, page_url, filtered)
        if mark_seen:
            await asyncio.to_thread(filters.mark_seen, page_url, filtered)

        elapsed_ms = (time.monotonic() - start_time) * 1000
        result = ScanResult(
            url=page_url,
            findings=filtered,
            new_findings=new_findings,
            stats=stats,
            duration_ms=round(elapsed_ms, 2),
        )

        if self.audit is not None:
            await asyncio.to_thread(self.audit.log, scan_id, result)

        logger.info(
            f"[{scan_id}] Scan complete in {elapsed_ms:.0f}ms — "
            f"{len(filtered)} findings ({len(new_findings)} new), "
            f"{stats.external_scripts_failed + stats.external_styles_failed} fetch failures"
        )
        return result


def _count(results: list[FetchResult], status: FetchStatus) -> int:
    return sum(1 for r in results if r.status == status)
