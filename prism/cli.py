"""
PRISM command line — scan a page from the terminal.

    prism scan https://example.com --concurrency 5
    prism scan https://example.com --rules my-rules.json --json
    prism serve --port 8080
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv

from prism.cache.filter_store import InMemoryFilterStore, JsonFileFilterStore
from prism.config import settings
from prism.core.dispatcher import Dispatcher
from prism.core.engine import ScanEngine
from prism.core.fingerprint import FingerprintFilters
from prism.errors import PrismError
from prism.models.scan_models import ScanResult, ScanSettings
from prism.rules.defaults import load_rules
from prism.workers.scan_worker import ScanWorker

logger = logging.getLogger("prism.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="prism", description="Scan web pages for leaked secrets")
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Scan one page and its resources")
    scan.add_argument("url", help="Page URL")
    scan.add_argument("--rules", help="Rules JSON file (default: bundled rules)")
    scan.add_argument("--html", help="Read page HTML from this file instead of fetching")
    scan.add_argument("--concurrency", type=int, help="Max parallel resource fetches")
    scan.add_argument("--max-file-size-kb", type=int, help="Skip resources larger than this")
    scan.add_argument("--same-domain", action="store_true", help="Only fetch same-host resources")
    scan.add_argument("--pool-size", type=int, help="Number of matching units")
    scan.add_argument("--no-settle", action="store_true", help="Skip the settle delay")
    scan.add_argument(
        "--remember",
        action="store_true",
        help="Use the persistent filter store (false positives and seen index)",
    )
    scan.add_argument("--json", action="store_true", help="Print the full result as JSON")
    scan.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=settings.host)
    serve.add_argument("--port", type=int, default=settings.port)
    serve.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def _scan_settings(args: argparse.Namespace) -> ScanSettings:
    overrides = {}
    if args.concurrency is not None:
        overrides["concurrency_limit"] = args.concurrency
    if args.max_file_size_kb is not None:
        overrides["max_file_size_kb"] = args.max_file_size_kb
    if args.same_domain:
        overrides["scan_current_domain_only"] = True
    if args.no_settle:
        overrides["settle_delay_seconds"] = 0
    return ScanSettings(**overrides)


def format_result(result: ScanResult) -> str:
    lines = [f"Scanned {result.url} in {result.duration_ms:.0f}ms"]
    stats = result.stats
    lines.append(
        f"  inline: {stats.inline_scripts_scanned} scripts, {stats.inline_styles_scanned} styles | "
        f"external: {stats.external_scripts_scanned} scripts, {stats.external_styles_scanned} styles | "
        f"failed: {stats.external_scripts_failed + stats.external_styles_failed} | "
        f"skipped: {stats.external_scripts_skipped + stats.external_styles_skipped}"
    )
    if not result.findings:
        lines.append("No secrets found.")
        return "\n".join(lines)

    new_keys = {f.dedup_key for f in result.new_findings}
    for f in result.findings:
        marker = "NEW " if f.dedup_key in new_keys else "    "
        lines.append(f"{marker}[{f.rule_name}] {f.masked_value}  {f.source}:{f.line_number}")
    return "\n".join(lines)


async def run_scan_command(args: argparse.Namespace) -> ScanResult:
    rules = load_rules(args.rules)
    html = None
    if args.html:
        with open(args.html, encoding="utf-8", errors="replace") as f:
            html = f.read()

    store = JsonFileFilterStore() if args.remember else InMemoryFilterStore()
    async with ScanEngine(Dispatcher(pool_size=args.pool_size)) as engine:
        worker = ScanWorker(engine=engine, filters=FingerprintFilters(store))
        return await worker.run_scan(
            args.url, rules, _scan_settings(args), html=html, mark_seen=args.remember
        )


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.command == "serve":
        import uvicorn

        uvicorn.run("prism.main:app", host=args.host, port=args.port)
        return 0

    try:
        result = asyncio.run(run_scan_command(args))
    except (PrismError, FileNotFoundError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps(result.model_dump(mode="json"), indent=2))
    else:
        print(format_result(result))
    return 1 if result.findings else 0


if __name__ == "__main__":
    sys.exit(main())
