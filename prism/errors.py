"""
PRISM exception hierarchy.

Per-resource problems (fetch failures, bad patterns, pool outages) are absorbed
where they happen; only these reach callers.
"""

from __future__ import annotations


class PrismError(Exception):
    """Base class for all PRISM errors."""


class ScanRejectedError(PrismError):
    """The scan was refused before it started (restricted URL, excluded domain, no rules)."""


class FatalScanError(PrismError):
    """An unexpected exception escaped the scan; no partial result exists."""

    def __init__(self, url: str, cause: BaseException) -> None:
        super().__init__(f"Scan of {url} failed: {type(cause).__name__}: {cause}")
        self.url = url
        self.cause = cause


class PoolUnavailableError(PrismError):
    """The parallel matching pool could not be created."""
