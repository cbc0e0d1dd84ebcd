"""
Scan Data Models — per-scan settings, jobs, fetch outcomes and results.

Also holds the request/response schemas used by the FastAPI endpoints.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from prism.config import settings
from prism.models.rule_models import Finding, Rule, SourceType


class ScanSettings(BaseModel):
    """
    Explicit per-scan configuration.

    Every field carries a default, so a partial settings object coming from
    a settings store (camelCase keys are accepted) merges cleanly.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    scan_current_domain_only: bool = Field(
        default=False, description="Only fetch external resources served from the page's host"
    )
    scan_third_party_resources: bool = Field(
        default=True, description="Fetch external resources served from other hosts"
    )
    max_file_size_kb: int = Field(
        default_factory=lambda: settings.max_file_size_kb,
        alias="maxFileSizeKB",
        description="External bodies larger than this are skipped, not scanned",
    )
    concurrency_limit: int = Field(
        default_factory=lambda: settings.concurrency_limit,
        ge=1,
        description="Max external fetches in flight",
    )
    excluded_domains: list[str] = Field(
        default_factory=list,
        description="Hostnames or wildcard patterns that must never be scanned",
    )
    settle_delay_seconds: float = Field(
        default_factory=lambda: settings.settle_delay_seconds,
        ge=0,
        description="Pause before scanning begins",
    )
    fetch_timeout_seconds: float = Field(
        default_factory=lambda: settings.fetch_timeout_seconds,
        gt=0,
        description="Timeout for a single resource fetch",
    )

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_kb * 1024


class ScanJob(BaseModel):
    """A unit of matching work submitted to the dispatcher."""

    correlation_id: int
    content: str
    rules: list[dict[str, Any]] = Field(
        default_factory=list, description="Rule snapshot, copied by value"
    )
    source: str
    source_type: SourceType


class InlineContent(BaseModel):
    """An inline script or style body with its synthesized label."""

    content: str
    source: str


class CollectedResources(BaseModel):
    """Everything a document offers for scanning."""

    scripts: list[str] = Field(default_factory=list)
    stylesheets: list[str] = Field(default_factory=list)
    inline_scripts: list[InlineContent] = Field(default_factory=list)
    inline_styles: list[InlineContent] = Field(default_factory=list)


class FetchStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"


class FetchResult(BaseModel):
    """Outcome of fetching (and possibly scanning) one external resource."""

    url: str
    status: FetchStatus
    findings: list[Finding] = Field(default_factory=list)
    size_bytes: int = 0
    error: str | None = None


class ScanStats(BaseModel):
    """Counters describing what a scan covered."""

    html_scanned: bool = False
    inline_scripts_scanned: int = 0
    inline_styles_scanned: int = 0
    external_scripts_scanned: int = 0
    external_styles_scanned: int = 0
    external_scripts_failed: int = 0
    external_styles_failed: int = 0
    external_scripts_skipped: int = 0
    external_styles_skipped: int = 0


class ScanResult(BaseModel):
    """Final, deduplicated and filtered output of one page scan."""

    url: str = ""
    findings: list[Finding] = Field(default_factory=list)
    new_findings: list[Finding] = Field(
        default_factory=list,
        description="Subset of findings not previously reported for their resource",
    )
    stats: ScanStats = Field(default_factory=ScanStats)
    duration_ms: float = 0.0


# ── API schemas ──


class ScanRequest(BaseModel):
    """Request body for POST /scan."""

    url: str = Field(..., min_length=1, description="Page URL; base for relative resources")
    html: str | None = Field(
        default=None, description="Rendered page HTML; fetched from url when omitted"
    )
    rules: list[Rule] | None = Field(
        default=None, description="Rule set; bundled defaults when omitted"
    )
    settings: ScanSettings | None = None
    mark_seen: bool = Field(
        default=True, description="Record findings in the seen index after the scan"
    )


class ScanResponse(BaseModel):
    """Top-level response for POST /scan."""

    message: str = "scan_complete"
    scan_id: str = ""
    result: ScanResult | None = None
    error: str | None = None
