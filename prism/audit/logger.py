"""
Audit Logger — one JSON line per completed scan.

An entry says what a scan covered and which rules fired, never what the
secrets were: values, contexts and masked values stay out of the file.
"""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from prism.config import settings
from prism.models.scan_models import ScanResult, ScanStats

logger = logging.getLogger("prism.audit")


class AuditRecord(BaseModel):
    timestamp: str
    scan_id: str
    url: str
    findings: int = 0
    new_findings: int = 0
    rules_hit: list[str] = Field(default_factory=list)
    duration_ms: float = 0.0
    stats: ScanStats = Field(default_factory=ScanStats)

    @classmethod
    def from_result(cls, scan_id: str, result: ScanResult) -> "AuditRecord":
        return cls(
            timestamp=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            scan_id=scan_id,
            url=result.url,
            findings=len(result.findings),
            new_findings=len(result.new_findings),
            rules_hit=sorted({f.rule_name for f in result.findings}),
            duration_ms=result.duration_ms,
            stats=result.stats,
        )


class AuditLogger:
    """Appends AuditRecords to a JSON-lines file; write errors are logged, not raised."""

    def __init__(self, log_path: str | None = None) -> None:
        self.log_path = Path(log_path or settings.audit_log_path)
        self._lock = threading.Lock()

    def log(self, scan_id: str, result: ScanResult) -> AuditRecord:
        record = AuditRecord.from_result(scan_id, result)
        line = record.model_dump_json() + "\n"

        with self._lock:
            try:
                with open(self.log_path, "a", encoding="utf-8") as f:
                    f.write(line)
            except OSError as e:
                logger.error(f"[{scan_id}] Audit entry not written to {self.log_path}: {e}")
        return record

    def read_recent(self, count: int = 50, url: str | None = None) -> list[AuditRecord]:
        """Newest `count` records, optionally only those for one page URL."""
        try:
            with open(self.log_path, encoding="utf-8") as f:
                lines = f.readlines()
        except FileNotFoundError:
            return []

        records: list[AuditRecord] = []
        for line in lines:
            if not line.strip():
                continue
            try:
                record = AuditRecord.model_validate_json(line)
            except ValidationError:
                logger.debug(f"Skipping malformed audit line in {self.log_path}")
                continue
            if url is None or record.url == url:
                records.append(record)

        return records[-count:]
