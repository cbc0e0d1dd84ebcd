"""
Fingerprint Filters — hash-based suppression of dismissed and already-reported findings.

A fingerprint identifies a (rule_name, value) pair. It is a 32-bit djb2 hash,
computed over UTF-16 code units with signed 32-bit wraparound so that
fingerprints stored by the browser extension stay valid here.

Two filters sit on top of a FilterStore:
  - false positives: fingerprints the user dismissed, applied to every page
  - seen index: fingerprints already reported, scoped per resource key
"""

from __future__ import annotations

import logging
import time
import uuid
from urllib.parse import urlparse

from prism.cache.filter_store import FilterStore, InMemoryFilterStore
from prism.models.filter_models import (
    MAX_SEEN_PER_RESOURCE,
    MAX_SEEN_RESOURCES,
    FalsePositiveRecord,
    FilterSnapshot,
)
from prism.models.rule_models import Finding, SourceType

logger = logging.getLogger("prism.filters")

FALSE_POSITIVE_PREFIX = "fp_"
SEEN_PREFIX = "seen_"


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def fingerprint(rule_name: str, value: str, prefix: str = FALSE_POSITIVE_PREFIX) -> str:
    """Deterministic djb2 fingerprint of `rule_name:value`, e.g. 'fp_1a2b3c4d'."""
    # surrogatepass keeps lone surrogates as their own code units
    data = f"{rule_name}:{value}".encode("utf-16-le", "surrogatepass")
    h = 5381
    for i in range(0, len(data), 2):
        code_unit = data[i] | (data[i + 1] << 8)
        h = _to_int32(h * 33 + code_unit)
    return f"{prefix}{abs(h):x}"


def resource_key(page_url: str, source: str) -> str:
    """
    hostname + path of the resource a finding came from.

    External findings carry their own absolute URL; inline findings are
    scoped to the page that contained them.
    """
    target = source if source and source.startswith("http") else page_url
    try:
        parsed = urlparse(target)
        if not parsed.hostname:
            raise ValueError(f"no hostname in {target!r}")
        return parsed.hostname + (parsed.path or "/")
    except ValueError:
        return source or page_url


class FingerprintFilters:
    """False-positive and seen-index filtering backed by a FilterStore."""

    def __init__(self, store: FilterStore | None = None) -> None:
        self.store = store or InMemoryFilterStore()

    # ── False positives ──

    def filter_false_positives(self, findings: list[Finding]) -> list[Finding]:
        """Drop findings whose fingerprint the user marked as a false positive."""
        if not findings:
            return findings

        snapshot = self.store.load()
        if not snapshot.false_positives:
            return findings

        dismissed = {fp.fingerprint for fp in snapshot.false_positives}
        filtered = [
            f for f in findings if fingerprint(f.rule_name, f.value) not in dismissed
        ]
        logger.info(
            f"Filtered {len(findings) - len(filtered)} false positives, "
            f"{len(filtered)} findings remain"
        )
        return filtered

    def add_false_positive(
        self,
        rule_name: str,
        value: str,
        source: str = "",
        source_type: SourceType | None = None,
    ) -> FalsePositiveRecord:
        """Mark a (rule_name, value) pair as a false positive. Idempotent."""
        snapshot = self.store.load()
        fp_hash = fingerprint(rule_name, value)

        for existing in snapshot.false_positives:
            if existing.fingerprint == fp_hash:
                return existing

        record = FalsePositiveRecord(
            id=f"fp-{uuid.uuid4().hex[:12]}",
            rule_name=rule_name,
            value=value,
            fingerprint=fp_hash,
            marked_at=time.time(),
            source=source,
            source_type=source_type,
        )
        snapshot.false_positives.append(record)
        self.store.save(snapshot)
        logger.info(f"Marked false positive {fp_hash} for rule '{rule_name}'")
        return record

    def mark_false_positive(self, finding: Finding) -> FalsePositiveRecord:
        return self.add_false_positive(
            finding.rule_name, finding.value, finding.source, finding.source_type
        )

    def remove_false_positive(self, record_id: str) -> bool:
        """Remove a false-positive record by id. Returns False if unknown."""
        snapshot = self.store.load()
        remaining = [fp for fp in snapshot.false_positives if fp.id != record_id]
        if len(remaining) == len(snapshot.false_positives):
            return False
        snapshot.false_positives = remaining
        self.store.save(snapshot)
        return True

    def is_false_positive(self, finding: Finding) -> bool:
        fp_hash = fingerprint(finding.rule_name, finding.value)
        return any(fp.fingerprint == fp_hash for fp in self.store.load().false_positives)

    def list_false_positives(self) -> list[FalsePositiveRecord]:
        return self.store.load().false_positives

    # ── Seen index ──

    def get_new_findings(self, page_url: str, findings: list[Finding]) -> list[Finding]:
        """Findings not yet recorded under their resource key."""
        if not findings:
            return []

        seen = self.store.load().seen
        new_findings = [
            f
            for f in findings
            if fingerprint(f.rule_name, f.value, SEEN_PREFIX)
            not in seen.get(resource_key(page_url, f.source), ())
        ]
        logger.info(f"{len(new_findings)} new findings out of {len(findings)}")
        return new_findings

    def mark_seen(self, page_url: str, findings: list[Finding]) -> None:
        """Record findings in the seen index, trimming it to its bounds."""
        if not findings:
            return

        snapshot = self.store.load()
        _record_seen(snapshot, page_url, findings)
        self.store.save(snapshot)


def _record_seen(snapshot: FilterSnapshot, page_url: str, findings: list[Finding]) -> None:
    seen = snapshot.seen

    for finding in findings:
        key = resource_key(page_url, finding.source)
        hashes = seen.setdefault(key, [])

        seen_hash = fingerprint(finding.rule_name, finding.value, SEEN_PREFIX)
        if seen_hash not in hashes:
            hashes.append(seen_hash)

        if len(hashes) > MAX_SEEN_PER_RESOURCE:
            seen[key] = hashes[-MAX_SEEN_PER_RESOURCE:]

    # Oldest resource keys first in insertion order
    overflow = len(seen) - MAX_SEEN_RESOURCES
    if overflow > 0:
        for key in list(seen)[:overflow]:
            del seen[key]
