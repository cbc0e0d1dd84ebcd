"""
Deduplicator — collapses identical findings within one scan.
"""

from __future__ import annotations

from prism.models.rule_models import Finding


def dedupe(findings: list[Finding]) -> list[Finding]:
    """Keep the first finding per (rule_name, value, source); preserve order."""
    seen: set[tuple[str, str, str]] = set()
    unique: list[Finding] = []

    for finding in findings:
        key = finding.dedup_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(finding)

    return unique
