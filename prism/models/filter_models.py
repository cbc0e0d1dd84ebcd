"""
Filter Data Models — false-positive records and the bounded seen index.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from prism.models.rule_models import SourceType

# Bounds of the seen index
MAX_SEEN_PER_RESOURCE = 500
MAX_SEEN_RESOURCES = 200


class FalsePositiveRecord(BaseModel):
    """A (rule_name, value) pair the user dismissed; keyed by fingerprint."""

    id: str
    rule_name: str
    value: str
    fingerprint: str
    marked_at: float = Field(..., description="Unix timestamp, seconds")
    source: str = ""
    source_type: SourceType | None = None


class FalsePositiveRequest(BaseModel):
    """Request body for POST /false-positives."""

    rule_name: str
    value: str
    source: str = ""
    source_type: SourceType | None = None


class FilterSnapshot(BaseModel):
    """Everything a FilterStore persists, as one document."""

    false_positives: list[FalsePositiveRecord] = Field(default_factory=list)
    # resource key -> fingerprints, insertion-ordered (oldest key first)
    seen: dict[str, list[str]] = Field(default_factory=dict)
