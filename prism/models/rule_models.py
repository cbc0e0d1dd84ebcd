"""
Rule and Finding Data Models — user rules, matched findings and their context.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, computed_field, field_validator


class SourceType(str, Enum):
    HTML = "html"
    INLINE_SCRIPT = "inline-script"
    INLINE_STYLE = "inline-style"
    EXTERNAL_JS = "external-js"
    EXTERNAL_CSS = "external-css"


class Rule(BaseModel):
    """A user-maintained detection rule: one name, several alternative patterns."""

    id: str = Field(..., description="Stable rule identifier")
    name: str = Field(..., description="Human-readable rule name, part of the fingerprint")
    enabled: bool = True
    patterns: list[str] = Field(
        default_factory=list,
        description="Alternative regular expressions; each compiles independently",
    )

    @field_validator("patterns", mode="before")
    @classmethod
    def _wrap_single_pattern(cls, value):
        if isinstance(value, str):
            return [value]
        return value


class FindingContext(BaseModel):
    """Surrounding text of a match, whitespace-collapsed."""

    before: str = ""
    match: str = ""
    after: str = ""


def mask_value(value: str) -> str:
    """Mask a secret for display, keeping 4 characters at each end."""
    if not value or len(value) <= 8:
        return "*" * len(value or "")

    visible = 4
    middle = "*" * min(len(value) - visible * 2, 20)
    return value[:visible] + middle + value[-visible:]


class Finding(BaseModel):
    """One matched occurrence of a rule pattern in some content."""

    rule_id: str
    rule_name: str
    value: str = Field(..., description="Literal matched substring, never reformatted")
    context: FindingContext = Field(default_factory=FindingContext)
    source: str = Field(..., description="Resource URL or inline label the match came from")
    source_type: SourceType
    line_number: int = Field(..., ge=1)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def masked_value(self) -> str:
        return mask_value(self.value)

    @property
    def dedup_key(self) -> tuple[str, str, str]:
        return (self.rule_name, self.value, self.source)
