"""
Pattern Matcher — runs user rules against a block of text.

Pure and deterministic: the same content and rules always produce the same
ordered findings. A pattern that fails to compile is skipped on its own; it
never takes the rest of the rule set down with it.
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Any, Iterable

from prism.models.rule_models import Finding, FindingContext, Rule, SourceType

logger = logging.getLogger("prism.matcher")

# Characters of context captured on each side of a match
CONTEXT_CHARS = 40
ELLIPSIS = "..."

_CONTROL_WS_RE = re.compile(r"[\r\n\t]+")
_WS_RE = re.compile(r"\s+")

# JavaScript regex dialect -> Python (rule sets are shared with the extension)
_JS_NAMED_GROUP_RE = re.compile(r"\(\?<(?![=!])")
_JS_BACKREF_RE = re.compile(r"\\k<(\w+)>")


def translate_pattern(pattern: str) -> str:
    """Rewrite JavaScript named groups and named backreferences to Python syntax."""
    pattern = _JS_NAMED_GROUP_RE.sub("(?P<", pattern)
    return _JS_BACKREF_RE.sub(r"(?P=\1)", pattern)


@lru_cache(maxsize=1024)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a rule pattern case-insensitively. Raises re.error if invalid."""
    return re.compile(translate_pattern(pattern), re.IGNORECASE)


def get_line_number(content: str, index: int) -> int:
    """1-indexed line of the character at `index`."""
    return content.count("\n", 0, index) + 1


def _clean(text: str) -> str:
    return _WS_RE.sub(" ", _CONTROL_WS_RE.sub(" ", text))


def get_context(content: str, start: int, end: int) -> FindingContext:
    """Up to CONTEXT_CHARS characters either side of content[start:end]."""
    window_start = max(0, start - CONTEXT_CHARS)
    window_end = min(len(content), end + CONTEXT_CHARS)

    before = _clean(content[window_start:start])
    after = _clean(content[end:window_end])

    prefix = ELLIPSIS if window_start > 0 else ""
    suffix = ELLIPSIS if window_end < len(content) else ""

    return FindingContext(
        before=prefix + before,
        match=content[start:end],
        after=after + suffix,
    )


def _iter_matches(regex: re.Pattern[str], content: str):
    """Yield matches left to right; an empty match still advances the cursor."""
    pos = 0
    length = len(content)
    while pos <= length:
        match = regex.search(content, pos)
        if match is None:
            return
        yield match
        start, end = match.span()
        pos = end if end > start else end + 1


def scan_content(
    content: str,
    rules: Iterable[Rule | dict[str, Any]],
    source: str,
    source_type: SourceType | str,
) -> list[Finding]:
    """
    Scan content against every enabled rule.

    Args:
        content: Text to scan (HTML, script or stylesheet body).
        rules: Rule models or their plain-dict snapshots.
        source: URL or inline label recorded on each finding.
        source_type: Kind of resource the content came from.

    Returns:
        Findings ordered by rule, then pattern, then match position.
    """
    findings: list[Finding] = []

    if not content or not isinstance(content, str):
        return findings

    source_type = SourceType(source_type)

    for raw_rule in rules:
        rule = raw_rule if isinstance(raw_rule, Rule) else Rule.model_validate(raw_rule)
        if not rule.enabled:
            continue

        for pattern in rule.patterns:
            try:
                regex = compile_pattern(pattern)
            except re.error as e:
                logger.warning(f"Invalid pattern in rule '{rule.name}': {pattern!r} ({e})")
                continue

            for match in _iter_matches(regex, content):
                start, end = match.span()
                findings.append(
                    Finding(
                        rule_id=rule.id,
                        rule_name=rule.name,
                        value=match.group(0),
                        context=get_context(content, start, end),
                        source=source,
                        source_type=source_type,
                        line_number=get_line_number(content, start),
                    )
                )

    return findings
