"""
Scan Engine — one scan session's shared machinery.

Owns the matching pool (with its round-robin cursor, correlation counter and
pending table) and the resource cache. Construct it at session start and
close it at session end; nothing here is a process-wide global.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from prism.cache.resource_cache import ResourceCache
from prism.core.dispatcher import Dispatcher
from prism.models.rule_models import Finding, Rule, SourceType

logger = logging.getLogger("prism.engine")


class ScanEngine:
    """Session-scoped owner of the dispatcher and the resource cache."""

    def __init__(
        self,
        dispatcher: Dispatcher | None = None,
        cache: ResourceCache | None = None,
    ) -> None:
        self.dispatcher = dispatcher or Dispatcher()
        self.cache = cache if cache is not None else ResourceCache()
        self.closed = False

    async def scan(
        self,
        content: str,
        rules: Iterable[Rule | dict[str, Any]],
        source: str,
        source_type: SourceType | str,
    ) -> list[Finding]:
        """Match content off the event loop."""
        if self.closed:
            raise RuntimeError("ScanEngine is closed")
        return await self.dispatcher.submit(content, rules, source, source_type)

    def close(self) -> None:
        if self.closed:
            return
        self.dispatcher.close()
        self.cache.clear()
        self.closed = True
        logger.debug("Scan engine closed")

    async def __aenter__(self) -> "ScanEngine":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()
