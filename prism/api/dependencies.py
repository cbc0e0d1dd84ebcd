"""
FastAPI Dependencies — Shared singletons injected via Depends().
"""

from __future__ import annotations

from functools import lru_cache

from prism.audit.logger import AuditLogger
from prism.cache.filter_store import JsonFileFilterStore
from prism.core.engine import ScanEngine
from prism.core.fingerprint import FingerprintFilters
from prism.workers.scan_worker import ScanWorker


@lru_cache
def get_scan_engine() -> ScanEngine:
    """Shared scan engine singleton; closed on application shutdown."""
    return ScanEngine()


@lru_cache
def get_filters() -> FingerprintFilters:
    """Shared fingerprint filters over the JSON filter store."""
    return FingerprintFilters(JsonFileFilterStore())


@lru_cache
def get_audit_logger() -> AuditLogger:
    """Shared audit logger singleton."""
    return AuditLogger()


@lru_cache
def get_scan_worker() -> ScanWorker:
    """Shared scan worker singleton."""
    return ScanWorker(
        engine=get_scan_engine(),
        filters=get_filters(),
        audit=get_audit_logger(),
    )
