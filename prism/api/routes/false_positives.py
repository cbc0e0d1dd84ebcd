"""
False Positive Routes — mark, list and unmark dismissed findings.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from prism.api.dependencies import get_filters
from prism.core.fingerprint import FingerprintFilters
from prism.models.filter_models import FalsePositiveRecord, FalsePositiveRequest

router = APIRouter(prefix="/false-positives")


@router.get("", response_model=list[FalsePositiveRecord])
async def list_false_positives(filters: FingerprintFilters = Depends(get_filters)):
    return filters.list_false_positives()


@router.post("", response_model=FalsePositiveRecord)
async def add_false_positive(
    request: FalsePositiveRequest,
    filters: FingerprintFilters = Depends(get_filters),
):
    """Dismiss a (rule_name, value) pair on every page from now on."""
    return filters.add_false_positive(
        request.rule_name, request.value, request.source, request.source_type
    )


@router.delete("/{record_id}")
async def remove_false_positive(
    record_id: str,
    filters: FingerprintFilters = Depends(get_filters),
):
    if not filters.remove_false_positive(record_id):
        raise HTTPException(status_code=404, detail=f"Unknown false positive: {record_id}")
    return {"removed": record_id}
