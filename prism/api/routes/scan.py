"""
Scan Route — POST /scan

Scans one page: the supplied HTML (or the page fetched from its URL), its
inline scripts and styles, and its external scripts and stylesheets.
"""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException

from prism.api.dependencies import get_scan_worker
from prism.errors import FatalScanError, ScanRejectedError
from prism.models.scan_models import ScanRequest, ScanResponse
from prism.rules.defaults import default_rules
from prism.workers.scan_worker import ScanWorker

logger = logging.getLogger("prism.api.scan")

router = APIRouter()


@router.post("/scan", response_model=ScanResponse)
async def scan_page(
    request: ScanRequest,
    worker: ScanWorker = Depends(get_scan_worker),
):
    """Run a full page scan and return the filtered findings."""
    scan_id = str(uuid.uuid4())[:8]
    rules = request.rules if request.rules is not None else default_rules()

    try:
        result = await worker.run_scan(
            request.url,
            rules,
            scan_settings=request.settings,
            html=request.html,
            mark_seen=request.mark_seen,
            scan_id=scan_id,
        )
    except ScanRejectedError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except FatalScanError as e:
        logger.error(f"[{scan_id}] {e}")
        return ScanResponse(message="error", scan_id=scan_id, error=str(e))

    return ScanResponse(message="scan_complete", scan_id=scan_id, result=result)
