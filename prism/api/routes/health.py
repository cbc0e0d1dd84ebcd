"""
Health Check Route — GET /health
"""

from __future__ import annotations

from fastapi import APIRouter

from prism.config import APP_VERSION, settings

router = APIRouter()


@router.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "version": APP_VERSION,
        "pool_size": settings.pool_size,
        "pool_kind": settings.pool_kind,
    }
