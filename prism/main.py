"""
PRISM FastAPI Application — page secret scanner.

  POST   /scan                   → scan a page and its resources for secrets
  GET    /false-positives        → list dismissed findings
  POST   /false-positives        → dismiss a finding everywhere
  DELETE /false-positives/{id}   → undo a dismissal
  GET    /health                 → {"status": "ok", ...}
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from prism.api.dependencies import get_scan_engine
from prism.api.routes.false_positives import router as false_positives_router
from prism.api.routes.health import router as health_router
from prism.api.routes.scan import router as scan_router
from prism.config import APP_VERSION, settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("prism")


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Matching pool lives for the whole server session
    get_scan_engine().close()


app = FastAPI(
    title="PRISM",
    description="Scans web pages and their scripts and stylesheets for leaked secrets",
    version=APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(scan_router)
app.include_router(false_positives_router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Request bodies carry page HTML and rule sets; only error locations are logged
    errors = exc.errors()
    locations = [".".join(str(part) for part in e.get("loc", ())) for e in errors]
    logger.warning(f"Rejected {request.method} {request.url.path}: invalid fields {locations}")
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(errors)})
