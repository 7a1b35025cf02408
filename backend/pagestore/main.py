"""FastAPI application — health, metrics, CORS and page store APIs."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    generate_latest,
    multiprocess,
)
from starlette.responses import PlainTextResponse, Response

from pagestore.api.admin import router as admin_router
from pagestore.api.consent import router as consent_router
from pagestore.api.page_store import router as page_store_router
from pagestore.config import settings
from pagestore.errors import DualFetchError, ScrapeError, StorageError, TenantNotFoundError
from pagestore.logging_config import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — setup / teardown."""
    setup_logging()
    logger.info("Page store API starting", extra={"env": settings.APP_ENV})
    yield
    logger.info("Page store API shutting down")


app = FastAPI(
    title="Page Store",
    version="0.1.0",
    description="Shared page snapshot cache with tiered scraping",
    lifespan=lifespan,
)

# ── CORS ──
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.APP_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(page_store_router)
app.include_router(consent_router)
app.include_router(admin_router)


# ── Error mapping ──
@app.exception_handler(TenantNotFoundError)
async def tenant_not_found(request: Request, exc: TenantNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(DualFetchError)
async def dual_fetch_failed(request: Request, exc: DualFetchError) -> JSONResponse:
    logger.warning("Both device fetches failed for %s", exc.url)
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(ScrapeError)
async def scrape_failed(request: Request, exc: ScrapeError) -> JSONResponse:
    logger.warning("Scrape failed: %s", exc.message)
    return JSONResponse(
        status_code=502,
        content={"detail": exc.message, "upstream_status": exc.status_code, "credits_spent": exc.credits_spent},
    )


@app.exception_handler(StorageError)
async def storage_failed(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Blob storage error: %s", exc)
    return JSONResponse(status_code=503, content={"detail": "Blob storage unavailable"})


# ── Health ──
@app.get("/health", tags=["ops"])
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok", "service": "page-store"}


# ── Prometheus Metrics ──
@app.get("/metrics", tags=["ops"])
async def metrics() -> Response:
    """Prometheus scrape endpoint."""
    try:
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        data = generate_latest(registry)
    except ValueError:
        # Not running in multiprocess mode
        data = generate_latest()
    return PlainTextResponse(content=data, media_type=CONTENT_TYPE_LATEST)
