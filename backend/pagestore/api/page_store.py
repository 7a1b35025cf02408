"""Page library API — cached page retrieval, history and housekeeping."""
from __future__ import annotations

import logging
from typing import Any

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query

from pagestore.api.deps import get_page_store_service
from pagestore.api.schemas import (
    BulkPayload,
    DeleteUrlsPayload,
    GetPagePayload,
    PageOut,
    RescanPayload,
    SnapshotOut,
    UrlConsentPayload,
    UrlRecordOut,
)
from pagestore.config import settings
from pagestore.service import PageStoreService
from pagestore.sitemap import parse_sitemap
from pagestore.workers.rescan import enqueue_rescans

router = APIRouter(prefix="/page-store", tags=["page-store"])
logger = logging.getLogger(__name__)


@router.post("")
async def get_page(
    payload: GetPagePayload,
    service: PageStoreService = Depends(get_page_store_service),
) -> PageOut:
    result = await service.get_page(
        payload.url,
        payload.tenant_id,
        payload.requester_id,
        tool_id=payload.tool_id,
        force_refresh=payload.force_refresh,
        max_age_override_hours=payload.max_age_override_hours,
    )
    return PageOut(
        html=result.html,
        snapshot=SnapshotOut.model_validate(result.snapshot),
        was_cached=result.was_cached,
    )


@router.post("/rescan")
async def rescan(
    payload: RescanPayload,
    service: PageStoreService = Depends(get_page_store_service),
) -> dict[str, Any]:
    result = await service.get_page(
        payload.url,
        payload.tenant_id,
        payload.requester_id,
        force_refresh=True,
        screenshots=payload.screenshots,
    )
    return {
        "success": True,
        "snapshot_id": result.snapshot.id,
        "fetched_at": result.snapshot.fetched_at,
    }


@router.post("/bulk", status_code=202)
async def bulk_archive(payload: BulkPayload) -> dict[str, Any]:
    """Queue background fetches for a URL list or every page in a sitemap."""
    urls = payload.urls
    if payload.mode == "sitemap":
        try:
            async with httpx.AsyncClient(timeout=settings.PLAIN_FETCH_TIMEOUT_S, follow_redirects=True) as client:
                urls = await parse_sitemap(client, payload.sitemap_url or "")
        except httpx.HTTPError as exc:
            raise HTTPException(status_code=400, detail=f"Failed to fetch sitemap: {exc}") from exc
        if not urls:
            raise HTTPException(status_code=400, detail="No URLs found in sitemap")

    task_ids = enqueue_rescans(
        urls,
        payload.tenant_id,
        payload.requester_id,
        force_refresh=payload.force_refresh,
    )
    logger.info("Queued %s rescans for tenant %s", len(task_ids), payload.tenant_id)
    return {"queued": len(task_ids), "task_ids": task_ids}


@router.get("/urls")
async def list_urls(
    tenant_id: str,
    service: PageStoreService = Depends(get_page_store_service),
) -> dict[str, list[UrlRecordOut]]:
    records = await service.get_tenant_urls(tenant_id)
    return {"urls": [UrlRecordOut.model_validate(r) for r in records]}


@router.delete("/urls")
async def delete_urls(
    payload: DeleteUrlsPayload,
    service: PageStoreService = Depends(get_page_store_service),
) -> dict[str, Any]:
    result = await service.delete_urls(payload.url_hashes, payload.tenant_id)
    return {"deleted": result.deleted, "errors": result.errors}


@router.put("/urls/{url_hash}/cookie-consent")
async def set_url_cookie_consent(
    url_hash: str,
    payload: UrlConsentPayload,
    service: PageStoreService = Depends(get_page_store_service),
) -> dict[str, Any]:
    ok = await service.set_url_consent_override(url_hash, payload.tenant_id, payload.provider)
    if not ok:
        raise HTTPException(status_code=404, detail="URL not found")
    return {"url_hash": url_hash, "cookie_consent_override": payload.provider}


@router.get("/snapshots")
async def list_snapshots(
    url: str,
    tenant_id: str,
    limit: int = Query(default=10, ge=1, le=100),
    service: PageStoreService = Depends(get_page_store_service),
) -> dict[str, list[SnapshotOut]]:
    snapshots = await service.get_snapshots(url, tenant_id, limit=limit)
    return {"snapshots": [SnapshotOut.model_validate(s) for s in snapshots]}


@router.get("/snapshots/{snapshot_id}")
async def get_snapshot(
    snapshot_id: int,
    tenant_id: str,
    service: PageStoreService = Depends(get_page_store_service),
) -> PageOut:
    result = await service.get_snapshot_by_id(snapshot_id, tenant_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Snapshot not found")
    return PageOut(
        html=result.html,
        snapshot=SnapshotOut.model_validate(result.snapshot),
        was_cached=True,
    )


@router.get("/stale")
async def analysis_staleness(
    url: str,
    analyzed_snapshot_id: int | None = None,
    service: PageStoreService = Depends(get_page_store_service),
) -> dict[str, bool]:
    return {"stale": await service.is_analysis_stale(url, analyzed_snapshot_id)}
