"""Background rescans queued by bulk archive requests."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from pagestore.celery_app import celery
from pagestore.errors import DualFetchError, ScrapeError, TenantNotFoundError
from pagestore.service import PageStoreService

logger = logging.getLogger(__name__)

RESCAN_TASK = "pagestore.workers.rescan.run_rescan"


@celery.task(name=RESCAN_TASK, bind=True, max_retries=2)
def run_rescan(
    self,
    url: str,
    tenant_id: str,
    requester_id: str,
    tool_id: str = "page-library",
    force_refresh: bool = False,
) -> dict[str, Any]:
    """Fetch `url` through the page store. Runs as a sync Celery task."""
    try:
        return asyncio.run(_async_run_rescan(url, tenant_id, requester_id, tool_id, force_refresh))
    except TenantNotFoundError:
        logger.error("Rescan dropped for %s: unknown tenant %s", url, tenant_id)
        raise
    except (ScrapeError, DualFetchError) as exc:
        logger.error("Rescan failed for %s: %s", url, exc)
        raise self.retry(exc=exc, countdown=120)


async def _async_run_rescan(
    url: str, tenant_id: str, requester_id: str, tool_id: str, force_refresh: bool
) -> dict[str, Any]:
    service = PageStoreService.from_settings()
    try:
        result = await service.get_page(
            url,
            tenant_id,
            requester_id,
            tool_id=tool_id,
            force_refresh=force_refresh,
        )
    finally:
        # Each task runs in a fresh event loop; pooled connections cannot outlive it.
        await service.aclose()
    logger.info("Rescan of %s done (cached=%s, snapshot=%s)", url, result.was_cached, result.snapshot.id)
    return {
        "url": url,
        "snapshot_id": result.snapshot.id,
        "was_cached": result.was_cached,
    }


def enqueue_rescans(
    urls: list[str],
    tenant_id: str,
    requester_id: str,
    *,
    tool_id: str = "page-library",
    force_refresh: bool = False,
) -> list[str]:
    """Queue one rescan per URL; returns the Celery task ids."""
    task_ids = []
    for url in urls:
        async_result = celery.send_task(
            RESCAN_TASK,
            args=[url, tenant_id, requester_id, tool_id, force_refresh],
            queue="rescan",
            routing_key="rescan",
        )
        task_ids.append(async_result.id)
    return task_ids
