"""Rolling-window retention: keep the newest N snapshots per URL."""
from __future__ import annotations

import logging

from pagestore.blob_store import BlobStore
from pagestore.metrics import RETENTION_EVICTIONS_TOTAL
from pagestore.repository import PageRepository

logger = logging.getLogger(__name__)


async def enforce_retention_limit(
    repository: PageRepository,
    blob_store: BlobStore,
    url_hash: str,
    max_snapshots: int,
) -> int:
    """Evict snapshots beyond `max_snapshots`; returns how many were removed.

    At least the newest snapshot (the one the url record points at) is kept
    whatever the limit.

    Best effort: a snapshot whose blobs cannot be deleted keeps its record and
    the pass moves on. The url record's count drops only by real deletions.
    """
    keep = max(max_snapshots, 1)
    snapshots = await repository.list_snapshots(url_hash)
    if len(snapshots) <= keep:
        return 0

    excess = snapshots[keep:]
    deleted = 0
    for snapshot in excess:
        try:
            for blob_url in snapshot.blob_urls():
                await blob_store.delete(blob_url)
            await repository.delete_snapshot(snapshot.id)
        except Exception as exc:
            logger.error("Failed to delete snapshot %s for %s: %s", snapshot.id, url_hash, exc)
            continue
        deleted += 1

    if deleted:
        await repository.decrement_snapshot_count(url_hash, deleted)
        RETENTION_EVICTIONS_TOTAL.inc(deleted)
        logger.info("Retention evicted %s of %s excess snapshots for %s", deleted, len(excess), url_hash)
    return deleted
