"""Snapshot cache orchestrator and page library operations.

`get_page` is the entry point every tool uses: it serves a fresh-enough
cached snapshot when one exists and otherwise fetches, stores and indexes a
new one, then trims old snapshots for that URL.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable, Sequence

from pagestore.auth import ClientCredentialsTokenProvider, StaticTokenProvider, TokenCache
from pagestore.blob_store import (
    BlobRef,
    BlobStore,
    HttpBlobStore,
    LocalBlobStore,
    html_key,
    new_blob_suffix,
    screenshot_key,
)
from pagestore.config import settings
from pagestore.consent import resolve_cookie_provider
from pagestore.db import get_engine, utcnow
from pagestore.errors import ConfigurationError, TenantNotFoundError
from pagestore.lease import FetchLease, NullFetchLease, RedisFetchLease
from pagestore.metrics import CACHE_LOOKUPS_TOTAL
from pagestore.models.domain_consent import DomainConsentConfig
from pagestore.models.snapshot import Snapshot
from pagestore.models.url_record import UrlRecord
from pagestore.repository import PageRepository
from pagestore.retention import enforce_retention_limit
from pagestore.schemas.page import ConsentProvider, DualFetchResult, FetchOptions, RenderMethod
from pagestore.scraping.client import ScrapingClient
from pagestore.scraping.dual import fetch_html_only, fetch_with_dual_screenshots
from pagestore.urls import hash_url, normalise_domain, normalise_url

logger = logging.getLogger(__name__)


@dataclass
class PageResult:
    html: str
    snapshot: Snapshot
    was_cached: bool


@dataclass
class DeleteResult:
    deleted: int = 0
    errors: list[str] = field(default_factory=list)


def is_snapshot_fresh(snapshot: Snapshot, freshness_hours: float, now: datetime) -> bool:
    return now - snapshot.fetched_at < timedelta(hours=freshness_hours)


class PageStoreService:
    def __init__(
        self,
        repository: PageRepository,
        blob_store: BlobStore,
        scraping_client: ScrapingClient,
        *,
        lease: FetchLease | None = None,
        clock: Callable[[], datetime] = utcnow,
        default_freshness_hours: int | None = None,
        default_max_snapshots: int | None = None,
    ):
        self.repository = repository
        self.blob_store = blob_store
        self.scraping_client = scraping_client
        self.lease = lease or NullFetchLease()
        self._clock = clock
        self.default_freshness_hours = (
            default_freshness_hours if default_freshness_hours is not None else settings.DEFAULT_FRESHNESS_HOURS
        )
        self.default_max_snapshots = (
            default_max_snapshots if default_max_snapshots is not None else settings.DEFAULT_MAX_SNAPSHOTS_PER_URL
        )

    @classmethod
    def from_settings(cls) -> "PageStoreService":
        lease: FetchLease | None = None
        if settings.REDIS_URL:
            lease = RedisFetchLease.from_url(
                settings.REDIS_URL, ttl_s=settings.FETCH_LEASE_TTL_S, wait_s=settings.FETCH_LEASE_WAIT_S
            )
        return cls(
            PageRepository(get_engine()),
            blob_store_from_settings(),
            ScrapingClient.from_settings(),
            lease=lease,
        )

    async def aclose(self) -> None:
        """Release the lease client and the database pool."""
        try:
            await self.lease.aclose()
        finally:
            await self.repository.engine.dispose()

    # ── Cache orchestrator ──

    async def get_page(
        self,
        url: str,
        tenant_id: str,
        requester_id: str,
        *,
        tool_id: str = "page-library",
        force_refresh: bool = False,
        max_age_override_hours: float | None = None,
        screenshots: bool = True,
    ) -> PageResult:
        """Return the page for `url`, fetching only when the cache is stale or missing."""
        normalised = normalise_url(url)
        url_hash = hash_url(url)

        tenant = await self.repository.get_tenant(tenant_id)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)
        if max_age_override_hours is not None:
            freshness_hours = max_age_override_hours
        elif tenant.page_freshness_hours is not None:
            freshness_hours = tenant.page_freshness_hours
        else:
            freshness_hours = self.default_freshness_hours
        max_snapshots = (
            tenant.max_snapshots_per_url
            if tenant.max_snapshots_per_url is not None
            else self.default_max_snapshots
        )

        if not force_refresh:
            cached = await self._cached_page(url_hash, tenant_id, freshness_hours)
            if cached is not None:
                CACHE_LOOKUPS_TOTAL.labels(result="hit").inc()
                return cached
        CACHE_LOOKUPS_TOTAL.labels(result="refresh" if force_refresh else "miss").inc()

        token = await self.lease.acquire(url_hash)
        if token is None:
            logger.info("Fetch for %s already in progress, waiting", normalised)
            await self.lease.wait_released(url_hash)
            if not force_refresh:
                cached = await self._cached_page(url_hash, tenant_id, freshness_hours)
                if cached is not None:
                    CACHE_LOOKUPS_TOTAL.labels(result="hit_after_wait").inc()
                    return cached
            token = await self.lease.acquire(url_hash)

        try:
            return await self._fetch_and_store(
                normalised,
                url_hash,
                tenant_id=tenant_id,
                requester_id=requester_id,
                tool_id=tool_id,
                max_snapshots=max_snapshots,
                screenshots=screenshots,
            )
        finally:
            if token is not None:
                await self.lease.release(url_hash, token)

    async def _cached_page(self, url_hash: str, tenant_id: str, freshness_hours: float) -> PageResult | None:
        record = await self.repository.get_url_record(url_hash)
        if record is None or record.latest_snapshot_id is None:
            return None
        snapshot = await self.repository.get_snapshot(record.latest_snapshot_id)
        if snapshot is None or not is_snapshot_fresh(snapshot, freshness_hours, self._clock()):
            return None

        body = await self.blob_store.fetch(snapshot.blob_url)
        await self.repository.add_tenant_access(url_hash, tenant_id)
        return PageResult(html=body.decode("utf-8", errors="replace"), snapshot=snapshot, was_cached=True)

    async def _fetch_and_store(
        self,
        url: str,
        url_hash: str,
        *,
        tenant_id: str,
        requester_id: str,
        tool_id: str,
        max_snapshots: int,
        screenshots: bool,
    ) -> PageResult:
        provider = await resolve_cookie_provider(self.repository, url, tenant_id)
        options = FetchOptions(cookie_consent_provider=provider)
        if screenshots:
            fetched = await fetch_with_dual_screenshots(self.scraping_client, url, options)
        else:
            html_only = await fetch_html_only(self.scraping_client, url, options)
            fetched = DualFetchResult(
                html=html_only.html,
                resolved_url=html_only.resolved_url,
                status_code=html_only.status_code,
                total_credits_used=html_only.credits_used,
                render_time_ms=html_only.render_time_ms,
                render_method=html_only.render_method,
                proxy_tier_used=html_only.proxy_tier_used,
            )
        fetched_at = self._clock()

        html_blob, desktop_blob, mobile_blob = await self._upload_blobs(url_hash, fetched_at, fetched)

        tiered = fetched.render_method == RenderMethod.SCRAPING_TIERED
        resolved_url = None
        if fetched.resolved_url and normalise_url(fetched.resolved_url) != url:
            resolved_url = fetched.resolved_url

        snapshot = await self.repository.create_snapshot(
            url=url,
            url_hash=url_hash,
            fetched_at=fetched_at,
            fetched_by=requester_id,
            tenant_id=tenant_id,
            tool_id=tool_id,
            blob_url=html_blob.url,
            content_size=html_blob.size,
            http_status=fetched.status_code,
            content_type=fetched.content_type,
            screenshot_desktop_url=desktop_blob.url if desktop_blob else None,
            screenshot_desktop_size=desktop_blob.size if desktop_blob else None,
            screenshot_mobile_url=mobile_blob.url if mobile_blob else None,
            screenshot_mobile_size=mobile_blob.size if mobile_blob else None,
            render_method=fetched.render_method.value,
            js_rendered=tiered,
            render_time_ms=fetched.render_time_ms,
            credits_used=fetched.total_credits_used if tiered else None,
            resolved_url=resolved_url,
            proxy_tier_used=fetched.proxy_tier_used.value if fetched.proxy_tier_used else None,
        )
        await self.repository.record_fetch(url_hash=url_hash, url=url, snapshot=snapshot, tenant_id=tenant_id)
        logger.info(
            "Stored snapshot %s for %s (%s bytes, %s credits, tier %s)",
            snapshot.id,
            url,
            snapshot.content_size,
            snapshot.credits_used or 0,
            snapshot.proxy_tier_used or "none",
        )

        await enforce_retention_limit(self.repository, self.blob_store, url_hash, max_snapshots)
        return PageResult(html=fetched.html, snapshot=snapshot, was_cached=False)

    async def _upload_blobs(
        self, url_hash: str, fetched_at: datetime, fetched: DualFetchResult
    ) -> tuple[BlobRef, BlobRef | None, BlobRef | None]:
        """Upload HTML then screenshots; on failure remove what was already uploaded."""
        uploaded: list[BlobRef] = []
        suffix = new_blob_suffix()
        try:
            html_blob = await self.blob_store.upload(
                html_key(url_hash, fetched_at, suffix), fetched.html.encode("utf-8"), "text/html; charset=utf-8"
            )
            uploaded.append(html_blob)
            desktop_blob = mobile_blob = None
            if fetched.screenshot_desktop:
                desktop_blob = await self.blob_store.upload(
                    screenshot_key(url_hash, fetched_at, "desktop", suffix), fetched.screenshot_desktop, "image/png"
                )
                uploaded.append(desktop_blob)
            if fetched.screenshot_mobile:
                mobile_blob = await self.blob_store.upload(
                    screenshot_key(url_hash, fetched_at, "mobile", suffix), fetched.screenshot_mobile, "image/png"
                )
                uploaded.append(mobile_blob)
        except Exception:
            await self._delete_blobs(ref.url for ref in uploaded)
            raise
        return html_blob, desktop_blob, mobile_blob

    async def _delete_blobs(self, urls: Iterable[str]) -> bool:
        ok = True
        for blob_url in urls:
            try:
                await self.blob_store.delete(blob_url)
            except Exception as exc:
                logger.error("Failed to delete blob %s: %s", blob_url, exc)
                ok = False
        return ok

    async def is_analysis_stale(self, url: str, analyzed_snapshot_id: int | None) -> bool:
        """An analysis is stale once a newer snapshot of its URL exists."""
        latest = await self.repository.get_latest_snapshot_id(hash_url(url))
        if latest is None:
            return False
        return analyzed_snapshot_id != latest

    # ── Page library ──

    async def get_snapshots(self, url: str, tenant_id: str, limit: int = 10) -> Sequence[Snapshot]:
        url_hash = hash_url(url)
        if not await self.repository.tenant_has_access(url_hash, tenant_id):
            return []
        return await self.repository.list_snapshots(url_hash, limit=limit)

    async def get_snapshot_by_id(self, snapshot_id: int, tenant_id: str) -> PageResult | None:
        snapshot = await self.repository.get_snapshot(snapshot_id)
        if snapshot is None:
            return None
        if not await self.repository.tenant_has_access(snapshot.url_hash, tenant_id):
            return None
        body = await self.blob_store.fetch(snapshot.blob_url)
        return PageResult(html=body.decode("utf-8", errors="replace"), snapshot=snapshot, was_cached=True)

    async def get_tenant_urls(self, tenant_id: str) -> Sequence[UrlRecord]:
        return await self.repository.list_tenant_url_records(tenant_id)

    async def delete_urls(self, url_hashes: Iterable[str], tenant_id: str) -> DeleteResult:
        """Drop the tenant's access; the last tenant out tears everything down."""
        result = DeleteResult()
        for url_hash in url_hashes:
            try:
                tenants = await self.repository.tenants_with_access(url_hash)
                if tenant_id not in tenants:
                    result.errors.append(f"No access to URL with hash {url_hash}")
                    continue
                if len(tenants) == 1:
                    await self._teardown(url_hash)
                else:
                    await self.repository.remove_tenant_access(url_hash, tenant_id)
                result.deleted += 1
            except Exception as exc:
                logger.error("Failed to delete URL with hash %s: %s", url_hash, exc)
                result.errors.append(f"Failed to delete URL with hash {url_hash}")
        return result

    async def _teardown(self, url_hash: str) -> None:
        for snapshot in await self.repository.list_snapshots(url_hash):
            await self._delete_blobs(snapshot.blob_urls())
            await self.repository.delete_snapshot(snapshot.id)
        await self.repository.delete_url_record(url_hash)
        logger.info("Removed url record %s and all its snapshots", url_hash)

    # ── Cookie consent configuration ──

    async def set_url_consent_override(
        self, url_hash: str, tenant_id: str, provider: ConsentProvider | None
    ) -> bool:
        if not await self.repository.tenant_has_access(url_hash, tenant_id):
            return False
        return await self.repository.set_url_consent_override(
            url_hash, provider.value if provider is not None else None
        )

    async def get_domain_configs(self, tenant_id: str) -> Sequence[DomainConsentConfig]:
        return await self.repository.list_domain_configs(tenant_id)

    async def set_domain_config(
        self, domain: str, tenant_id: str, provider: ConsentProvider
    ) -> DomainConsentConfig:
        return await self.repository.upsert_domain_config(normalise_domain(domain), tenant_id, provider.value)

    async def delete_domain_config(self, domain: str, tenant_id: str) -> bool:
        return await self.repository.delete_domain_config(normalise_domain(domain), tenant_id)


def blob_store_from_settings() -> BlobStore:
    if not settings.BLOB_API_URL:
        logger.info("BLOB_API_URL not set, storing blobs under %s", settings.BLOB_LOCAL_DIR)
        return LocalBlobStore(settings.BLOB_LOCAL_DIR)
    if settings.BLOB_CLIENT_ID and settings.BLOB_CLIENT_SECRET and settings.BLOB_TOKEN_URL:
        tokens = ClientCredentialsTokenProvider(
            settings.BLOB_TOKEN_URL,
            settings.BLOB_CLIENT_ID,
            settings.BLOB_CLIENT_SECRET,
            cache=TokenCache(),
            timeout_s=settings.BLOB_TIMEOUT_S,
        )
    elif settings.BLOB_TOKEN:
        tokens = StaticTokenProvider(settings.BLOB_TOKEN)
    else:
        raise ConfigurationError("BLOB_API_URL requires BLOB_TOKEN or client credentials")
    return HttpBlobStore(settings.BLOB_API_URL, tokens, timeout_s=settings.BLOB_TIMEOUT_S)
