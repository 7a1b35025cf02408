from __future__ import annotations

import asyncio
from datetime import timedelta
from pathlib import Path
from urllib.parse import urlparse

import pytest

from pagestore.errors import DualFetchError, StorageError, TenantNotFoundError
from pagestore.schemas.page import ConsentProvider
from pagestore.service import is_snapshot_fresh
from pagestore.urls import hash_url

URL = "https://Example.com/landing/"
NORMALISED = "https://example.com/landing"


def test_first_request_fetches_and_indexes(service_factory, provider, clock) -> None:
    async def scenario():
        service = await service_factory()
        result = await service.get_page(URL, "acme", "u1", tool_id="seo-audit")
        record = await service.repository.get_url_record(hash_url(URL))
        return result, record

    result, record = asyncio.run(scenario())
    snap = result.snapshot
    assert result.was_cached is False
    assert "desktop standard" in result.html
    assert snap.url == NORMALISED
    assert snap.fetched_at == clock.now
    assert snap.fetched_by == "u1"
    assert snap.tool_id == "seo-audit"
    assert snap.render_method == "scraping-tiered"
    assert snap.js_rendered is True
    assert snap.credits_used == 10
    assert snap.proxy_tier_used == "standard"
    assert snap.resolved_url is None
    assert snap.screenshot_desktop_url and snap.screenshot_mobile_url
    assert snap.content_size == len(result.html.encode("utf-8"))
    assert record.latest_snapshot_id == snap.id
    assert record.snapshot_count == 1
    assert len(provider.calls) == 2


def test_fresh_snapshot_is_served_from_cache(service_factory, provider, clock) -> None:
    async def scenario():
        service = await service_factory(freshness_hours=24)
        first = await service.get_page(URL, "acme", "u1")
        clock.advance(hours=1)
        second = await service.get_page(URL, "acme", "u2")
        return first, second

    first, second = asyncio.run(scenario())
    assert second.was_cached is True
    assert second.snapshot.id == first.snapshot.id
    assert second.html == first.html
    assert len(provider.calls) == 2


def test_stale_snapshot_is_refetched(service_factory, provider, clock) -> None:
    async def scenario():
        service = await service_factory(freshness_hours=24)
        first = await service.get_page(URL, "acme", "u1")
        clock.advance(hours=30)
        second = await service.get_page(URL, "acme", "u1")
        latest = await service.repository.get_latest_snapshot_id(hash_url(URL))
        return first, second, latest

    first, second, latest = asyncio.run(scenario())
    assert second.was_cached is False
    assert second.snapshot.id != first.snapshot.id
    assert latest == second.snapshot.id
    assert len(provider.calls) == 4


def test_force_refresh_and_max_age_override(service_factory, provider, clock) -> None:
    async def scenario():
        service = await service_factory(freshness_hours=24)
        await service.get_page(URL, "acme", "u1")
        forced = await service.get_page(URL, "acme", "u1", force_refresh=True)
        clock.advance(hours=2)
        overridden = await service.get_page(URL, "acme", "u1", max_age_override_hours=1)
        return forced, overridden

    forced, overridden = asyncio.run(scenario())
    assert forced.was_cached is False
    assert overridden.was_cached is False
    assert len(provider.calls) == 6


def test_tenant_freshness_setting_wins_over_default(service_factory, provider, clock) -> None:
    async def scenario():
        service = await service_factory(freshness_hours=24)
        await service.repository.upsert_tenant("acme", "Acme", page_freshness_hours=1)
        await service.get_page(URL, "acme", "u1")
        clock.advance(hours=2)
        return await service.get_page(URL, "acme", "u1")

    assert asyncio.run(scenario()).was_cached is False


def test_unknown_tenant_is_rejected(service_factory, provider) -> None:
    async def scenario():
        service = await service_factory()
        await service.get_page(URL, "ghost", "u1")

    with pytest.raises(TenantNotFoundError):
        asyncio.run(scenario())
    assert provider.calls == []


def test_failed_fetch_stores_nothing(service_factory, provider) -> None:
    provider.respond("desktop", "standard", 500, body="internal error")
    provider.respond("mobile", "standard", 500, body="internal error")

    async def scenario():
        service = await service_factory()
        try:
            await service.get_page(URL, "acme", "u1")
        except DualFetchError:
            pass
        return await service.repository.get_url_record(hash_url(URL))

    assert asyncio.run(scenario()) is None


def test_html_only_rescan_has_no_screenshots(service_factory, provider) -> None:
    async def scenario():
        service = await service_factory()
        return await service.get_page(URL, "acme", "u1", force_refresh=True, screenshots=False)

    result = asyncio.run(scenario())
    assert len(provider.calls) == 1
    assert result.snapshot.screenshot_desktop_url is None
    assert result.snapshot.credits_used == 5


def test_domain_consent_config_reaches_the_provider(service_factory, provider) -> None:
    async def scenario():
        service = await service_factory()
        await service.set_domain_config("www.example.com", "acme", ConsentProvider.COOKIEBOT)
        await service.get_page(URL, "acme", "u1")

    asyncio.run(scenario())
    assert all("CybotCookiebotDialog" in p["js_scenario"] for p in provider.calls)


def test_analysis_staleness_is_derived_from_latest_snapshot(service_factory, clock) -> None:
    async def scenario():
        service = await service_factory()
        unknown = await service.is_analysis_stale("https://nowhere.example/", None)
        first = await service.get_page(URL, "acme", "u1")
        before = await service.is_analysis_stale(URL, first.snapshot.id)
        clock.advance(minutes=1)
        second = await service.get_page(URL, "acme", "u1", force_refresh=True)
        after = await service.is_analysis_stale(URL, first.snapshot.id)
        latest = await service.is_analysis_stale(URL, second.snapshot.id)
        return unknown, before, after, latest

    assert asyncio.run(scenario()) == (False, False, True, False)


def test_is_snapshot_fresh_boundary(clock) -> None:
    class _Snap:
        fetched_at = clock.now

    assert is_snapshot_fresh(_Snap, 24, clock.now + timedelta(hours=23, minutes=59))
    assert not is_snapshot_fresh(_Snap, 24, clock.now + timedelta(hours=24))


def test_same_millisecond_fetches_keep_separate_blobs(service_factory, provider) -> None:
    async def scenario():
        service = await service_factory(max_snapshots=1)
        first = await service.get_page(URL, "acme", "u1", force_refresh=True)
        second = await service.get_page(URL, "acme", "u1", force_refresh=True)
        cached = await service.get_page(URL, "acme", "u1")
        return first, second, cached

    first, second, cached = asyncio.run(scenario())
    assert first.snapshot.fetched_at == second.snapshot.fetched_at
    assert set(first.snapshot.blob_urls()).isdisjoint(second.snapshot.blob_urls())
    assert cached.was_cached is True
    assert cached.snapshot.id == second.snapshot.id
    assert cached.html == second.html


class _FailingScreenshotStore:
    """Accepts the HTML upload, then fails on the first screenshot."""

    def __init__(self, inner):
        self._inner = inner
        self.uploaded: list[str] = []

    async def upload(self, key, data, content_type):
        if key.endswith(".png"):
            raise StorageError(f"Failed to upload blob {key}")
        ref = await self._inner.upload(key, data, content_type)
        self.uploaded.append(ref.url)
        return ref

    async def fetch(self, url):
        return await self._inner.fetch(url)

    async def delete(self, url):
        await self._inner.delete(url)


def test_upload_failure_stores_nothing_and_removes_html_blob(service_factory, blob_store) -> None:
    store = _FailingScreenshotStore(blob_store)

    async def scenario():
        service = await service_factory(store=store)
        with pytest.raises(StorageError):
            await service.get_page(URL, "acme", "u1")
        record = await service.repository.get_url_record(hash_url(URL))
        snapshots = await service.repository.list_snapshots(hash_url(URL))
        return record, snapshots

    record, snapshots = asyncio.run(scenario())
    assert record is None
    assert list(snapshots) == []
    assert len(store.uploaded) == 1
    assert not Path(urlparse(store.uploaded[0]).path).exists()


def test_zero_retention_limit_still_keeps_latest_snapshot(service_factory) -> None:
    async def scenario():
        service = await service_factory(max_snapshots=0)
        page = await service.get_page(URL, "acme", "u1")
        record = await service.repository.get_url_record(hash_url(URL))
        latest = await service.repository.get_snapshot(record.latest_snapshot_id)
        return page, record, latest

    page, record, latest = asyncio.run(scenario())
    assert latest is not None
    assert latest.id == page.snapshot.id
    assert record.snapshot_count == 1


def test_tenant_limits_below_one_are_rejected(repository_factory) -> None:
    async def scenario(**limits):
        repository = await repository_factory()
        await repository.upsert_tenant("acme", "Acme", **limits)

    with pytest.raises(ValueError):
        asyncio.run(scenario(max_snapshots_per_url=0))
    with pytest.raises(ValueError):
        asyncio.run(scenario(page_freshness_hours=-2))


def test_aclose_releases_lease_and_engine(service_factory) -> None:
    class _Lease:
        closed = False

        async def aclose(self) -> None:
            self.closed = True

    lease = _Lease()

    async def scenario():
        service = await service_factory()
        service.lease = lease
        await service.aclose()

    asyncio.run(scenario())
    assert lease.closed is True
