from __future__ import annotations

import asyncio
from pathlib import Path
from urllib.parse import urlparse

from pagestore.schemas.page import ConsentProvider
from pagestore.urls import hash_url

URL = "https://example.com/docs"


def test_cache_hit_grants_access_to_second_tenant(service_factory) -> None:
    async def scenario():
        service = await service_factory()
        await service.repository.upsert_tenant("globex", "Globex")
        await service.get_page(URL, "acme", "u1")
        before = await service.get_snapshots(URL, "globex")
        await service.get_page(URL, "globex", "u9")
        after = await service.get_snapshots(URL, "globex")
        urls = await service.get_tenant_urls("globex")
        return before, after, urls

    before, after, urls = asyncio.run(scenario())
    assert list(before) == []
    assert len(after) == 1
    assert [r.url_hash for r in urls] == [hash_url(URL)]


def test_get_snapshot_by_id_checks_access(service_factory) -> None:
    async def scenario():
        service = await service_factory()
        page = await service.get_page(URL, "acme", "u1")
        mine = await service.get_snapshot_by_id(page.snapshot.id, "acme")
        theirs = await service.get_snapshot_by_id(page.snapshot.id, "globex")
        missing = await service.get_snapshot_by_id(9999, "acme")
        return page, mine, theirs, missing

    page, mine, theirs, missing = asyncio.run(scenario())
    assert mine.html == page.html
    assert theirs is None
    assert missing is None


def test_delete_urls_shared_then_last_tenant(service_factory) -> None:
    async def scenario():
        service = await service_factory()
        await service.repository.upsert_tenant("globex", "Globex")
        page = await service.get_page(URL, "acme", "u1")
        await service.get_page(URL, "globex", "u2")
        url_hash = hash_url(URL)

        first = await service.delete_urls([url_hash], "acme")
        still_there = await service.repository.get_url_record(url_hash)
        no_access = await service.delete_urls([url_hash], "acme")
        last = await service.delete_urls([url_hash], "globex")
        gone = await service.repository.get_url_record(url_hash)
        snapshots = await service.repository.list_snapshots(url_hash)
        return page, first, still_there, no_access, last, gone, snapshots

    page, first, still_there, no_access, last, gone, snapshots = asyncio.run(scenario())
    assert first.deleted == 1 and first.errors == []
    assert still_there is not None
    assert no_access.deleted == 0 and len(no_access.errors) == 1
    assert last.deleted == 1
    assert gone is None
    assert list(snapshots) == []
    assert not any(Path(urlparse(u).path).exists() for u in page.snapshot.blob_urls())


def test_url_consent_override_requires_access(service_factory) -> None:
    async def scenario():
        service = await service_factory()
        await service.get_page(URL, "acme", "u1")
        url_hash = hash_url(URL)
        denied = await service.set_url_consent_override(url_hash, "globex", ConsentProvider.ONETRUST)
        allowed = await service.set_url_consent_override(url_hash, "acme", ConsentProvider.ONETRUST)
        record = await service.repository.get_url_record(url_hash)
        return denied, allowed, record

    denied, allowed, record = asyncio.run(scenario())
    assert denied is False
    assert allowed is True
    assert record.cookie_consent_override == "onetrust"


def test_domain_config_crud_normalises_domain(service_factory) -> None:
    async def scenario():
        service = await service_factory()
        await service.set_domain_config("https://www.Example.com/", "acme", ConsentProvider.ONETRUST)
        await service.set_domain_config("example.com", "acme", ConsentProvider.COOKIEBOT)
        configs = await service.get_domain_configs("acme")
        removed = await service.delete_domain_config("www.example.com", "acme")
        removed_again = await service.delete_domain_config("example.com", "acme")
        return configs, removed, removed_again

    configs, removed, removed_again = asyncio.run(scenario())
    assert [(c.domain, c.cookie_consent_provider) for c in configs] == [("example.com", "cookiebot")]
    assert removed is True
    assert removed_again is False
