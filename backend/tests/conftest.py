from __future__ import annotations

import base64
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from pagestore.blob_store import LocalBlobStore
from pagestore.db import create_schema
from pagestore.repository import PageRepository
from pagestore.scraping.client import ScrapingClient
from pagestore.service import PageStoreService

PROVIDER_URL = "https://provider.test/api/v1/"
T0 = datetime(2026, 3, 4, 12, 0, tzinfo=timezone.utc)


def provider_tier(params: dict[str, str]) -> str:
    if params.get("stealth_proxy") == "true":
        return "stealth"
    if params.get("premium_proxy") == "true":
        return "premium"
    return "standard"


class FakeProvider:
    """Scripted rendering provider answering per (device, tier)."""

    def __init__(self, cost: int = 5):
        self.cost = cost
        self.calls: list[dict[str, str]] = []
        self._responses: dict[tuple[str, str], tuple[int, int, str]] = {}

    def respond(self, device: str, tier: str, status: int, *, cost: int | None = None, body: str = "") -> None:
        self._responses[(device, tier)] = (status, self.cost if cost is None else cost, body)

    def block(self, device: str, *tiers: str, status: int = 403) -> None:
        for tier in tiers:
            self.respond(device, tier, status, body="Forbidden")

    def tiers_called(self, device: str) -> list[str]:
        return [provider_tier(p) for p in self.calls if p.get("device") == device]

    def handler(self, request: httpx.Request) -> httpx.Response:
        params = dict(request.url.params)
        self.calls.append(params)
        device = params.get("device", "desktop")
        tier = provider_tier(params)
        status, cost, body = self._responses.get((device, tier), (200, self.cost, ""))
        headers = {"spb-cost": str(cost)}
        if status >= 400:
            return httpx.Response(status, text=body, headers=headers)

        payload: dict[str, Any] = {"body": body or f"<html><body>{device} {tier}</body></html>"}
        if params.get("screenshot") == "true":
            payload["screenshot"] = base64.b64encode(f"png-{device}".encode()).decode()
        headers["spb-resolved-url"] = params["url"]
        headers["spb-initial-status-code"] = "200"
        return httpx.Response(200, json=payload, headers=headers)

    def client(self) -> ScrapingClient:
        return ScrapingClient(
            "test-key",
            api_url=PROVIDER_URL,
            transport=httpx.MockTransport(self.handler),
        )


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


async def make_repository() -> PageRepository:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_schema(engine)
    return PageRepository(engine)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def blob_store(tmp_path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "blobs")


@pytest.fixture
def repository_factory():
    """Async factory; call inside the test's event loop."""
    return make_repository


@pytest.fixture
def service_factory(provider, clock, blob_store):
    """Async factory for a service over in-memory SQLite with tenant ``acme``."""

    async def _make(
        *,
        scraping_client: ScrapingClient | None = None,
        max_snapshots: int = 10,
        freshness_hours: int = 24,
        store=None,
    ) -> PageStoreService:
        repository = await make_repository()
        await repository.upsert_tenant("acme", "Acme")
        return PageStoreService(
            repository,
            store or blob_store,
            scraping_client or provider.client(),
            clock=clock,
            default_freshness_hours=freshness_hours,
            default_max_snapshots=max_snapshots,
        )

    return _make
