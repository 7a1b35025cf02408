from __future__ import annotations

import asyncio

import httpx
import pytest

from pagestore.errors import DualFetchError
from pagestore.schemas.page import FetchOptions, ProxyTier, RenderMethod
from pagestore.scraping.client import ScrapingClient
from pagestore.scraping.dual import fetch_html_only, fetch_with_dual_screenshots, highest_tier

URL = "https://news.example.com/article"


def test_both_devices_succeed(provider) -> None:
    result = asyncio.run(fetch_with_dual_screenshots(provider.client(), URL))
    assert sorted(p["device"] for p in provider.calls) == ["desktop", "mobile"]
    assert "desktop standard" in result.html
    assert result.screenshot_desktop == b"png-desktop"
    assert result.screenshot_mobile == b"png-mobile"
    assert result.total_credits_used == 10
    assert result.proxy_tier_used == ProxyTier.STANDARD
    assert result.render_method == RenderMethod.SCRAPING_TIERED


def test_mobile_failure_keeps_desktop_result(provider) -> None:
    provider.respond("mobile", "standard", 500, body="internal error")
    result = asyncio.run(fetch_with_dual_screenshots(provider.client(), URL))
    assert "desktop" in result.html
    assert result.screenshot_desktop == b"png-desktop"
    assert result.screenshot_mobile is None
    assert result.total_credits_used == 5


def test_desktop_failure_uses_mobile_metadata(provider) -> None:
    provider.respond("desktop", "standard", 500, body="internal error")
    result = asyncio.run(fetch_with_dual_screenshots(provider.client(), URL))
    assert result.html == ""
    assert result.screenshot_desktop is None
    assert result.screenshot_mobile == b"png-mobile"
    assert result.resolved_url == URL
    assert result.status_code == 200


def test_both_devices_failing_raises(provider) -> None:
    provider.respond("desktop", "standard", 500, body="internal error")
    provider.respond("mobile", "standard", 502, body="bad gateway")
    with pytest.raises(DualFetchError) as info:
        asyncio.run(fetch_with_dual_screenshots(provider.client(), URL))
    assert "Desktop error" in str(info.value)
    assert info.value.url == URL


def test_credits_include_escalation_and_tier_is_highest(provider) -> None:
    provider.block("mobile", "standard")
    provider.respond("mobile", "premium", 200, cost=25)
    result = asyncio.run(fetch_with_dual_screenshots(provider.client(), URL))
    assert provider.tiers_called("desktop") == ["standard"]
    assert provider.tiers_called("mobile") == ["standard", "premium"]
    assert result.total_credits_used == 5 + 5 + 25
    assert result.proxy_tier_used == ProxyTier.PREMIUM


def test_options_are_forwarded_to_both_devices(provider) -> None:
    options = FetchOptions(proxy_tier=ProxyTier.PREMIUM, auto_escalate=False, wait_ms=800, block_ads=False)
    asyncio.run(fetch_with_dual_screenshots(provider.client(), URL, options))
    for params in provider.calls:
        assert params["premium_proxy"] == "true"
        assert params["wait"] == "800"
        assert params["block_ads"] == "false"
        assert params["screenshot"] == "true"


def test_unconfigured_client_fetches_once_without_screenshots() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(200, text="<html>plain</html>")

    client = ScrapingClient(None, transport=httpx.MockTransport(handler))
    result = asyncio.run(fetch_with_dual_screenshots(client, URL))
    assert calls == [URL]
    assert result.html == "<html>plain</html>"
    assert result.screenshot_desktop is None
    assert result.screenshot_mobile is None
    assert result.total_credits_used == 0
    assert result.render_method == RenderMethod.FETCH


def test_html_only_fetch_skips_screenshot(provider) -> None:
    result = asyncio.run(fetch_html_only(provider.client(), URL))
    assert len(provider.calls) == 1
    assert provider.calls[0]["device"] == "desktop"
    assert "screenshot" not in provider.calls[0]
    assert result.credits_used == 5


def test_highest_tier() -> None:
    assert highest_tier(None, None) is None
    assert highest_tier(ProxyTier.STEALTH, ProxyTier.STANDARD) == ProxyTier.STEALTH
    assert highest_tier(None, ProxyTier.PREMIUM) == ProxyTier.PREMIUM
