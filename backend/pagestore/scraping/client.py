"""Single-tier request against the rendering / screenshot provider.

Uses ``json_response=true`` so one request returns both the rendered HTML and
the base64 screenshot. Without an API key the client degrades to a plain
non-rendering GET so development and offline runs still work.
"""
from __future__ import annotations

import base64
import json
import logging
import time
from typing import Any

import httpx

from pagestore.config import settings
from pagestore.consent import consent_instructions
from pagestore.errors import ConfigurationError, ScrapeError, ScrapeTimeoutError
from pagestore.metrics import SCRAPE_ATTEMPTS_TOTAL, SCRAPE_CREDITS_TOTAL, SCRAPE_LATENCY_SECONDS
from pagestore.schemas.page import Device, ProxyTier, RenderMethod, ScrapeRequest, ScrapeResult

logger = logging.getLogger(__name__)

MOBILE_WINDOW_WIDTH = 375


def build_provider_params(
    request: ScrapeRequest,
    tier: ProxyTier,
    *,
    api_key: str,
    default_wait_ms: int,
    country_code: str,
) -> dict[str, str]:
    """Query parameters for one provider call."""
    params: dict[str, str] = {
        "api_key": api_key,
        "url": request.url,
        "render_js": "true",
        "wait": str(request.wait_ms if request.wait_ms is not None else default_wait_ms),
        "wait_browser": "networkidle2",
        "block_ads": "true" if request.block_ads else "false",
        "block_resources": "false",
        "json_response": "true",
        "country_code": country_code,
    }
    if tier in (ProxyTier.PREMIUM, ProxyTier.STEALTH):
        params["premium_proxy"] = "true"
    if tier == ProxyTier.STEALTH:
        params["stealth_proxy"] = "true"

    params["device"] = request.device.value
    if request.device == Device.MOBILE:
        params["window_width"] = str(MOBILE_WINDOW_WIDTH)

    if request.capture_screenshot:
        params["screenshot"] = "true"
        if request.full_page_screenshot:
            params["screenshot_full_page"] = "true"

    instructions = consent_instructions(request.cookie_consent_provider) + list(request.js_scenario)
    if instructions:
        params["js_scenario"] = json.dumps({"strict": False, "instructions": instructions})
    return params


def _int_header(headers: httpx.Headers, name: str, default: int) -> int:
    try:
        return int(headers.get(name) or default)
    except ValueError:
        return default


class ScrapingClient:
    """Issues exactly one request per call; retries live in `escalation`."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        api_url: str | None = None,
        timeout_s: float | None = None,
        default_wait_ms: int | None = None,
        country_code: str | None = None,
        plain_timeout_s: float | None = None,
        user_agent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.api_url = api_url or settings.SCRAPINGBEE_API_URL
        self.timeout_s = timeout_s if timeout_s is not None else settings.SCRAPINGBEE_TIMEOUT_S
        self.default_wait_ms = default_wait_ms if default_wait_ms is not None else settings.SCRAPINGBEE_WAIT_MS
        self.country_code = country_code or settings.SCRAPINGBEE_COUNTRY_CODE
        self.plain_timeout_s = plain_timeout_s if plain_timeout_s is not None else settings.PLAIN_FETCH_TIMEOUT_S
        self.user_agent = user_agent or settings.PLAIN_FETCH_USER_AGENT
        self._transport = transport
        if not api_key:
            logger.warning(
                "%s; falling back to plain HTTP fetch (no rendering, no screenshots)",
                ConfigurationError("SCRAPINGBEE_API_KEY is not set"),
            )

    @classmethod
    def from_settings(cls) -> "ScrapingClient":
        return cls(settings.SCRAPINGBEE_API_KEY)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def fetch(self, request: ScrapeRequest, tier: ProxyTier = ProxyTier.STANDARD) -> ScrapeResult:
        if not self.is_configured:
            return await self.fetch_plain(request.url)
        return await self._fetch_rendered(request, tier)

    async def _fetch_rendered(self, request: ScrapeRequest, tier: ProxyTier) -> ScrapeResult:
        params = build_provider_params(
            request,
            tier,
            api_key=self.api_key or "",
            default_wait_ms=self.default_wait_ms,
            country_code=self.country_code,
        )
        started = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                resp = await client.get(self.api_url, params=params)
        except httpx.TimeoutException as exc:
            SCRAPE_ATTEMPTS_TOTAL.labels(tier=tier.value, device=request.device.value, outcome="timeout").inc()
            raise ScrapeTimeoutError(
                f"Scraping request timed out after {self.timeout_s}s", tier=tier.value
            ) from exc
        except httpx.HTTPError as exc:
            SCRAPE_ATTEMPTS_TOTAL.labels(tier=tier.value, device=request.device.value, outcome="error").inc()
            raise ScrapeError(f"Scraping request failed: {exc}", tier=tier.value) from exc

        render_time_ms = int((time.monotonic() - started) * 1000)
        SCRAPE_LATENCY_SECONDS.labels(render_method=RenderMethod.SCRAPING_TIERED.value).observe(
            render_time_ms / 1000.0
        )
        credits_used = _int_header(resp.headers, "spb-cost", 0)
        SCRAPE_CREDITS_TOTAL.labels(tier=tier.value).inc(credits_used)

        if resp.status_code >= 400:
            SCRAPE_ATTEMPTS_TOTAL.labels(tier=tier.value, device=request.device.value, outcome="rejected").inc()
            raise ScrapeError(
                f"Scraping request failed: {resp.status_code} - {resp.text[:500]}",
                status_code=resp.status_code,
                credits_used=credits_used,
                tier=tier.value,
            )

        try:
            payload: dict[str, Any] = resp.json()
        except ValueError as exc:
            SCRAPE_ATTEMPTS_TOTAL.labels(tier=tier.value, device=request.device.value, outcome="error").inc()
            raise ScrapeError(
                "Scraping response was not valid JSON", credits_used=credits_used, tier=tier.value
            ) from exc

        screenshot = None
        if payload.get("screenshot"):
            screenshot = base64.b64decode(payload["screenshot"])

        SCRAPE_ATTEMPTS_TOTAL.labels(tier=tier.value, device=request.device.value, outcome="ok").inc()
        return ScrapeResult(
            html=str(payload.get("body") or ""),
            screenshot=screenshot,
            resolved_url=resp.headers.get("spb-resolved-url") or request.url,
            status_code=_int_header(resp.headers, "spb-initial-status-code", 200),
            credits_used=credits_used,
            render_time_ms=render_time_ms,
            render_method=RenderMethod.SCRAPING_TIERED,
            proxy_tier_used=tier,
        )

    async def fetch_plain(self, url: str) -> ScrapeResult:
        """Non-rendering GET with a fixed timeout; costs nothing."""
        started = time.monotonic()
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml",
        }
        try:
            async with httpx.AsyncClient(
                headers=headers,
                timeout=self.plain_timeout_s,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                resp = await client.get(url)
        except httpx.TimeoutException as exc:
            SCRAPE_ATTEMPTS_TOTAL.labels(tier="none", device="desktop", outcome="timeout").inc()
            raise ScrapeTimeoutError(f"Plain fetch timed out after {self.plain_timeout_s}s for {url}") from exc
        except httpx.HTTPError as exc:
            SCRAPE_ATTEMPTS_TOTAL.labels(tier="none", device="desktop", outcome="error").inc()
            raise ScrapeError(f"Failed to fetch URL {url}: {exc}") from exc

        render_time_ms = int((time.monotonic() - started) * 1000)
        SCRAPE_LATENCY_SECONDS.labels(render_method=RenderMethod.FETCH.value).observe(render_time_ms / 1000.0)
        if resp.status_code >= 400:
            SCRAPE_ATTEMPTS_TOTAL.labels(tier="none", device="desktop", outcome="rejected").inc()
            raise ScrapeError(
                f"Failed to fetch URL: {resp.status_code} {resp.reason_phrase}",
                status_code=resp.status_code,
            )

        SCRAPE_ATTEMPTS_TOTAL.labels(tier="none", device="desktop", outcome="ok").inc()
        return ScrapeResult(
            html=resp.text,
            resolved_url=str(resp.url),
            status_code=resp.status_code,
            credits_used=0,
            render_time_ms=render_time_ms,
            render_method=RenderMethod.FETCH,
            proxy_tier_used=None,
            content_type=resp.headers.get("content-type"),
        )
