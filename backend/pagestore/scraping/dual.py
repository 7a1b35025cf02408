"""Desktop + mobile fetch of one page, tolerant of either side failing."""
from __future__ import annotations

import asyncio
import logging
import time

from pagestore.errors import DualFetchError
from pagestore.metrics import DUAL_FETCH_PARTIAL_TOTAL
from pagestore.schemas.page import (
    Device,
    DualFetchResult,
    FetchOptions,
    HtmlOnlyResult,
    ProxyTier,
    ScrapeRequest,
    ScrapeResult,
)
from pagestore.scraping.client import ScrapingClient
from pagestore.scraping.escalation import fetch_with_retry

logger = logging.getLogger(__name__)


def _request(url: str, device: Device, options: FetchOptions, *, screenshot: bool) -> ScrapeRequest:
    return ScrapeRequest(
        url=url,
        device=device,
        capture_screenshot=screenshot,
        full_page_screenshot=True,
        wait_ms=options.wait_ms,
        block_ads=options.block_ads,
        js_scenario=list(options.js_scenario),
        cookie_consent_provider=options.cookie_consent_provider,
    )


def highest_tier(*tiers: ProxyTier | None) -> ProxyTier | None:
    used = [t for t in tiers if t is not None]
    if not used:
        return None
    return max(used, key=lambda t: t.rank)


async def fetch_with_dual_screenshots(
    client: ScrapingClient,
    url: str,
    options: FetchOptions | None = None,
) -> DualFetchResult:
    """Fetch `url` as desktop and as mobile concurrently.

    HTML, resolved URL and status come from the desktop side; mobile only
    contributes its screenshot unless desktop failed. Raises `DualFetchError`
    only when both sides fail.
    """
    options = options or FetchOptions()
    started = time.monotonic()

    if not client.is_configured:
        # Plain fetch renders nothing, so a second "mobile" request would be identical.
        plain = await fetch_with_retry(client, _request(url, Device.DESKTOP, options, screenshot=False))
        return DualFetchResult(
            html=plain.html,
            resolved_url=plain.resolved_url,
            status_code=plain.status_code,
            total_credits_used=0,
            render_time_ms=int((time.monotonic() - started) * 1000),
            render_method=plain.render_method,
            proxy_tier_used=None,
            content_type=plain.content_type,
        )

    logger.info(
        "Starting dual screenshot fetch for %s (tier: %s, autoEscalate: %s)",
        url,
        options.proxy_tier.value,
        options.auto_escalate,
    )
    desktop_outcome, mobile_outcome = await asyncio.gather(
        fetch_with_retry(
            client,
            _request(url, Device.DESKTOP, options, screenshot=True),
            options.proxy_tier,
            options.auto_escalate,
        ),
        fetch_with_retry(
            client,
            _request(url, Device.MOBILE, options, screenshot=True),
            options.proxy_tier,
            options.auto_escalate,
        ),
        return_exceptions=True,
    )

    desktop: ScrapeResult | None = None
    mobile: ScrapeResult | None = None
    total_credits = 0
    for device, outcome in ((Device.DESKTOP, desktop_outcome), (Device.MOBILE, mobile_outcome)):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            logger.error("%s fetch failed for %s: %s", device.value.capitalize(), url, outcome)
            continue
        total_credits += outcome.credits_used
        logger.info(
            "%s fetch succeeded for %s: %s credits, %sms, tier: %s",
            device.value.capitalize(),
            url,
            outcome.credits_used,
            outcome.render_time_ms,
            outcome.proxy_tier_used.value if outcome.proxy_tier_used else "none",
        )
        if device == Device.DESKTOP:
            desktop = outcome
        else:
            mobile = outcome

    if desktop is None and mobile is None:
        raise DualFetchError(url, desktop_outcome, mobile_outcome)
    if desktop is None:
        DUAL_FETCH_PARTIAL_TOTAL.labels(failed_device="desktop").inc()
    elif mobile is None:
        DUAL_FETCH_PARTIAL_TOTAL.labels(failed_device="mobile").inc()

    primary = desktop or mobile
    return DualFetchResult(
        html=desktop.html if desktop else "",
        screenshot_desktop=desktop.screenshot if desktop else None,
        screenshot_mobile=mobile.screenshot if mobile else None,
        resolved_url=primary.resolved_url,
        status_code=primary.status_code,
        total_credits_used=total_credits,
        render_time_ms=int((time.monotonic() - started) * 1000),
        render_method=primary.render_method,
        proxy_tier_used=highest_tier(
            desktop.proxy_tier_used if desktop else None,
            mobile.proxy_tier_used if mobile else None,
        ),
    )


async def fetch_html_only(
    client: ScrapingClient,
    url: str,
    options: FetchOptions | None = None,
) -> HtmlOnlyResult:
    """One desktop request without screenshots, for quick rescans."""
    options = options or FetchOptions()
    started = time.monotonic()
    result = await fetch_with_retry(
        client,
        _request(url, Device.DESKTOP, options, screenshot=False),
        options.proxy_tier,
        options.auto_escalate,
    )
    logger.info(
        "HTML-only fetch succeeded for %s: %s credits, %sms",
        url,
        result.credits_used,
        result.render_time_ms,
    )
    return HtmlOnlyResult(
        html=result.html,
        resolved_url=result.resolved_url,
        status_code=result.status_code,
        credits_used=result.credits_used,
        render_time_ms=int((time.monotonic() - started) * 1000),
        render_method=result.render_method,
        proxy_tier_used=result.proxy_tier_used,
    )
