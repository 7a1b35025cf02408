"""Value types shared by the scraping client, fetchers and the service."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional


class ProxyTier(str, enum.Enum):
    """Provider proxy tiers in escalation order (cheapest first)."""

    STANDARD = "standard"
    PREMIUM = "premium"
    STEALTH = "stealth"

    @property
    def rank(self) -> int:
        return ESCALATION_ORDER.index(self)


ESCALATION_ORDER: tuple[ProxyTier, ...] = (
    ProxyTier.STANDARD,
    ProxyTier.PREMIUM,
    ProxyTier.STEALTH,
)


class Device(str, enum.Enum):
    DESKTOP = "desktop"
    MOBILE = "mobile"


class RenderMethod(str, enum.Enum):
    FETCH = "fetch"
    SCRAPING_TIERED = "scraping-tiered"


class ConsentProvider(str, enum.Enum):
    NONE = "none"
    COOKIEBOT = "cookiebot"
    ONETRUST = "onetrust"


@dataclass
class ScrapeRequest:
    """One rendered fetch of `url` as seen by `device`."""

    url: str
    device: Device = Device.DESKTOP
    capture_screenshot: bool = False
    full_page_screenshot: bool = True
    wait_ms: Optional[int] = None
    block_ads: bool = True
    js_scenario: list[dict[str, Any]] = field(default_factory=list)
    cookie_consent_provider: ConsentProvider = ConsentProvider.NONE


@dataclass
class ScrapeResult:
    html: str
    resolved_url: str
    status_code: int
    credits_used: int
    render_time_ms: int
    render_method: RenderMethod
    proxy_tier_used: Optional[ProxyTier]
    screenshot: Optional[bytes] = None
    content_type: Optional[str] = None


@dataclass
class FetchOptions:
    """Caller knobs shared by the dual-device and HTML-only fetchers."""

    proxy_tier: ProxyTier = ProxyTier.STANDARD
    auto_escalate: bool = True
    block_ads: bool = True
    wait_ms: Optional[int] = None
    js_scenario: list[dict[str, Any]] = field(default_factory=list)
    cookie_consent_provider: ConsentProvider = ConsentProvider.NONE


@dataclass
class DualFetchResult:
    html: str
    resolved_url: str
    status_code: int
    total_credits_used: int
    render_time_ms: int
    render_method: RenderMethod
    proxy_tier_used: Optional[ProxyTier]
    screenshot_desktop: Optional[bytes] = None
    screenshot_mobile: Optional[bytes] = None
    content_type: Optional[str] = None


@dataclass
class HtmlOnlyResult:
    html: str
    resolved_url: str
    status_code: int
    credits_used: int
    render_time_ms: int
    render_method: RenderMethod
    proxy_tier_used: Optional[ProxyTier]
