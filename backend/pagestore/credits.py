"""Credit cost model for the scraping provider.

Pure estimation used for pre-flight planning and reporting; live calls report
their real cost through response metadata.
"""
from __future__ import annotations

from pagestore.schemas.page import ProxyTier

# (with JS rendering, without JS rendering)
TIER_BASE_CREDITS: dict[ProxyTier, tuple[int, int]] = {
    ProxyTier.STANDARD: (5, 1),
    ProxyTier.PREMIUM: (25, 10),
    ProxyTier.STEALTH: (75, 25),
}

SCREENSHOT_CREDITS = 5


def estimate_credits(
    tier: ProxyTier | str = ProxyTier.STANDARD,
    js_rendering: bool = True,
    screenshot: bool = False,
    dual_device: bool = False,
) -> int:
    """Expected credits for one logical request at a fixed tier.

    >>> estimate_credits(ProxyTier.STANDARD, True, True, True)
    20
    """
    with_js, without_js = TIER_BASE_CREDITS[ProxyTier(tier)]
    credits = with_js if js_rendering else without_js
    if screenshot:
        credits += SCREENSHOT_CREDITS
    if dual_device:
        credits *= 2
    return credits


def escalation_path_credits(
    final_tier: ProxyTier | str,
    *,
    start_tier: ProxyTier | str = ProxyTier.STANDARD,
    js_rendering: bool = True,
    screenshot: bool = False,
    dual_device: bool = False,
) -> int:
    """Worst-case spend when every tier from `start_tier` up to `final_tier` is paid for."""
    order = list(ProxyTier)
    start = order.index(ProxyTier(start_tier))
    end = order.index(ProxyTier(final_tier))
    if end < start:
        raise ValueError(f"final tier {final_tier} is below start tier {start_tier}")
    return sum(
        estimate_credits(tier, js_rendering, screenshot, dual_device)
        for tier in order[start : end + 1]
    )
