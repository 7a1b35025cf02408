"""Proxy-tier escalation around `ScrapingClient`.

Start cheap and pay for a stronger proxy only when the provider reports an
anti-bot block. Each tier is tried at most once, in `ESCALATION_ORDER`.
"""
from __future__ import annotations

import logging
import re

from pagestore.errors import ScrapeError
from pagestore.metrics import SCRAPE_ESCALATIONS_TOTAL
from pagestore.schemas.page import ESCALATION_ORDER, ProxyTier, ScrapeRequest, ScrapeResult
from pagestore.scraping.client import ScrapingClient

logger = logging.getLogger(__name__)

BLOCKED_STATUS_CODES = frozenset({403, 407, 429, 503})

BLOCKED_MESSAGE_RE = re.compile(
    r"blocked|captcha|access denied|forbidden|bot detected|rate limit",
    re.IGNORECASE,
)


def is_blocked_error(error: BaseException) -> bool:
    """True when the failure looks like anti-bot rejection rather than a plain error."""
    status_code = getattr(error, "status_code", None)
    if status_code in BLOCKED_STATUS_CODES:
        return True
    message = getattr(error, "message", None) or str(error)
    return bool(BLOCKED_MESSAGE_RE.search(message))


def next_proxy_tier(current: ProxyTier) -> ProxyTier | None:
    idx = ESCALATION_ORDER.index(current)
    if idx + 1 >= len(ESCALATION_ORDER):
        return None
    return ESCALATION_ORDER[idx + 1]


async def fetch_with_retry(
    client: ScrapingClient,
    request: ScrapeRequest,
    start_tier: ProxyTier = ProxyTier.STANDARD,
    auto_escalate: bool = True,
) -> ScrapeResult:
    """Fetch `request`, climbing one tier per blocked response.

    The returned `credits_used` includes what rejected attempts cost. When the
    final attempt fails its error is re-raised with `credits_spent` set to the
    total charged across the whole call.
    """
    if not client.is_configured:
        return await client.fetch(request)

    start_tier = ProxyTier(start_tier)
    tiers = ESCALATION_ORDER[ESCALATION_ORDER.index(start_tier):]
    spent = 0
    for tier in tiers:
        try:
            result = await client.fetch(request, tier)
        except ScrapeError as exc:
            spent += exc.credits_used
            exc.credits_spent = spent
            upgrade = next_proxy_tier(tier)
            if not auto_escalate or upgrade is None or not is_blocked_error(exc):
                raise
            logger.warning(
                "Escalating from %s to %s for %s (blocked: %s)",
                tier.value,
                upgrade.value,
                request.url,
                exc.status_code or exc.message,
            )
            SCRAPE_ESCALATIONS_TOTAL.labels(from_tier=tier.value, to_tier=upgrade.value).inc()
            continue

        result.credits_used += spent
        result.proxy_tier_used = tier
        return result

    # Unreachable: the last tier either returns or re-raises.
    raise AssertionError("escalation loop exhausted without result")
