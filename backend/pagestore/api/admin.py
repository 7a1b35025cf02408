"""Admin endpoints — credit usage and cost estimates."""
from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends

from pagestore.api.deps import get_page_store_service
from pagestore.api.schemas import CreditEstimatePayload
from pagestore.credits import escalation_path_credits, estimate_credits
from pagestore.db import utcnow
from pagestore.schemas.page import ProxyTier
from pagestore.service import PageStoreService
from pagestore.usage import credit_usage_report

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/scraping-usage")
async def scraping_usage(service: PageStoreService = Depends(get_page_store_service)) -> dict[str, Any]:
    report = await credit_usage_report(service.repository, utcnow())
    return asdict(report)


@router.post("/credits/estimate")
async def credits_estimate(payload: CreditEstimatePayload) -> dict[str, int]:
    """Expected spend at the requested tier and if every tier up to stealth is needed."""
    return {
        "expected": estimate_credits(
            payload.proxy_tier, payload.js_rendering, payload.screenshot, payload.dual_device
        ),
        "worst_case": escalation_path_credits(
            ProxyTier.STEALTH,
            start_tier=payload.proxy_tier,
            js_rendering=payload.js_rendering,
            screenshot=payload.screenshot,
            dual_device=payload.dual_device,
        ),
    }
