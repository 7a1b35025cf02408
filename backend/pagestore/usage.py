"""Scraping credit usage reporting for the admin dashboard."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from pagestore.repository import PageRepository
from pagestore.schemas.page import ProxyTier

TREND_DAYS = 30
TOP_TENANTS = 10


@dataclass
class UsageSummary:
    all_time: int = 0
    this_month: int = 0
    this_week: int = 0
    today: int = 0


@dataclass
class UsageReport:
    summary: UsageSummary
    by_proxy_tier: dict[str, int]
    by_tenant: list[dict[str, object]]
    by_tool: list[dict[str, object]]
    daily_trend: list[dict[str, object]] = field(default_factory=list)


def period_starts(now: datetime) -> tuple[datetime, datetime, datetime]:
    """(start of today, start of week (Sunday), start of month) in `now`'s timezone."""
    start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    days_since_sunday = (start_of_today.weekday() + 1) % 7
    start_of_week = start_of_today - timedelta(days=days_since_sunday)
    start_of_month = start_of_today.replace(day=1)
    return start_of_today, start_of_week, start_of_month


def fill_daily_trend(rows: list[tuple[datetime, int]], today: date, days: int = TREND_DAYS) -> list[dict[str, object]]:
    per_day: dict[date, int] = {}
    for fetched_at, credits in rows:
        day = fetched_at.date()
        per_day[day] = per_day.get(day, 0) + credits
    return [
        {"date": (today - timedelta(days=offset)).isoformat(), "credits_used": per_day.get(today - timedelta(days=offset), 0)}
        for offset in range(days - 1, -1, -1)
    ]


async def credit_usage_report(repository: PageRepository, now: datetime) -> UsageReport:
    start_of_today, start_of_week, start_of_month = period_starts(now)
    summary = UsageSummary(
        all_time=await repository.sum_credits(),
        this_month=await repository.sum_credits(since=start_of_month),
        this_week=await repository.sum_credits(since=start_of_week),
        today=await repository.sum_credits(since=start_of_today),
    )

    by_tier = {tier.value: 0 for tier in ProxyTier}
    for tier, credits in await repository.credits_grouped_by("proxy_tier_used"):
        if tier in by_tier:
            by_tier[tier] = credits

    by_tenant = [
        {"tenant_id": tenant_id or "unknown", "credits_used": credits}
        for tenant_id, credits in await repository.credits_grouped_by("tenant_id", limit=TOP_TENANTS)
    ]
    by_tool = [
        {"tool_id": tool_id or "unknown", "credits_used": credits}
        for tool_id, credits in await repository.credits_grouped_by("tool_id")
    ]

    trend_start = start_of_today - timedelta(days=TREND_DAYS - 1)
    daily = fill_daily_trend(await repository.credit_rows_since(trend_start), start_of_today.date())

    return UsageReport(
        summary=summary,
        by_proxy_tier=by_tier,
        by_tenant=by_tenant,
        by_tool=by_tool,
        daily_trend=daily,
    )
