#!/usr/bin/env python3
"""Operator commands: create the schema and manage tenant settings.

Usage:
    python -m pagestore.admin_cli init-db
    python -m pagestore.admin_cli upsert-tenant acme "Acme Ltd" --freshness-hours 12 --max-snapshots 5
    python -m pagestore.admin_cli estimate --tier premium --no-screenshot
"""
from __future__ import annotations

import argparse
import asyncio
import json

from pagestore.credits import escalation_path_credits, estimate_credits
from pagestore.db import create_schema, get_engine
from pagestore.logging_config import setup_logging
from pagestore.repository import PageRepository
from pagestore.schemas.page import ProxyTier


async def _init_db() -> dict:
    engine = get_engine()
    try:
        await create_schema(engine)
    finally:
        await engine.dispose()
    return {"ok": True}


async def _upsert_tenant(args: argparse.Namespace) -> dict:
    engine = get_engine()
    try:
        tenant = await PageRepository(engine).upsert_tenant(
            args.tenant_id,
            args.name,
            page_freshness_hours=args.freshness_hours,
            max_snapshots_per_url=args.max_snapshots,
        )
    finally:
        await engine.dispose()
    return {
        "id": tenant.id,
        "name": tenant.name,
        "page_freshness_hours": tenant.page_freshness_hours,
        "max_snapshots_per_url": tenant.max_snapshots_per_url,
    }


def _estimate(args: argparse.Namespace) -> dict:
    tier = ProxyTier(args.tier)
    kwargs = {"js_rendering": not args.no_js, "screenshot": not args.no_screenshot, "dual_device": not args.single_device}
    return {
        "tier": tier.value,
        "expected": estimate_credits(tier, **kwargs),
        "worst_case": escalation_path_credits(ProxyTier.STEALTH, start_tier=tier, **kwargs),
    }


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pagestore-admin", description=__doc__.splitlines()[0])
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create all tables")

    tenant = sub.add_parser("upsert-tenant", help="Create or update a tenant")
    tenant.add_argument("tenant_id")
    tenant.add_argument("name")
    tenant.add_argument("--freshness-hours", type=_positive_int, default=None)
    tenant.add_argument("--max-snapshots", type=_positive_int, default=None)

    estimate = sub.add_parser("estimate", help="Credit estimate for one page fetch")
    estimate.add_argument("--tier", choices=[t.value for t in ProxyTier], default=ProxyTier.STANDARD.value)
    estimate.add_argument("--no-js", action="store_true")
    estimate.add_argument("--no-screenshot", action="store_true")
    estimate.add_argument("--single-device", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()
    if args.command == "init-db":
        out = asyncio.run(_init_db())
    elif args.command == "upsert-tenant":
        out = asyncio.run(_upsert_tenant(args))
    else:
        out = _estimate(args)
    print(json.dumps(out, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
