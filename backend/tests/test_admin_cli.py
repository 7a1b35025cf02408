from __future__ import annotations

import json

import pytest

from pagestore.admin_cli import build_parser, main


def test_estimate_command_prints_expected_and_worst_case(capsys) -> None:
    assert main(["estimate", "--tier", "premium", "--single-device"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out == {"tier": "premium", "expected": 30, "worst_case": 30 + 80}


def test_upsert_tenant_arguments() -> None:
    args = build_parser().parse_args(["upsert-tenant", "acme", "Acme Ltd", "--max-snapshots", "3"])
    assert args.tenant_id == "acme"
    assert args.max_snapshots == 3
    assert args.freshness_hours is None


def test_unknown_tier_rejected() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["estimate", "--tier", "platinum"])


@pytest.mark.parametrize("flag", ["--max-snapshots", "--freshness-hours"])
def test_tenant_limits_must_be_positive(flag) -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["upsert-tenant", "acme", "Acme Ltd", flag, "0"])
