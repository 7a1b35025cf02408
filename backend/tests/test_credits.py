from __future__ import annotations

import pytest

from pagestore.credits import escalation_path_credits, estimate_credits
from pagestore.schemas.page import ProxyTier


def test_estimate_credits_per_tier() -> None:
    assert estimate_credits(ProxyTier.STANDARD) == 5
    assert estimate_credits(ProxyTier.PREMIUM) == 25
    assert estimate_credits(ProxyTier.STEALTH) == 75
    assert estimate_credits(ProxyTier.STEALTH, js_rendering=False) == 25
    assert estimate_credits("premium", js_rendering=False) == 10


def test_estimate_credits_screenshot_then_dual_device_doubles() -> None:
    assert estimate_credits(ProxyTier.STANDARD, True, True, False) == 10
    assert estimate_credits(ProxyTier.STANDARD, True, True, True) == 20
    assert estimate_credits(ProxyTier.PREMIUM, True, True, True) == 60


def test_escalation_path_credits_sums_every_tier_tried() -> None:
    assert escalation_path_credits(ProxyTier.STEALTH) == 5 + 25 + 75
    assert escalation_path_credits(ProxyTier.STEALTH, start_tier=ProxyTier.PREMIUM, dual_device=True) == 200
    assert escalation_path_credits(ProxyTier.STANDARD) == 5


def test_escalation_path_credits_rejects_downward_path() -> None:
    with pytest.raises(ValueError):
        escalation_path_credits(ProxyTier.STANDARD, start_tier=ProxyTier.STEALTH)
