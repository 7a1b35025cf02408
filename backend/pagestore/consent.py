"""Cookie-consent dismissal.

Each provider maps to browser-automation steps injected into the scraping
request: wait for the dialog, click every known "accept" selector, then let
the dialog animate away. Scenarios run with ``strict: false`` so a missing
element is skipped instead of failing the fetch.
"""
from __future__ import annotations

import logging
from typing import Any, Protocol

from pagestore.schemas.page import ConsentProvider
from pagestore.urls import hash_url, normalise_domain

logger = logging.getLogger(__name__)

COOKIE_CONSENT_SCENARIOS: dict[ConsentProvider, list[dict[str, Any]]] = {
    ConsentProvider.COOKIEBOT: [
        {"wait": 2000},
        {"click": "#CybotCookiebotDialogBodyLevelButtonAccept"},
        {"click": "#CybotCookiebotDialogBodyLevelButtonLevelOptinAllowAll"},
        {"click": "#CybotCookiebotDialogBodyButtonAccept"},
        {"click": "#CybotCookiebotDialogBodyContentButtonAccept"},
        {"wait": 500},
    ],
    ConsentProvider.ONETRUST: [
        {"wait": 2000},
        {"click": "#onetrust-accept-btn-handler"},
        {"wait": 500},
    ],
}


def consent_instructions(provider: ConsentProvider | str | None) -> list[dict[str, Any]]:
    """Fresh copy of the scenario for `provider`; empty for ``none`` / unknown."""
    try:
        key = ConsentProvider(provider or ConsentProvider.NONE)
    except ValueError:
        logger.warning("Unknown cookie consent provider %r, skipping consent handling", provider)
        return []
    return [dict(step) for step in COOKIE_CONSENT_SCENARIOS.get(key, [])]


class ConsentLookup(Protocol):
    async def get_url_record(self, url_hash: str): ...

    async def get_domain_config(self, domain: str, tenant_id: str): ...


async def resolve_cookie_provider(repository: ConsentLookup, url: str, tenant_id: str) -> ConsentProvider:
    """URL override, then the tenant's domain config, then ``none``."""
    record = await repository.get_url_record(hash_url(url))
    if record is not None and record.cookie_consent_override:
        return ConsentProvider(record.cookie_consent_override)

    domain = normalise_domain(url)
    if domain:
        config = await repository.get_domain_config(domain, tenant_id)
        if config is not None:
            return ConsentProvider(config.cookie_consent_provider)

    return ConsentProvider.NONE
