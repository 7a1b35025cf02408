"""Extract page URLs from (possibly nested) XML sitemaps."""
from __future__ import annotations

import logging
import re
from urllib.parse import urlsplit

import httpx

from pagestore.config import settings

logger = logging.getLogger(__name__)

LOC_RE = re.compile(r"<loc>\s*(.*?)\s*</loc>", re.IGNORECASE | re.DOTALL)
MAX_DEPTH = 3


def _is_nested_sitemap(url: str) -> bool:
    return urlsplit(url).path.lower().endswith(".xml")


async def parse_sitemap(client: httpx.AsyncClient, sitemap_url: str, *, _depth: int = 0) -> list[str]:
    """Page URLs listed in `sitemap_url`, de-duplicated in document order.

    Nested sitemaps are followed up to `MAX_DEPTH` levels; a nested sitemap
    that fails to load is logged and skipped.
    """
    resp = await client.get(
        sitemap_url,
        headers={
            "User-Agent": settings.PLAIN_FETCH_USER_AGENT,
            "Accept": "application/xml, text/xml, */*",
        },
    )
    resp.raise_for_status()

    urls: list[str] = []
    for raw in LOC_RE.findall(resp.text):
        loc = raw.replace("&amp;", "&").strip()
        if not loc:
            continue
        if _is_nested_sitemap(loc):
            if _depth + 1 > MAX_DEPTH:
                logger.warning("Sitemap nesting too deep, skipping %s", loc)
                continue
            try:
                urls.extend(await parse_sitemap(client, loc, _depth=_depth + 1))
            except httpx.HTTPError as exc:
                logger.warning("Failed to parse nested sitemap %s: %s", loc, exc)
            continue
        urls.append(loc)
    return list(dict.fromkeys(urls))
