from __future__ import annotations

import asyncio

import httpx

from pagestore.sitemap import parse_sitemap

INDEX = """<?xml version="1.0"?>
<sitemapindex>
  <sitemap><loc>https://example.com/posts.xml</loc></sitemap>
  <sitemap><loc>https://example.com/broken.xml</loc></sitemap>
</sitemapindex>"""

POSTS = """<urlset>
  <url><loc>https://example.com/a?x=1&amp;y=2</loc></url>
  <url><loc> https://example.com/b </loc></url>
  <url><loc>https://example.com/a?x=1&amp;y=2</loc></url>
</urlset>"""


def _handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/sitemap_index.xml":
        return httpx.Response(200, text=INDEX)
    if path == "/posts.xml":
        return httpx.Response(200, text=POSTS)
    return httpx.Response(404)


def test_parse_sitemap_follows_nested_and_skips_broken() -> None:
    async def scenario() -> list[str]:
        async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as client:
            return await parse_sitemap(client, "https://example.com/sitemap_index.xml")

    assert asyncio.run(scenario()) == ["https://example.com/a?x=1&y=2", "https://example.com/b"]


def test_pages_mentioning_sitemap_are_not_treated_as_nested() -> None:
    body = """<urlset>
      <url><loc>https://example.com/blog/sitemap-guide</loc></url>
      <url><loc>https://example.com/sitemap-tips?page=2</loc></url>
    </urlset>"""

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/sitemap.xml"
        return httpx.Response(200, text=body)

    async def scenario() -> list[str]:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await parse_sitemap(client, "https://example.com/sitemap.xml")

    assert asyncio.run(scenario()) == [
        "https://example.com/blog/sitemap-guide",
        "https://example.com/sitemap-tips?page=2",
    ]
