from __future__ import annotations

from pagestore.urls import hash_url, normalise_domain, normalise_url


def test_normalise_url_adds_scheme_and_lowercases_host() -> None:
    assert normalise_url("Example.COM/Path/") == "https://example.com/Path"


def test_normalise_url_drops_default_port_fragment_and_sorts_query() -> None:
    assert normalise_url("https://example.com:443/?b=2&a=1#top") == "https://example.com/?a=1&b=2"


def test_normalise_url_keeps_non_default_port_and_root_slash() -> None:
    assert normalise_url("http://example.com:8080") == "http://example.com:8080/"


def test_hash_url_is_shared_by_equivalent_spellings() -> None:
    h = hash_url("example.com")
    assert len(h) == 16
    assert h == hash_url("https://EXAMPLE.com/")
    assert h != hash_url("https://example.com/other")


def test_normalise_domain_accepts_urls_and_bare_domains() -> None:
    assert normalise_domain("https://www.Example.com/x?y=1") == "example.com"
    assert normalise_domain("www.shop.co.uk/basket") == "shop.co.uk"
    assert normalise_domain("news.example.org:8443") == "news.example.org"
