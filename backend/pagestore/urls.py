"""URL normalisation and hashing used as the cache key."""
from __future__ import annotations

import hashlib
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_DEFAULT_PORTS = {"http": 80, "https": 443}


def normalise_url(raw: str) -> str:
    """Canonical form of a URL so equivalent spellings share one cache entry.

    Adds ``https://`` when no scheme is given, lowercases the host, drops
    default ports and the fragment, sorts query parameters and removes a
    trailing slash from non-root paths. Unparseable input is returned as-is.
    """
    value = (raw or "").strip()
    if not value.startswith(("http://", "https://")):
        value = f"https://{value}"
    try:
        parts = urlsplit(value)
        hostname = (parts.hostname or "").lower()
        port = parts.port
    except ValueError:
        return value
    if not hostname:
        return value

    netloc = hostname
    if parts.username:
        userinfo = parts.username + (f":{parts.password}" if parts.password else "")
        netloc = f"{userinfo}@{netloc}"
    if port and port != _DEFAULT_PORTS.get(parts.scheme):
        netloc = f"{netloc}:{port}"

    path = parts.path or "/"
    if path != "/" and path.endswith("/"):
        path = path.rstrip("/") or "/"

    query = urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)))
    return urlunsplit((parts.scheme, netloc, path, query, ""))


def hash_url(raw: str) -> str:
    """16-hex-char SHA-256 prefix of the normalised URL."""
    return hashlib.sha256(normalise_url(raw).encode("utf-8")).hexdigest()[:16]


def normalise_domain(value: str) -> str:
    """Bare lowercase host with any leading ``www.`` removed.

    Accepts either a URL or a plain domain.
    """
    raw = (value or "").strip().lower()
    if "://" in raw:
        raw = urlsplit(raw).hostname or ""
    else:
        raw = raw.split("/", 1)[0].split(":", 1)[0]
    if raw.startswith("www."):
        raw = raw[4:]
    return raw
