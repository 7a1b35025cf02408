"""Bearer tokens for outbound services.

The token cache lives outside any single request so a token is reused until
shortly before it expires. It is an explicit object handed to the client
that needs it; tests pass their own clock.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

import httpx

from pagestore.errors import ConfigurationError

logger = logging.getLogger(__name__)

REFRESH_MARGIN_S = 5 * 60


@dataclass
class CachedToken:
    token: str
    expires_at: float


class TokenCache:
    """Holds one token and refreshes it `refresh_margin_s` before expiry."""

    def __init__(
        self,
        *,
        refresh_margin_s: float = REFRESH_MARGIN_S,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.refresh_margin_s = refresh_margin_s
        self._clock = clock
        self._cached: CachedToken | None = None
        self._lock = asyncio.Lock()

    def peek(self) -> str | None:
        """Current token if still inside its validity window."""
        if self._cached and self._clock() < self._cached.expires_at - self.refresh_margin_s:
            return self._cached.token
        return None

    def store(self, token: str, expires_in_s: float) -> None:
        self._cached = CachedToken(token=token, expires_at=self._clock() + expires_in_s)

    def clear(self) -> None:
        self._cached = None

    async def get(self, fetch: Callable[[], Awaitable[tuple[str, float]]]) -> str:
        """Return a valid token, calling `fetch` -> (token, expires_in_s) on a miss."""
        token = self.peek()
        if token is not None:
            return token
        async with self._lock:
            token = self.peek()
            if token is not None:
                return token
            token, expires_in = await fetch()
            self.store(token, expires_in)
            return token


class TokenProvider(Protocol):
    async def get_token(self) -> str: ...


class StaticTokenProvider:
    def __init__(self, token: str):
        self._token = token

    async def get_token(self) -> str:
        return self._token


class ClientCredentialsTokenProvider:
    """OAuth2 client_credentials grant with a shared `TokenCache`."""

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        *,
        cache: TokenCache | None = None,
        http: httpx.AsyncClient | None = None,
        timeout_s: float = 30.0,
    ):
        if not (token_url and client_id and client_secret):
            raise ConfigurationError("client credentials require token_url, client_id and client_secret")
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.cache = cache or TokenCache()
        self._http = http
        self._timeout_s = timeout_s

    async def get_token(self) -> str:
        return await self.cache.get(self._request_token)

    async def _request_token(self) -> tuple[str, float]:
        payload = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        if self._http is not None:
            resp = await self._http.post(self.token_url, json=payload, timeout=self._timeout_s)
        else:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                resp = await client.post(self.token_url, json=payload)
        if resp.status_code >= 400:
            raise ConfigurationError(f"Token request failed ({resp.status_code}): {resp.text}")
        data = resp.json()
        logger.info("Obtained access token from %s (expires in %ss)", self.token_url, data.get("expires_in"))
        return str(data["access_token"]), float(data.get("expires_in") or 3600)
