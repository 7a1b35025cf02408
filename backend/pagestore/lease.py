"""Short-lived per-URL fetch lease.

Two callers missing the cache for the same URL would both pay for a fetch.
With a lease, the second caller waits for the first to finish and then reads
the snapshot it produced. Without Redis every acquire succeeds.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Protocol

logger = logging.getLogger(__name__)

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class FetchLease(Protocol):
    async def acquire(self, url_hash: str) -> str | None: ...

    async def release(self, url_hash: str, token: str) -> None: ...

    async def wait_released(self, url_hash: str) -> bool: ...

    async def aclose(self) -> None: ...


class NullFetchLease:
    async def acquire(self, url_hash: str) -> str | None:
        return "unlocked"

    async def release(self, url_hash: str, token: str) -> None:
        return None

    async def wait_released(self, url_hash: str) -> bool:
        return True

    async def aclose(self) -> None:
        return None


class RedisFetchLease:
    """``SET NX PX`` lease keyed by url hash, released only by its holder."""

    def __init__(self, redis_client, *, ttl_s: int = 120, wait_s: float = 90, poll_s: float = 0.5):
        self._redis = redis_client
        self.ttl_s = ttl_s
        self.wait_s = wait_s
        self.poll_s = poll_s

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisFetchLease":
        import redis.asyncio as redis

        return cls(redis.Redis.from_url(url, decode_responses=True), **kwargs)

    @staticmethod
    def _key(url_hash: str) -> str:
        return f"pagestore:lease:{url_hash}"

    async def acquire(self, url_hash: str) -> str | None:
        token = uuid.uuid4().hex
        ok = await self._redis.set(self._key(url_hash), token, nx=True, px=int(self.ttl_s * 1000))
        return token if ok else None

    async def release(self, url_hash: str, token: str) -> None:
        try:
            await self._redis.eval(_RELEASE_SCRIPT, 1, self._key(url_hash), token)
        except Exception as exc:
            # The TTL frees the key anyway.
            logger.warning("Failed to release fetch lease for %s: %s", url_hash, exc)

    async def wait_released(self, url_hash: str) -> bool:
        """Poll until the lease is gone; False if `wait_s` elapses first."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.wait_s
        while loop.time() < deadline:
            if not await self._redis.exists(self._key(url_hash)):
                return True
            await asyncio.sleep(self.poll_s)
        logger.warning("Gave up waiting for fetch lease on %s after %ss", url_hash, self.wait_s)
        return False

    async def aclose(self) -> None:
        await self._redis.aclose()
