from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Protocol

import redis.asyncio as aioredis
from redis import Redis
from redis.exceptions import RedisError

from muzee.storage.errors import CacheUnavailable


class CacheBackend(Protocol):
    """Key-value operations the auth flows rely on."""

    def verify_connection(self) -> None: ...

    async def ping(self) -> bool: ...

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> int: ...

    async def incr_and_expire(self, key: str, ttl_seconds: int) -> int: ...

    async def close(self) -> None: ...


class RedisCache:
    """Thin Redis wrapper for signup sessions, refresh tokens and rate limits."""

    DEFAULT_OPERATION_TIMEOUT = 5.0

    # INCR plus first-hit EXPIRE in one round trip: a counter never exists without a TTL.
    _INCR_AND_EXPIRE_SCRIPT = """
local count = redis.call('INCR', KEYS[1])
if count == 1 then
  redis.call('EXPIRE', KEYS[1], tonumber(ARGV[1]))
end
return count
"""

    def __init__(self, redis_url: str, *, socket_timeout: float = DEFAULT_OPERATION_TIMEOUT):
        self.redis_url = redis_url
        self.socket_timeout = socket_timeout
        self.client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        self._incr_and_expire = self.client.register_script(self._INCR_AND_EXPIRE_SCRIPT)

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except RedisError as exc:
            raise CacheUnavailable(operation, exc) from exc

    def verify_connection(self) -> None:
        """Assert Redis connectivity before serving traffic."""
        # A short-lived sync client keeps the async pool off the startup loop.
        sync_client = Redis.from_url(
            self.redis_url,
            decode_responses=True,
            socket_timeout=self.socket_timeout,
            socket_connect_timeout=self.socket_timeout,
        )
        try:
            sync_client.ping()
        finally:
            sync_client.close()

    async def ping(self) -> bool:
        async with self._guard("ping"):
            return bool(await self.client.ping())

    async def get(self, key: str) -> Optional[str]:
        async with self._guard("get"):
            return await self.client.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        async with self._guard("set"):
            await self.client.set(key, value, ex=max(1, int(ttl_seconds)))

    async def delete(self, key: str) -> int:
        """Delete ``key``; returns the number of keys removed (0 or 1)."""
        async with self._guard("delete"):
            return int(await self.client.delete(key))

    async def incr_and_expire(self, key: str, ttl_seconds: int) -> int:
        """Atomically increment ``key`` and start its TTL on the first hit."""
        async with self._guard("incr_and_expire"):
            count = await self._incr_and_expire(keys=[key], args=[max(1, int(ttl_seconds))])
        return int(count)

    async def close(self) -> None:
        """Close the connection pool. Call when shutting down or resetting runtime."""
        await self.client.aclose()
