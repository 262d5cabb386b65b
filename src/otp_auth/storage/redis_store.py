"""Redis-backed token store (shared across service instances)."""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from typing import Any, TypeVar

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from otp_auth.errors import StoreUnavailable
from otp_auth.storage.token_store import TokenStore, decode, encode

logger = logging.getLogger(__name__)

T = TypeVar("T")

# KEYS[1]=key, ARGV[1]=expected
COMPARE_AND_DELETE_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""

# KEYS[1]=key, ARGV[1]=expected, ARGV[2]=new, ARGV[3]=ttl seconds (0 = persist)
COMPARE_AND_SWAP_SCRIPT = """
if redis.call('GET', KEYS[1]) ~= ARGV[1] then
    return 0
end
local ttl = tonumber(ARGV[3])
if ttl and ttl > 0 then
    redis.call('SET', KEYS[1], ARGV[2], 'EX', ttl)
else
    redis.call('SET', KEYS[1], ARGV[2])
end
return 1
"""

# KEYS[1]=key, ARGV[1]=ttl seconds
INCREMENT_SCRIPT = """
local count = redis.call('INCR', KEYS[1])
if count == 1 then
    redis.call('EXPIRE', KEYS[1], ARGV[1])
end
return count
"""


class RedisTokenStore(TokenStore):
    """Token store over ``redis.asyncio``.

    Atomic operations run as server-side Lua scripts, so they hold
    across any number of service processes.
    """

    def __init__(self, client: aioredis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, socket_timeout: float = 5.0) -> RedisTokenStore:
        client = aioredis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=socket_timeout,
        )
        return cls(client)

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except RedisError as exc:
            logger.error("Redis %s failed: %s", operation, exc)
            raise StoreUnavailable() from exc

    # ── Basic operations ─────────────────────────────────

    async def get(self, key: str) -> dict[str, Any] | None:
        return decode(await self._call("GET", self._client.get(key)))

    async def set(
        self, key: str, value: dict[str, Any], ttl_seconds: int | None = None
    ) -> None:
        await self._call(
            "SET", self._client.set(key, encode(value), ex=ttl_seconds or None)
        )

    async def delete(self, key: str) -> bool:
        return bool(await self._call("DEL", self._client.delete(key)))

    async def exists(self, key: str) -> bool:
        return bool(await self._call("EXISTS", self._client.exists(key)))

    async def ttl(self, key: str) -> int | None:
        remaining = await self._call("TTL", self._client.ttl(key))
        # -2: missing, -1: no expiry
        return remaining if remaining is not None and remaining >= 0 else None

    # ── Atomic operations ────────────────────────────────

    async def get_and_delete(self, key: str) -> dict[str, Any] | None:
        return decode(await self._call("GETDEL", self._client.getdel(key)))

    async def compare_and_delete(self, key: str, expected: dict[str, Any]) -> bool:
        result = await self._call(
            "compare-and-delete",
            self._client.eval(COMPARE_AND_DELETE_SCRIPT, 1, key, encode(expected)),
        )
        return int(result) == 1

    async def compare_and_swap(
        self,
        key: str,
        expected: dict[str, Any],
        new: dict[str, Any],
        ttl_seconds: int | None = None,
    ) -> bool:
        result = await self._call(
            "compare-and-swap",
            self._client.eval(
                COMPARE_AND_SWAP_SCRIPT,
                1,
                key,
                encode(expected),
                encode(new),
                str(ttl_seconds or 0),
            ),
        )
        return int(result) == 1

    async def increment(self, key: str, ttl_seconds: int) -> int:
        result = await self._call(
            "increment",
            self._client.eval(INCREMENT_SCRIPT, 1, key, str(ttl_seconds)),
        )
        return int(result)

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as exc:
            logger.warning("Redis ping failed: %s", exc)
            return False

    async def close(self) -> None:
        await self._client.aclose()
