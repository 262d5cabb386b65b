"""In-memory token store for development and tests.

Expiry is enforced lazily on access against an injectable clock.  A
single ``asyncio.Lock`` serializes the atomic operations, which is
enough within one event loop; use the Redis store when more than one
process serves traffic.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Callable
from typing import Any

from otp_auth.storage.token_store import TokenStore, decode, encode

logger = logging.getLogger(__name__)


class InMemoryTokenStore(TokenStore):
    """Dict-backed store: ``key → (serialized value, expires_at | None)``."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, float | None]] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        raw, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return raw

    def _put(self, key: str, raw: str, ttl_seconds: int | None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        self._data[key] = (raw, expires_at)

    # ── Basic operations ─────────────────────────────────

    async def get(self, key: str) -> dict[str, Any] | None:
        return decode(self._live(key))

    async def set(
        self, key: str, value: dict[str, Any], ttl_seconds: int | None = None
    ) -> None:
        async with self._lock:
            self._put(key, encode(value), ttl_seconds)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            present = self._live(key) is not None
            self._data.pop(key, None)
            return present

    async def exists(self, key: str) -> bool:
        return self._live(key) is not None

    async def ttl(self, key: str) -> int | None:
        if self._live(key) is None:
            return None
        expires_at = self._data[key][1]
        if expires_at is None:
            return None
        return max(0, math.ceil(expires_at - self._clock()))

    # ── Atomic operations ────────────────────────────────

    async def get_and_delete(self, key: str) -> dict[str, Any] | None:
        async with self._lock:
            raw = self._live(key)
            self._data.pop(key, None)
            return decode(raw)

    async def compare_and_delete(self, key: str, expected: dict[str, Any]) -> bool:
        async with self._lock:
            if self._live(key) != encode(expected):
                return False
            del self._data[key]
            return True

    async def compare_and_swap(
        self,
        key: str,
        expected: dict[str, Any],
        new: dict[str, Any],
        ttl_seconds: int | None = None,
    ) -> bool:
        async with self._lock:
            if self._live(key) != encode(expected):
                return False
            self._put(key, encode(new), ttl_seconds)
            return True

    async def increment(self, key: str, ttl_seconds: int) -> int:
        async with self._lock:
            raw = self._live(key)
            if raw is None:
                count = 1
                self._put(key, "1", ttl_seconds)
            else:
                count = int(raw) + 1
                self._data[key] = (str(count), self._data[key][1])
            return count

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._data.clear()
