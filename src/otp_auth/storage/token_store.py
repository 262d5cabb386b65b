"""Token store — abstract TTL key-value interface plus key layout.

Values are JSON objects.  They are encoded canonically (sorted keys,
compact separators) so ``compare_and_delete`` / ``compare_and_swap``
can match on exact serialized bytes in any backend.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any

OTP_PREFIX = "otp"
CUSTOMER_PREFIX = "customer"
LOGIN_LINK_PREFIX = "login_link"
RATE_LIMIT_PREFIX = "rate_limit"


# ── Key layout ───────────────────────────────────────────

def otp_key(phone: str) -> str:
    return f"{OTP_PREFIX}:{phone}"


def customer_key(phone_or_email: str) -> str:
    return f"{CUSTOMER_PREFIX}:{phone_or_email}"


def login_link_key(token: str) -> str:
    return f"{LOGIN_LINK_PREFIX}:{token}"


def rate_limit_key(operation: str, key: str, window_index: int) -> str:
    return f"{RATE_LIMIT_PREFIX}:{operation}:{key}:{window_index}"


# ── Serialization ────────────────────────────────────────

def encode(value: dict[str, Any]) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def decode(raw: str | bytes | None) -> dict[str, Any] | None:
    if raw is None:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode()
    return json.loads(raw)


class TokenStore(ABC):
    """TTL-capable key-value store holding OTP records, tokens and counters.

    Every method may raise ``StoreUnavailable``; callers treat that as
    fatal.  A ``ttl_seconds`` of ``None`` means the entry never expires.
    """

    @abstractmethod
    async def get(self, key: str) -> dict[str, Any] | None:
        """Return the stored value or ``None`` if absent/expired."""

    @abstractmethod
    async def set(
        self, key: str, value: dict[str, Any], ttl_seconds: int | None = None
    ) -> None:
        """Store *value*, replacing any existing entry."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove *key*; ``True`` if something was deleted."""

    @abstractmethod
    async def exists(self, key: str) -> bool: ...

    @abstractmethod
    async def ttl(self, key: str) -> int | None:
        """Remaining lifetime in seconds, ``None`` if absent or persistent."""

    @abstractmethod
    async def get_and_delete(self, key: str) -> dict[str, Any] | None:
        """Atomically read and remove *key*."""

    @abstractmethod
    async def compare_and_delete(self, key: str, expected: dict[str, Any]) -> bool:
        """Atomically delete *key* only if it still holds *expected*.

        Used for single-use consumption: of several concurrent callers
        holding the same value, exactly one gets ``True``.
        """

    @abstractmethod
    async def compare_and_swap(
        self,
        key: str,
        expected: dict[str, Any],
        new: dict[str, Any],
        ttl_seconds: int | None = None,
    ) -> bool:
        """Atomically replace *expected* with *new*; ``False`` if it changed."""

    @abstractmethod
    async def increment(self, key: str, ttl_seconds: int) -> int:
        """Increment a counter, setting its expiry when it is first created."""

    @abstractmethod
    async def ping(self) -> bool: ...

    async def close(self) -> None:
        """Release connections (no-op by default)."""
