"""Deterministic OTP derivation and HMAC integrity tags.

Codes are derived from ``(identifier, time window, secret)`` rather than
drawn at random, so repeated issuance for the same phone within one
window yields the same code.  Client-side retries of a send request are
therefore idempotent.
"""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Mapping

DEFAULT_WINDOW_MS = 5 * 60 * 1000


def _hmac_hex(secret: str, data: str) -> str:
    return hmac.new(secret.encode(), data.encode(), hashlib.sha256).hexdigest()


def time_window(timestamp_ms: int, window_ms: int = DEFAULT_WINDOW_MS) -> int:
    return timestamp_ms // window_ms


def derive_code(
    identifier: str,
    timestamp_ms: int,
    secret: str,
    length: int = 6,
    window_ms: int = DEFAULT_WINDOW_MS,
) -> str:
    """Derive a *length*-digit numeric code.

    The hex digest's last nibble picks an offset (0-9); the hex slice at
    that offset is read as an integer and reduced modulo ``10**length``.
    """
    window = time_window(timestamp_ms, window_ms)
    digest = _hmac_hex(secret, f"{identifier}:{window}:{secret}")
    offset = int(digest[-1], 16) % 10
    value = int(digest[offset:offset + length], 16) % (10**length)
    return str(value).zfill(length)


def compute_integrity_tag(
    identifier: str, code: str, issued_at: int, expires_at: int, secret: str
) -> str:
    return _hmac_hex(secret, f"{identifier}:{code}:{issued_at}:{expires_at}")


def verify_integrity_tag(record: Mapping[str, object] | object, secret: str) -> bool:
    """Recompute the tag of *record* and compare in constant time.

    *record* may be an ``OTPRecord`` or its stored mapping form.
    """
    if isinstance(record, Mapping):
        fields = (
            record.get("identifier"),
            record.get("code"),
            record.get("issued_at"),
            record.get("expires_at"),
        )
        stored = record.get("integrity_tag")
    else:
        fields = (
            getattr(record, "identifier", None),
            getattr(record, "code", None),
            getattr(record, "issued_at", None),
            getattr(record, "expires_at", None),
        )
        stored = getattr(record, "integrity_tag", None)

    if not isinstance(stored, str) or any(f is None for f in fields):
        return False
    expected = compute_integrity_tag(*(str(f) for f in fields), secret)  # type: ignore[arg-type]
    return hmac.compare_digest(expected, stored)


def sign(secret: str, data: str) -> str:
    """Generic keyed signature used for login tokens."""
    return _hmac_hex(secret, data)


def verify_signature(secret: str, data: str, signature: str) -> bool:
    return hmac.compare_digest(sign(secret, data), signature)


class CodeDeriver:
    """Binds the pure derivation functions to one secret and window size."""

    def __init__(
        self, secret: str, length: int = 6, window_ms: int = DEFAULT_WINDOW_MS
    ) -> None:
        if not secret:
            raise ValueError("CodeDeriver requires a non-empty secret")
        self._secret = secret
        self.length = length
        self.window_ms = window_ms

    def derive(self, identifier: str, timestamp_ms: int) -> str:
        return derive_code(
            identifier, timestamp_ms, self._secret, self.length, self.window_ms
        )

    def tag(self, identifier: str, code: str, issued_at: int, expires_at: int) -> str:
        return compute_integrity_tag(identifier, code, issued_at, expires_at, self._secret)

    def verify_tag(self, record: Mapping[str, object] | object) -> bool:
        return verify_integrity_tag(record, self._secret)

    def sign(self, data: str) -> str:
        return sign(self._secret, data)

    def verify_signature(self, data: str, signature: str) -> bool:
        return verify_signature(self._secret, data, signature)
