"""Login-link lifecycle — single-use, time-boxed e-mail sign-in tokens.

Token layout (before base64url encoding, padding stripped)::

    <email>:<created_at ms>:<64 hex nonce>:<hmac-sha256 hex>

The signature covers everything before the last colon, so a token can
be re-verified against the stored record without trusting either side
alone.
"""

from __future__ import annotations

import base64
import binascii
import dataclasses
import logging
import math
import re
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from otp_auth.config import Settings
from otp_auth.directory.base import Directory
from otp_auth.errors import (
    DeliveryError,
    EmailNotFound,
    InvalidToken,
    StoreUnavailable,
    TokenAlreadyUsed,
    TokenExpired,
    TokenIntegrityFailed,
    TokenNotFound,
)
from otp_auth.models.records import LoginToken
from otp_auth.notifiers.base import EmailNotifier
from otp_auth.notifiers.email import render_login_email
from otp_auth.security.code_deriver import CodeDeriver
from otp_auth.services.customer_service import load_credentials
from otp_auth.services.delivery import dispatch
from otp_auth.storage.token_store import TokenStore, login_link_key
from otp_auth.utils.validation import fingerprint, mask_email, normalize_email

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("otp_auth.security")

MAX_TOKEN_LENGTH = 1024

_HEX64 = re.compile(r"^[0-9a-f]{64}$")
_TOKEN_CHARS = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass(frozen=True)
class ParsedToken:
    email: str
    created_at: int
    nonce: str
    signature: str

    @property
    def signed_payload(self) -> str:
        return f"{self.email}:{self.created_at}:{self.nonce}"


@dataclass
class LoginLinkResult:
    email: str
    login_url: str
    expires_in: int


@dataclass
class LoginVerifyResult:
    email: str
    customer: dict[str, Any]
    credentials: dict[str, Any] | None = None


def encode_token(payload: str, signature: str) -> str:
    raw = f"{payload}:{signature}".encode()
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def parse_token(token: object) -> ParsedToken:
    """Decode and shape-check a token string; raises ``InvalidToken``."""
    if not isinstance(token, str) or not token or len(token) > MAX_TOKEN_LENGTH:
        raise InvalidToken()
    if not _TOKEN_CHARS.match(token):
        raise InvalidToken()
    try:
        decoded = base64.urlsafe_b64decode(token + "=" * (-len(token) % 4)).decode()
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise InvalidToken() from exc

    parts = decoded.rsplit(":", 3)
    if len(parts) != 4:
        raise InvalidToken()
    email, created_at, nonce, signature = parts
    if not email or not created_at.isdigit():
        raise InvalidToken()
    if not _HEX64.match(nonce) or not _HEX64.match(signature):
        raise InvalidToken()
    return ParsedToken(email, int(created_at), nonce, signature)


class LoginLinkService:
    """Issues and redeems login links delivered by e-mail."""

    def __init__(
        self,
        store: TokenStore,
        email_notifier: EmailNotifier,
        directory: Directory,
        deriver: CodeDeriver,
        *,
        frontend_url: str,
        expiry_seconds: int = 900,
        subject: str = "Your login link",
        notifier_timeout: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._email = email_notifier
        self._directory = directory
        self._deriver = deriver
        self._frontend_url = frontend_url.rstrip("/")
        self._expiry_seconds = expiry_seconds
        self._subject = subject
        self._notifier_timeout = notifier_timeout
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: TokenStore,
        email_notifier: EmailNotifier,
        directory: Directory,
        clock: Callable[[], float] = time.time,
    ) -> LoginLinkService:
        return cls(
            store,
            email_notifier,
            directory,
            CodeDeriver(settings.hmac_secret),
            frontend_url=settings.frontend_url,
            expiry_seconds=settings.login_link_expiry_seconds,
            subject=settings.login_email_subject,
            notifier_timeout=settings.notifier_timeout_seconds,
            clock=clock,
        )

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def build_login_url(self, token: str) -> str:
        return f"{self._frontend_url}/account/login?token={token}"

    def _make_token(self, email: str, created_at: int) -> str:
        payload = f"{email}:{created_at}:{secrets.token_hex(32)}"
        return encode_token(payload, self._deriver.sign(payload))

    # ── Request ──────────────────────────────────────────

    async def request(self, email_raw: str) -> LoginLinkResult:
        """Create a login token for a known customer and e-mail the link.

        Raises ``EmailNotFound`` for addresses the directory does not know.
        Directory errors are fatal here, unlike OTP issuance.
        """
        email = normalize_email(email_raw)
        lookup = await self._directory.lookup_by_email(email)
        if not lookup.exists or lookup.customer is None:
            logger.info("Login link requested for unknown email %s", mask_email(email))
            raise EmailNotFound()

        now_ms = self._now_ms()
        token = self._make_token(email, now_ms)
        record = LoginToken(
            email=email,
            customer=lookup.customer.to_dict(),
            created_at=now_ms,
            expires_at=now_ms + self._expiry_seconds * 1000,
        )
        key = login_link_key(token)
        await self._store.set(key, record.to_dict(), ttl_seconds=self._expiry_seconds)

        login_url = self.build_login_url(token)
        rendered = render_login_email(
            self._subject, login_url, lookup.customer.name, self._expiry_seconds // 60
        )
        try:
            await dispatch(
                self._email.send(email, rendered.subject, rendered.html_body, rendered.text_body),
                self._notifier_timeout,
                "Email",
            )
        except DeliveryError:
            try:
                await self._store.compare_and_delete(key, record.to_dict())
            except StoreUnavailable:
                logger.error("Could not discard undelivered login token %s", fingerprint(token))
            raise

        logger.info(
            "Login link %s sent to %s", fingerprint(token), mask_email(email)
        )
        return LoginLinkResult(email=email, login_url=login_url, expires_in=self._expiry_seconds)

    # ── Verify ───────────────────────────────────────────

    async def verify(self, token: str) -> LoginVerifyResult:
        """Redeem *token* exactly once.

        Raises ``InvalidToken``, ``TokenNotFound``, ``TokenAlreadyUsed``,
        ``TokenExpired`` (the record is deleted) or ``TokenIntegrityFailed``.
        """
        parsed = parse_token(token)
        key = login_link_key(token)
        tag = fingerprint(token)

        stored = await self._store.get(key)
        if stored is None:
            raise TokenNotFound()

        try:
            record = LoginToken.from_dict(stored)
        except (KeyError, TypeError, ValueError):
            security_logger.warning("Malformed login token record %s", tag)
            raise TokenIntegrityFailed() from None

        if record.used:
            logger.info("Login token %s presented again after use", tag)
            raise TokenAlreadyUsed()

        now_ms = self._now_ms()
        if record.is_expired(now_ms):
            await self._store.delete(key)
            raise TokenExpired()

        if (
            not self._deriver.verify_signature(parsed.signed_payload, parsed.signature)
            or parsed.email != record.email
            or parsed.created_at != record.created_at
        ):
            security_logger.warning("Login token %s failed integrity check", tag)
            raise TokenIntegrityFailed()

        used = dataclasses.replace(record, used=True, used_at=now_ms)
        remaining = max(1, math.ceil((record.expires_at - now_ms) / 1000))
        if not await self._store.compare_and_swap(key, stored, used.to_dict(), remaining):
            raise TokenAlreadyUsed()

        credentials = None
        phone = record.customer.get("phone")
        if phone:
            credentials = await load_credentials(self._store, phone)

        logger.info("Login token %s redeemed by %s", tag, mask_email(record.email))
        return LoginVerifyResult(
            email=record.email, customer=dict(record.customer), credentials=credentials
        )

    def status(self) -> dict[str, Any]:
        return {
            "email": self._email.status(),
            "link_expiry_minutes": self._expiry_seconds // 60,
        }
