"""OTP lifecycle — issue, verify and resend phone verification codes.

Per phone number the state machine is ``NONE → ISSUED → CONSUMED`` or
``NONE → ISSUED → EXPIRED``.  Resend re-enters ``ISSUED`` with a fresh
record once the resend wait has elapsed.

Design notes
------------
* A wrong guess never deletes or refreshes the record.  The code is
  stable within its time window, so guessing cannot force a new code.
* Successful consumption is a compare-and-delete on the exact stored
  record.  Of two concurrent verifications only one can win.
* Directory errors during issuance downgrade to "assume new customer";
  delivery and store errors are fatal.
"""

from __future__ import annotations

import hmac
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from otp_auth.config import Settings
from otp_auth.directory.base import Directory
from otp_auth.errors import (
    DeliveryError,
    DirectoryUnavailable,
    IdentifierMismatch,
    IntegrityFailure,
    InvalidCode,
    OTPExpired,
    OTPNotFound,
    ResendTooEarly,
    StoreUnavailable,
)
from otp_auth.models.records import OTPRecord
from otp_auth.notifiers.base import SmsNotifier
from otp_auth.notifiers.sms import render_otp_message
from otp_auth.security.code_deriver import CodeDeriver
from otp_auth.services.customer_service import load_credentials
from otp_auth.services.delivery import dispatch
from otp_auth.storage.token_store import TokenStore, otp_key
from otp_auth.utils.phone import mask_phone, normalize
from otp_auth.utils.validation import check_code_format

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("otp_auth.security")


@dataclass
class IssueResult:
    phone: str
    customer_exists: bool
    expires_in: int
    code: str | None = None  # only populated when code exposure is enabled


@dataclass
class VerifyResult:
    phone: str
    verified: bool = True
    customer: dict[str, Any] | None = None


@dataclass
class OTPStatus:
    phone: str
    active: bool
    remaining_seconds: int = 0
    resend_available_in: int = 0


class OTPService:
    """Orchestrates code derivation, storage, delivery and verification."""

    def __init__(
        self,
        store: TokenStore,
        sms: SmsNotifier,
        directory: Directory,
        deriver: CodeDeriver,
        *,
        expiry_seconds: int = 600,
        resend_wait_seconds: int = 120,
        sms_template: str = "Your OTP code is: {otp}. This code will expire in "
        "{expiry_minutes} minutes. Do not share this code with anyone.",
        notifier_timeout: float = 30.0,
        expose_code: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._sms = sms
        self._directory = directory
        self._deriver = deriver
        self._expiry_seconds = expiry_seconds
        self._resend_wait_seconds = resend_wait_seconds
        self._sms_template = sms_template
        self._notifier_timeout = notifier_timeout
        self._expose_code = expose_code
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: TokenStore,
        sms: SmsNotifier,
        directory: Directory,
        clock: Callable[[], float] = time.time,
    ) -> OTPService:
        deriver = CodeDeriver(
            settings.hmac_secret, settings.otp_length, settings.otp_time_window_ms
        )
        return cls(
            store,
            sms,
            directory,
            deriver,
            expiry_seconds=settings.otp_expiry_seconds,
            resend_wait_seconds=settings.otp_resend_wait_seconds,
            sms_template=settings.otp_sms_template,
            notifier_timeout=settings.notifier_timeout_seconds,
            expose_code=settings.expose_otp_in_response,
            clock=clock,
        )

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # ── Issue ────────────────────────────────────────────

    async def issue(self, phone_raw: str) -> IssueResult:
        """Derive, store and send a code for *phone_raw*."""
        phone = normalize(phone_raw)
        return await self._issue(phone)

    async def _customer_exists(self, phone: str) -> bool:
        try:
            lookup = await self._directory.lookup_by_phone(phone)
        except DirectoryUnavailable:
            logger.warning(
                "Directory unavailable for %s; assuming new customer", mask_phone(phone)
            )
            return False
        return lookup.exists

    async def _issue(self, phone: str) -> IssueResult:
        customer_exists = await self._customer_exists(phone)

        now_ms = self._now_ms()
        code = self._deriver.derive(phone, now_ms)
        expires_at = now_ms + self._expiry_seconds * 1000
        record = OTPRecord(
            identifier=phone,
            code=code,
            issued_at=now_ms,
            expires_at=expires_at,
            integrity_tag=self._deriver.tag(phone, code, now_ms, expires_at),
        )
        key = otp_key(phone)
        await self._store.set(key, record.to_dict(), ttl_seconds=self._expiry_seconds)

        message = render_otp_message(
            self._sms_template, code, self._expiry_seconds // 60
        )
        try:
            await dispatch(self._sms.send(phone, message), self._notifier_timeout, "SMS")
        except DeliveryError:
            await self._discard(key, record)
            raise

        logger.info(
            "OTP issued for %s (existing customer: %s)", mask_phone(phone), customer_exists
        )
        return IssueResult(
            phone=phone,
            customer_exists=customer_exists,
            expires_in=self._expiry_seconds,
            code=code if self._expose_code else None,
        )

    async def _discard(self, key: str, record: OTPRecord) -> None:
        """Remove an undelivered record unless it was already replaced."""
        try:
            await self._store.compare_and_delete(key, record.to_dict())
        except StoreUnavailable:
            logger.error("Could not discard undelivered OTP record %s", key)

    # ── Verify ───────────────────────────────────────────

    async def verify(self, phone_raw: str, candidate: str) -> VerifyResult:
        """Check *candidate* against the live record and consume it on success.

        Raises
        ------
        InvalidPhoneFormat, InvalidCodeFormat
            Malformed input.
        OTPNotFound
            No live record (never issued, evicted, or already consumed).
        IntegrityFailure
            The stored record does not match its integrity tag.
        OTPExpired, IdentifierMismatch, InvalidCode
            Ordinary verification failures; the record is left in place.
        """
        phone = normalize(phone_raw)
        candidate = check_code_format(candidate, self._deriver.length)
        key = otp_key(phone)

        stored = await self._store.get(key)
        if stored is None:
            raise OTPNotFound()

        try:
            record = OTPRecord.from_dict(stored)
        except (KeyError, TypeError, ValueError):
            security_logger.warning("Malformed OTP record for %s", mask_phone(phone))
            raise IntegrityFailure() from None

        if not self._deriver.verify_tag(record):
            security_logger.warning(
                "OTP integrity check failed for %s", mask_phone(phone)
            )
            raise IntegrityFailure()

        if record.is_expired(self._now_ms()):
            raise OTPExpired()

        if record.identifier != phone:
            security_logger.warning(
                "OTP record under %s is bound to another identifier", mask_phone(phone)
            )
            raise IdentifierMismatch()

        if not hmac.compare_digest(record.code, candidate):
            logger.info("Invalid OTP attempt for %s", mask_phone(phone))
            raise InvalidCode()

        if not await self._store.compare_and_delete(key, stored):
            # A concurrent verification consumed (or a resend replaced) it first.
            raise OTPNotFound()

        credentials = await load_credentials(self._store, phone)
        logger.info("OTP verified for %s", mask_phone(phone))
        return VerifyResult(phone=phone, customer=credentials)

    # ── Resend ───────────────────────────────────────────

    async def resend(self, phone_raw: str) -> IssueResult:
        """Issue a fresh code once the resend wait has elapsed.

        Eligible when there is no live record, the record has expired, or
        ``resend_wait_seconds`` have passed since it was issued.
        """
        phone = normalize(phone_raw)
        stored = await self._store.get(otp_key(phone))

        if stored is not None:
            try:
                record = OTPRecord.from_dict(stored)
            except (KeyError, TypeError, ValueError):
                record = None
            if record is not None:
                now_ms = self._now_ms()
                eligible_at = record.issued_at + self._resend_wait_seconds * 1000
                if not record.is_expired(now_ms) and now_ms < eligible_at:
                    remaining = math.ceil((eligible_at - now_ms) / 1000)
                    expires_in = math.ceil((record.expires_at - now_ms) / 1000)
                    logger.info(
                        "Resend for %s refused, %ss remaining", mask_phone(phone), remaining
                    )
                    raise ResendTooEarly(max(1, remaining), expires_in)

        return await self._issue(phone)

    # ── Status ───────────────────────────────────────────

    async def status(self, phone_raw: str) -> OTPStatus:
        """Report whether a live code exists and how long it remains valid."""
        phone = normalize(phone_raw)
        stored = await self._store.get(otp_key(phone))
        if stored is None:
            return OTPStatus(phone=phone, active=False)
        try:
            record = OTPRecord.from_dict(stored)
        except (KeyError, TypeError, ValueError):
            return OTPStatus(phone=phone, active=False)

        now_ms = self._now_ms()
        resend_at = record.issued_at + self._resend_wait_seconds * 1000
        return OTPStatus(
            phone=phone,
            active=not record.is_expired(now_ms),
            remaining_seconds=max(0, (record.expires_at - now_ms) // 1000),
            resend_available_in=max(0, math.ceil((resend_at - now_ms) / 1000)),
        )
