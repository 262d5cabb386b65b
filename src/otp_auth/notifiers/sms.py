"""SMS delivery — SSL Wireless gateway and a log-only development sink."""

from __future__ import annotations

import logging
import secrets
import time

import httpx

from otp_auth.notifiers.base import DeliveryResult, SmsNotifier
from otp_auth.utils.phone import mask_phone, to_msisdn

logger = logging.getLogger(__name__)

MAX_SMS_LENGTH = 1000
MAX_CSMS_ID_LENGTH = 20


def render_otp_message(template: str, code: str, expiry_minutes: int) -> str:
    return template.format(otp=code, expiry_minutes=expiry_minutes)[:MAX_SMS_LENGTH]


def make_csms_id(prefix: str = "OTP_") -> str:
    """Client-side SMS id: prefix + millisecond timestamp + random suffix."""
    raw = f"{prefix}{int(time.time() * 1000)}{secrets.token_hex(2)}"
    return raw[:MAX_CSMS_ID_LENGTH]


class SslWirelessSmsNotifier(SmsNotifier):
    """Sends through the SSL Wireless ``send-sms`` JSON API.

    Success requires HTTP 200 *and* ``"status": "SUCCESS"`` in the body.
    """

    def __init__(
        self,
        api_url: str,
        api_token: str,
        sid: str,
        csms_prefix: str = "OTP_",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_url = api_url
        self._api_token = api_token
        self._sid = sid
        self._csms_prefix = csms_prefix
        self._timeout = timeout
        self._client = client

    @property
    def name(self) -> str:
        return "ssl_wireless"

    async def _post(self, payload: dict) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(self._api_url, json=payload, timeout=self._timeout)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(self._api_url, json=payload)

    async def send(self, phone: str, message: str) -> DeliveryResult:
        if not self._api_token or not self._sid:
            logger.error("SSL Wireless credentials are not configured")
            return DeliveryResult.failed("SMS provider not configured")

        payload = {
            "api_token": self._api_token,
            "sid": self._sid,
            "msisdn": to_msisdn(phone),
            "sms": message[:MAX_SMS_LENGTH],
            "csms_id": make_csms_id(self._csms_prefix),
        }
        try:
            resp = await self._post(payload)
        except httpx.HTTPError as exc:
            logger.error("SMS request to %s failed: %s", mask_phone(phone), exc)
            return DeliveryResult.failed(f"SMS request failed: {exc}")

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if resp.status_code == 200 and body.get("status") == "SUCCESS":
            reference = None
            smsinfo = body.get("smsinfo") or []
            if smsinfo and isinstance(smsinfo[0], dict):
                reference = smsinfo[0].get("reference_id")
            logger.info("SMS sent to %s (reference %s)", mask_phone(phone), reference)
            return DeliveryResult.ok(reference)

        error = body.get("error_message") or body.get("status") or f"HTTP {resp.status_code}"
        logger.error("SMS provider rejected message to %s: %s", mask_phone(phone), error)
        return DeliveryResult.failed(str(error))

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()


class LogSmsNotifier(SmsNotifier):
    """Development sink: logs the message with digit runs masked."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    @property
    def name(self) -> str:
        return "log"

    async def send(self, phone: str, message: str) -> DeliveryResult:
        self.sent.append((phone, message))
        masked = "".join("*" if ch.isdigit() else ch for ch in message)
        logger.info("[SMS → %s] %s", mask_phone(phone), masked)
        return DeliveryResult.ok(f"log_{len(self.sent)}")
