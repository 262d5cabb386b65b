"""Email delivery — async SMTP sender, a log-only sink, and templates."""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Any

import aiosmtplib

from otp_auth.notifiers.base import DeliveryResult, EmailNotifier
from otp_auth.utils.validation import mask_email

logger = logging.getLogger(__name__)


@dataclass
class RenderedEmail:
    subject: str
    html_body: str
    text_body: str


def render_login_email(
    subject: str, login_url: str, customer_name: str | None, expiry_minutes: int
) -> RenderedEmail:
    """Build the login-link e-mail in both text and HTML form."""
    name = customer_name or "Valued Customer"
    text_body = (
        f"Hello {name},\n\n"
        "Click the link below to log in to your account:\n\n"
        f"{login_url}\n\n"
        f"This link will expire in {expiry_minutes} minutes and can only be used once.\n\n"
        "If you did not request this link, you can safely ignore this email.\n"
    )
    safe_url = html.escape(login_url, quote=True)
    html_body = (
        "<!DOCTYPE html>\n"
        "<html><head><meta charset=\"utf-8\"><title>Your Login Link</title></head>\n"
        "<body style=\"font-family: 'Segoe UI', Tahoma, sans-serif; line-height: 1.6;\">\n"
        f"  <p>Hello {html.escape(name)},</p>\n"
        "  <p>Click the button below to log in to your account:</p>\n"
        f"  <p><a href=\"{safe_url}\" style=\"display:inline-block;padding:12px 24px;"
        "background:#222;color:#fff;text-decoration:none;border-radius:4px;\">Log in</a></p>\n"
        f"  <p>Or copy this link into your browser:<br>{safe_url}</p>\n"
        f"  <p>This link will expire in {expiry_minutes} minutes and can only be used once.</p>\n"
        "  <p>If you did not request this link, you can safely ignore this email.</p>\n"
        "</body></html>\n"
    )
    return RenderedEmail(subject=subject, html_body=html_body, text_body=text_body)


class SmtpEmailNotifier(EmailNotifier):
    """Sends transactional emails using the configured SMTP server."""

    def __init__(
        self,
        hostname: str,
        port: int,
        from_email: str,
        from_name: str = "",
        username: str = "",
        password: str = "",
        start_tls: bool = True,
        timeout: float = 30.0,
    ) -> None:
        self._hostname = hostname
        self._port = port
        self._from = formataddr((from_name, from_email)) if from_name else from_email
        self._username = username
        self._password = password
        self._start_tls = start_tls
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "smtp"

    async def send(
        self, to_email: str, subject: str, html_body: str, text_body: str
    ) -> DeliveryResult:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self._from
        msg["To"] = to_email
        msg["Message-ID"] = make_msgid()
        msg.set_content(text_body)
        msg.add_alternative(html_body, subtype="html")

        logger.info("Sending email to %s", mask_email(to_email))
        try:
            await aiosmtplib.send(
                msg,
                hostname=self._hostname,
                port=self._port,
                username=self._username or None,
                password=self._password or None,
                start_tls=self._start_tls,
                timeout=self._timeout,
            )
        except aiosmtplib.SMTPException as exc:
            logger.error("SMTP delivery to %s failed: %s", mask_email(to_email), exc)
            return DeliveryResult.failed(str(exc))
        except OSError as exc:
            logger.error("SMTP connection failed: %s", exc)
            return DeliveryResult.failed(str(exc))

        logger.info("Email sent to %s", mask_email(to_email))
        return DeliveryResult.ok(msg["Message-ID"])

    def status(self) -> dict[str, Any]:
        return {
            "provider": self.name,
            "enabled": bool(self._hostname),
            "configured": bool(self._username and self._password),
            "host": self._hostname,
            "port": self._port,
        }


class LogEmailNotifier(EmailNotifier):
    """Development sink: records the message and logs only its envelope."""

    def __init__(self) -> None:
        self.outbox: list[tuple[str, str, str, str]] = []

    @property
    def name(self) -> str:
        return "log"

    async def send(
        self, to_email: str, subject: str, html_body: str, text_body: str
    ) -> DeliveryResult:
        self.outbox.append((to_email, subject, html_body, text_body))
        logger.info("[EMAIL → %s] %s", mask_email(to_email), subject)
        return DeliveryResult.ok(f"log_{len(self.outbox)}")

    def status(self) -> dict[str, Any]:
        return {"provider": self.name, "enabled": True, "configured": True, "mock": True}
