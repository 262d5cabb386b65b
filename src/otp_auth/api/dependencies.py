"""Service container wiring — builds collaborators from ``Settings``."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine

from otp_auth.config import Settings
from otp_auth.database.engine import build_session_factory, init_db
from otp_auth.directory.base import Directory
from otp_auth.directory.database import DatabaseDirectory
from otp_auth.directory.http import HttpDirectory
from otp_auth.notifiers.base import EmailNotifier, SmsNotifier
from otp_auth.notifiers.email import LogEmailNotifier, SmtpEmailNotifier
from otp_auth.notifiers.sms import LogSmsNotifier, SslWirelessSmsNotifier
from otp_auth.services.customer_service import CustomerService
from otp_auth.services.login_link_service import LoginLinkService
from otp_auth.services.otp_service import OTPService
from otp_auth.services.rate_gate import RateGate, rules_from_settings
from otp_auth.storage.memory_store import InMemoryTokenStore
from otp_auth.storage.redis_store import RedisTokenStore
from otp_auth.storage.token_store import TokenStore

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Everything a request handler needs, created once per process."""

    settings: Settings
    store: TokenStore
    directory: Directory
    sms: SmsNotifier
    email: EmailNotifier
    otp: OTPService
    login_links: LoginLinkService
    customers: CustomerService
    rate_gate: RateGate
    resources: list[Any] = field(default_factory=list)

    async def close(self) -> None:
        await self.store.close()
        await self.directory.close()
        await self.sms.close()
        for resource in self.resources:
            if isinstance(resource, AsyncEngine):
                await resource.dispose()


def assemble(
    settings: Settings,
    store: TokenStore,
    directory: Directory,
    sms: SmsNotifier,
    email: EmailNotifier,
) -> ServiceContainer:
    """Build the services around already-constructed collaborators."""
    return ServiceContainer(
        settings=settings,
        store=store,
        directory=directory,
        sms=sms,
        email=email,
        otp=OTPService.from_settings(settings, store, sms, directory),
        login_links=LoginLinkService.from_settings(settings, store, email, directory),
        customers=CustomerService(
            store, directory, snapshot_ttl_seconds=settings.customer_snapshot_ttl_seconds
        ),
        rate_gate=RateGate(
            store, rules_from_settings(settings), enabled=settings.rate_limit_enabled
        ),
    )


def _build_store(settings: Settings) -> TokenStore:
    if settings.token_store_backend == "memory":
        logger.warning("Using in-memory token store; limits are per process")
        return InMemoryTokenStore()
    return RedisTokenStore.from_url(
        settings.redis_url, socket_timeout=settings.redis_socket_timeout_seconds
    )


def _build_sms(settings: Settings) -> SmsNotifier:
    if settings.sms_provider == "ssl_wireless":
        return SslWirelessSmsNotifier(
            api_url=settings.sms_api_base_url,
            api_token=settings.sms_api_token,
            sid=settings.sms_sid,
            csms_prefix=settings.sms_csms_prefix,
            timeout=settings.notifier_timeout_seconds,
        )
    return LogSmsNotifier()


def _build_email(settings: Settings) -> EmailNotifier:
    if settings.email_provider == "smtp":
        return SmtpEmailNotifier(
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            from_email=settings.email_from,
            from_name=settings.email_from_name,
            username=settings.smtp_username,
            password=settings.smtp_password,
            start_tls=settings.smtp_start_tls,
            timeout=settings.notifier_timeout_seconds,
        )
    return LogEmailNotifier()


async def build_container(settings: Settings) -> ServiceContainer:
    """Create collaborators for *settings* and wire the services."""
    resources: list[Any] = []
    if settings.directory_backend == "http":
        directory: Directory = HttpDirectory(
            settings.directory_api_base_url,
            api_token=settings.directory_api_token,
            timeout=settings.directory_timeout_seconds,
        )
    else:
        engine, session_factory = build_session_factory(settings.database_url)
        await init_db(engine)
        resources.append(engine)
        directory = DatabaseDirectory(session_factory)

    container = assemble(
        settings, _build_store(settings), directory, _build_sms(settings), _build_email(settings)
    )
    container.resources.extend(resources)
    logger.info(
        "Services ready (store=%s, directory=%s, sms=%s, email=%s)",
        settings.token_store_backend,
        settings.directory_backend,
        container.sms.name,
        container.email.name,
    )
    return container


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container
