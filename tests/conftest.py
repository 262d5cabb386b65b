"""Shared fixtures: fake clock, in-memory store and mocked collaborators."""

from __future__ import annotations

import re
from unittest.mock import AsyncMock, MagicMock

import pytest

from otp_auth.config import Settings
from otp_auth.directory.base import Customer, Directory, LookupResult
from otp_auth.models.records import CustomerSnapshot
from otp_auth.notifiers.base import DeliveryResult, EmailNotifier, SmsNotifier
from otp_auth.services.customer_service import CustomerService
from otp_auth.services.login_link_service import LoginLinkService
from otp_auth.services.otp_service import OTPService
from otp_auth.storage.memory_store import InMemoryTokenStore
from otp_auth.storage.token_store import encode

# Divisible by 3600: every window size used in tests starts exactly here.
WINDOW_ALIGNED_START = 1_699_999_200.0

PHONE = "+8801712345678"


class FakeClock:
    """Callable clock returning epoch seconds; advanced manually."""

    def __init__(self, start: float = WINDOW_ALIGNED_START) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def sent_code(sms: MagicMock) -> str:
    """Extract the 6-digit code from the last SMS dispatched."""
    message = sms.send.call_args.args[1]
    return re.search(r"\b(\d{6})\b", message).group(1)


def make_customer(**overrides) -> Customer:
    data = {
        "customer_id": "42",
        "name": "Rahim Uddin",
        "email": "rahim@example.com",
        "phone": PHONE,
    }
    data.update(overrides)
    return Customer(**data)


def make_snapshot(**overrides) -> CustomerSnapshot:
    data = {
        "customer_id": "42",
        "phone_number": PHONE,
        "email": "rahim@example.com",
        "name": "Rahim Uddin",
        "hashed_password": "$argon2id$v=19$m=65536,t=3,p=4$c2FsdA$aGFzaA",
        "temporary_password": "Tmp#pass1234",
        "created_at": 1_699_999_200_000,
    }
    data.update(overrides)
    return CustomerSnapshot(**data)


class TamperableTokenStore(InMemoryTokenStore):
    """In-memory store that lets tests read and rewrite stored values."""

    def raw(self, key: str) -> str | None:
        return self._live(key)

    def overwrite(self, key: str, value: dict) -> None:
        """Replace a value in place, keeping its expiry."""
        _, expires_at = self._data[key]
        self._data[key] = (encode(value), expires_at)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="test",
        hmac_secret="test-secret",
        frontend_url="https://shop.example.com",
        token_store_backend="memory",
    )


@pytest.fixture
def store(clock: FakeClock) -> TamperableTokenStore:
    return TamperableTokenStore(clock=clock)


@pytest.fixture
def sms() -> MagicMock:
    """Mocked SMS notifier — never actually sends anything."""
    notifier = MagicMock(spec=SmsNotifier)
    notifier.send = AsyncMock(return_value=DeliveryResult.ok("sms-ref-1"))
    return notifier


@pytest.fixture
def email() -> MagicMock:
    """Mocked email notifier — never actually sends anything."""
    notifier = MagicMock(spec=EmailNotifier)
    notifier.send = AsyncMock(return_value=DeliveryResult.ok("<msg-1@example.com>"))
    notifier.status = MagicMock(return_value={"provider": "mock", "enabled": True})
    return notifier


@pytest.fixture
def directory() -> MagicMock:
    """Directory that knows nobody unless a test says otherwise."""
    mock = MagicMock(spec=Directory)
    mock.lookup_by_phone = AsyncMock(return_value=LookupResult.missing())
    mock.lookup_by_email = AsyncMock(return_value=LookupResult.missing())
    mock.create_customer = AsyncMock(return_value=make_customer())
    return mock


@pytest.fixture
def otp_service(settings, store, sms, directory, clock) -> OTPService:
    return OTPService.from_settings(settings, store, sms, directory, clock=clock)


@pytest.fixture
def login_service(settings, store, email, directory, clock) -> LoginLinkService:
    return LoginLinkService.from_settings(settings, store, email, directory, clock=clock)


@pytest.fixture
def customer_service(store, directory, clock) -> CustomerService:
    return CustomerService(store, directory, clock=clock)
