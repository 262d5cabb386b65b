"""End-to-end tests for the HTTP surface (services wired with mocks)."""

from __future__ import annotations

import httpx
import pytest
import pytest_asyncio

from conftest import PHONE, make_customer, sent_code
from otp_auth.api.dependencies import assemble
from otp_auth.directory.base import LookupResult
from otp_auth.errors import DirectoryUnavailable
from otp_auth.main import create_app
from otp_auth.notifiers.base import DeliveryResult
from otp_auth.storage.memory_store import InMemoryTokenStore


@pytest.fixture
def api_settings(settings):
    return settings.model_copy(update={"otp_verify_limit": 3})


@pytest.fixture
def container(api_settings, sms, email, directory):
    return assemble(api_settings, InMemoryTokenStore(), directory, sms, email)


@pytest_asyncio.fixture
async def client(container):
    app = create_app(container=container)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ── Health ───────────────────────────────────────────────

@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["token_store"] == "up"


# ── OTP flow ─────────────────────────────────────────────

@pytest.mark.asyncio
async def test_send_and_verify(client, sms):
    resp = await client.post("/api/otp/send", json={"phoneNumber": "01712345678"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["phoneNumber"] == PHONE
    assert body["data"]["expiresIn"] == 600
    assert "otp" not in body["data"]
    assert "timestamp" in body

    code = sent_code(sms)
    resp = await client.post("/api/otp/verify", json={"phoneNumber": PHONE, "otp": code})
    assert resp.status_code == 200
    assert resp.json()["data"]["verified"] is True

    resp = await client.post("/api/otp/verify", json={"phoneNumber": PHONE, "otp": code})
    assert resp.status_code == 400
    assert resp.json()["error"] == "OTP_NOT_FOUND"


@pytest.mark.asyncio
async def test_invalid_phone_is_400_with_reason(client):
    resp = await client.post("/api/otp/send", json={"phoneNumber": "12345"})
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "INVALID_PHONE_FORMAT"
    assert body["message"] == "Invalid phone number format"


@pytest.mark.asyncio
async def test_missing_field_is_validation_error(client):
    resp = await client.post("/api/otp/send", json={})
    assert resp.status_code == 400
    assert resp.json()["error"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_sms_failure_is_503(client, sms):
    sms.send.return_value = DeliveryResult.failed("down")
    resp = await client.post("/api/otp/send", json={"phoneNumber": PHONE})
    assert resp.status_code == 503
    assert resp.json()["error"] == "DELIVERY_FAILED"


@pytest.mark.asyncio
async def test_sms_notifier_exception_is_503(client, sms):
    sms.send.side_effect = RuntimeError("socket closed")
    resp = await client.post("/api/otp/send", json={"phoneNumber": PHONE})
    assert resp.status_code == 503
    assert resp.json()["error"] == "DELIVERY_FAILED"
    assert "socket closed" not in resp.text


@pytest.mark.asyncio
async def test_resend_too_early_has_retry_after(client):
    await client.post("/api/otp/send", json={"phoneNumber": PHONE})
    resp = await client.post("/api/otp/resend", json={"phoneNumber": PHONE})
    assert resp.status_code == 429
    assert resp.json()["error"] == "RESEND_TOO_EARLY"
    assert int(resp.headers["Retry-After"]) > 0


@pytest.mark.asyncio
async def test_verify_is_rate_limited(client):
    await client.post("/api/otp/send", json={"phoneNumber": PHONE})
    for _ in range(3):
        resp = await client.post("/api/otp/verify", json={"phoneNumber": PHONE, "otp": "000000"})
        assert resp.status_code == 400
    resp = await client.post("/api/otp/verify", json={"phoneNumber": PHONE, "otp": "000000"})
    assert resp.status_code == 429
    assert resp.json()["error"] == "RATE_LIMIT_EXCEEDED"
    assert "Retry-After" in resp.headers


@pytest.mark.asyncio
async def test_otp_status(client):
    resp = await client.get("/api/otp/status", params={"phoneNumber": PHONE})
    assert resp.json()["data"]["hasActiveOTP"] is False
    await client.post("/api/otp/send", json={"phoneNumber": PHONE})
    resp = await client.get("/api/otp/status", params={"phoneNumber": PHONE})
    assert resp.json()["data"]["hasActiveOTP"] is True


# ── Login links ──────────────────────────────────────────

@pytest.mark.asyncio
async def test_login_link_flow(client, directory, email):
    directory.lookup_by_email.return_value = LookupResult.found(make_customer())

    resp = await client.post("/api/auth/login-link/request", json={"email": "rahim@example.com"})
    assert resp.status_code == 200
    assert "loginUrl" not in resp.json()["data"]

    text_body = email.send.call_args.args[3]
    url = next(w for w in text_body.split() if w.startswith("https://"))
    token = url.split("token=", 1)[1]

    resp = await client.get("/api/auth/login-link/verify", params={"token": token})
    assert resp.status_code == 200
    assert resp.json()["data"]["email"] == "rahim@example.com"

    resp = await client.get("/api/auth/login-link/verify", params={"token": token})
    assert resp.status_code == 401
    assert resp.json()["error"] == "TOKEN_ALREADY_USED"


@pytest.mark.asyncio
async def test_login_link_unknown_email(client):
    resp = await client.post("/api/auth/login-link/request", json={"email": "who@example.com"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "EMAIL_NOT_FOUND"


@pytest.mark.asyncio
async def test_login_link_directory_down(client, directory):
    directory.lookup_by_email.side_effect = DirectoryUnavailable()
    resp = await client.post("/api/auth/login-link/request", json={"email": "who@example.com"})
    assert resp.status_code == 503


@pytest.mark.asyncio
async def test_login_link_malformed_token(client):
    resp = await client.get("/api/auth/login-link/verify", params={"token": "garbage!"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "INVALID_TOKEN"


@pytest.mark.asyncio
async def test_login_link_status(client):
    resp = await client.get("/api/auth/login-link/status")
    assert resp.status_code == 200
    assert resp.json()["data"]["email"]["provider"] == "mock"


# ── Signup ───────────────────────────────────────────────

@pytest.mark.asyncio
async def test_signup_then_verify_returns_credentials(client, sms):
    resp = await client.post(
        "/api/customer/signup",
        json={"phoneNumber": PHONE, "name": "Rahim Uddin", "email": "rahim@example.com"},
    )
    assert resp.status_code == 201
    assert resp.json()["data"]["customerId"] == "42"
    assert "password" not in resp.json()["data"]

    await client.post("/api/otp/send", json={"phoneNumber": PHONE})
    resp = await client.post(
        "/api/otp/verify", json={"phoneNumber": PHONE, "otp": sent_code(sms)}
    )
    customer = resp.json()["data"]["customer"]
    assert set(customer) == {"customerId", "email", "name", "password"}
    assert customer["customerId"] == "42"
    assert len(customer["password"]) == 12
    assert "hashed_password" not in customer


@pytest.mark.asyncio
async def test_signup_conflict(client, directory):
    directory.lookup_by_phone.return_value = LookupResult.found(make_customer())
    resp = await client.post(
        "/api/customer/signup",
        json={"phoneNumber": PHONE, "name": "Rahim Uddin", "email": "rahim@example.com"},
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "CUSTOMER_EXISTS_PHONE"
