"""Tests for the OTP lifecycle — issue, verify, resend and status."""

from __future__ import annotations

import asyncio

import pytest

from conftest import PHONE, make_customer, make_snapshot, sent_code
from otp_auth.directory.base import LookupResult
from otp_auth.errors import (
    DeliveryError,
    DirectoryUnavailable,
    IdentifierMismatch,
    IntegrityFailure,
    InvalidCode,
    InvalidCodeFormat,
    InvalidPhoneFormat,
    OTPExpired,
    OTPNotFound,
    ResendTooEarly,
)
from otp_auth.notifiers.base import DeliveryResult
from otp_auth.services.otp_service import OTPService
from otp_auth.storage.token_store import customer_key, otp_key


def _wrong(code: str) -> str:
    return str((int(code) + 1) % 1_000_000).zfill(6)


# ── Issue ────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_issue_stores_record_and_sends_sms(otp_service, store, sms):
    result = await otp_service.issue("01712345678")

    assert result.phone == PHONE
    assert result.expires_in == 600
    assert result.customer_exists is False
    assert result.code is None  # never returned outside development

    phone_arg, message = sms.send.call_args.args
    assert phone_arg == PHONE
    assert "will expire in 10 minutes" in message

    record = await store.get(otp_key(PHONE))
    assert record["code"] == sent_code(sms)
    assert record["expires_at"] - record["issued_at"] == 600_000
    assert await store.ttl(otp_key(PHONE)) == 600


@pytest.mark.asyncio
async def test_issue_reports_existing_customer(otp_service, directory):
    directory.lookup_by_phone.return_value = LookupResult.found(make_customer())
    result = await otp_service.issue(PHONE)
    assert result.customer_exists is True


@pytest.mark.asyncio
async def test_issue_survives_directory_outage(otp_service, directory, sms):
    directory.lookup_by_phone.side_effect = DirectoryUnavailable()
    result = await otp_service.issue(PHONE)
    assert result.customer_exists is False
    sms.send.assert_awaited_once()


@pytest.mark.asyncio
async def test_issue_rejects_bad_phone(otp_service, sms):
    with pytest.raises(InvalidPhoneFormat):
        await otp_service.issue("12345")
    sms.send.assert_not_called()


@pytest.mark.asyncio
async def test_issue_fails_when_sms_fails(otp_service, sms, store):
    sms.send.return_value = DeliveryResult.failed("gateway said no")
    with pytest.raises(DeliveryError):
        await otp_service.issue(PHONE)
    # Undelivered record is discarded so a retry is not blocked.
    assert await store.get(otp_key(PHONE)) is None


@pytest.mark.asyncio
async def test_issue_discards_record_when_notifier_raises(otp_service, sms, store):
    sms.send.side_effect = RuntimeError("connection reset")
    with pytest.raises(DeliveryError) as exc_info:
        await otp_service.issue(PHONE)
    assert exc_info.value.details["provider_error"] == "connection reset"
    assert await store.get(otp_key(PHONE)) is None

    sms.send.side_effect = None
    sms.send.return_value = DeliveryResult.ok("ref-2")
    result = await otp_service.resend(PHONE)
    assert result.phone == PHONE


@pytest.mark.asyncio
async def test_issue_fails_when_sms_times_out(settings, store, directory, clock, sms):
    async def hang(*args):
        await asyncio.sleep(10)

    sms.send.side_effect = hang
    service = OTPService.from_settings(
        settings.model_copy(update={"notifier_timeout_seconds": 0.01}),
        store, sms, directory, clock=clock,
    )
    with pytest.raises(DeliveryError):
        await service.issue(PHONE)


@pytest.mark.asyncio
async def test_issue_within_window_is_idempotent(otp_service, sms, clock):
    await otp_service.issue(PHONE)
    first = sent_code(sms)
    clock.advance(60)
    await otp_service.issue(PHONE)
    assert sent_code(sms) == first


@pytest.mark.asyncio
async def test_development_mode_exposes_code(settings, store, sms, directory, clock):
    dev = settings.model_copy(
        update={"environment": "development", "expose_otp_in_response": True}
    )
    service = OTPService.from_settings(dev, store, sms, directory, clock=clock)
    result = await service.issue(PHONE)
    assert result.code == sent_code(sms)


# ── Verify ───────────────────────────────────────────────

@pytest.mark.asyncio
async def test_verify_succeeds_exactly_once(otp_service, sms):
    await otp_service.issue(PHONE)
    code = sent_code(sms)

    result = await otp_service.verify(PHONE, code)
    assert result.verified is True
    assert result.phone == PHONE

    with pytest.raises(OTPNotFound):
        await otp_service.verify(PHONE, code)


@pytest.mark.asyncio
async def test_verify_accepts_any_phone_form(otp_service, sms):
    await otp_service.issue("+8801712345678")
    result = await otp_service.verify("01712345678", sent_code(sms))
    assert result.phone == PHONE


@pytest.mark.asyncio
async def test_wrong_guess_leaves_record_intact(otp_service, sms, store, clock):
    await otp_service.issue(PHONE)
    code = sent_code(sms)
    before = store.raw(otp_key(PHONE))

    with pytest.raises(InvalidCode):
        await otp_service.verify(PHONE, _wrong(code))

    assert store.raw(otp_key(PHONE)) == before
    clock.advance(120)
    assert (await otp_service.verify(PHONE, code)).verified


@pytest.mark.asyncio
async def test_verify_rejects_malformed_code(otp_service, sms):
    await otp_service.issue(PHONE)
    for bad in ("12345", "1234567", "12a456", ""):
        with pytest.raises(InvalidCodeFormat):
            await otp_service.verify(PHONE, bad)


@pytest.mark.asyncio
async def test_verify_without_record(otp_service):
    with pytest.raises(OTPNotFound):
        await otp_service.verify(PHONE, "123456")


@pytest.mark.asyncio
async def test_expired_record_fails_even_with_correct_code(otp_service, sms, store, clock):
    await otp_service.issue(PHONE)
    code = sent_code(sms)
    key = otp_key(PHONE)
    # Keep the entry alive past its logical expiry, as a lagging TTL would.
    await store.set(key, await store.get(key), ttl_seconds=3600)

    clock.advance(601)
    with pytest.raises(OTPExpired):
        await otp_service.verify(PHONE, code)


@pytest.mark.asyncio
async def test_ttl_eviction_reports_not_found(otp_service, sms, clock):
    await otp_service.issue(PHONE)
    code = sent_code(sms)
    clock.advance(600)
    with pytest.raises(OTPNotFound):
        await otp_service.verify(PHONE, code)


@pytest.mark.asyncio
async def test_tampered_code_reports_integrity_failure(otp_service, sms, store):
    await otp_service.issue(PHONE)
    code = sent_code(sms)
    key = otp_key(PHONE)
    record = await store.get(key)
    record["code"] = _wrong(code)
    store.overwrite(key, record)

    with pytest.raises(IntegrityFailure):
        await otp_service.verify(PHONE, code)
    with pytest.raises(IntegrityFailure):
        await otp_service.verify(PHONE, record["code"])


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["issued_at", "expires_at"])
async def test_tampered_timestamps_report_integrity_failure(otp_service, sms, store, field):
    await otp_service.issue(PHONE)
    key = otp_key(PHONE)
    record = await store.get(key)
    record[field] += 60_000
    store.overwrite(key, record)

    with pytest.raises(IntegrityFailure):
        await otp_service.verify(PHONE, sent_code(sms))


@pytest.mark.asyncio
async def test_record_bound_to_other_identifier(otp_service, sms, store):
    other = "+8801812345678"
    await otp_service.issue(other)
    # Correctly signed record for another phone placed under this phone's key.
    await store.set(otp_key(PHONE), await store.get(otp_key(other)), ttl_seconds=600)

    with pytest.raises(IdentifierMismatch):
        await otp_service.verify(PHONE, sent_code(sms))


@pytest.mark.asyncio
async def test_concurrent_verifications_accept_once(otp_service, sms):
    await otp_service.issue(PHONE)
    code = sent_code(sms)

    results = await asyncio.gather(
        *(otp_service.verify(PHONE, code) for _ in range(5)), return_exceptions=True
    )
    successes = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(successes) == 1
    assert all(isinstance(f, OTPNotFound) for f in failures)


@pytest.mark.asyncio
async def test_verify_returns_customer_credentials(otp_service, sms, store):
    await store.set(customer_key(PHONE), make_snapshot().to_dict())

    await otp_service.issue(PHONE)
    result = await otp_service.verify(PHONE, sent_code(sms))
    assert result.customer == {
        "customerId": "42",
        "email": "rahim@example.com",
        "name": "Rahim Uddin",
        "password": "Tmp#pass1234",
    }


@pytest.mark.asyncio
async def test_verify_ignores_malformed_snapshot(otp_service, sms, store):
    await store.set(customer_key(PHONE), {"customer_id": "42"})

    await otp_service.issue(PHONE)
    result = await otp_service.verify(PHONE, sent_code(sms))
    assert result.verified
    assert result.customer is None


# ── Resend ───────────────────────────────────────────────

@pytest.mark.asyncio
async def test_immediate_resend_is_too_early(otp_service, clock):
    await otp_service.issue(PHONE)
    clock.advance(30)
    with pytest.raises(ResendTooEarly) as exc_info:
        await otp_service.resend(PHONE)
    assert exc_info.value.remaining_seconds == 90
    assert exc_info.value.expires_in == 570


@pytest.mark.asyncio
async def test_resend_after_wait_issues_newer_record(otp_service, store, sms, clock):
    await otp_service.issue(PHONE)
    first = await store.get(otp_key(PHONE))

    clock.advance(121)
    result = await otp_service.resend(PHONE)

    second = await store.get(otp_key(PHONE))
    assert result.phone == PHONE
    assert second["issued_at"] > first["issued_at"]
    assert sms.send.await_count == 2


@pytest.mark.asyncio
async def test_resend_without_record_behaves_like_issue(otp_service, sms):
    result = await otp_service.resend(PHONE)
    assert result.expires_in == 600
    sms.send.assert_awaited_once()


@pytest.mark.asyncio
async def test_resend_after_failed_delivery_is_allowed(otp_service, sms):
    sms.send.return_value = DeliveryResult.failed("down")
    with pytest.raises(DeliveryError):
        await otp_service.issue(PHONE)

    sms.send.return_value = DeliveryResult.ok("ref-2")
    result = await otp_service.resend(PHONE)
    assert result.phone == PHONE


@pytest.mark.asyncio
async def test_resend_supersedes_previous_record(otp_service, sms, clock):
    await otp_service.issue(PHONE)
    clock.advance(300)  # next time window
    await otp_service.resend(PHONE)
    new_code = sent_code(sms)
    assert (await otp_service.verify(PHONE, new_code)).verified


# ── Status ───────────────────────────────────────────────

@pytest.mark.asyncio
async def test_status_reports_remaining_time(otp_service, clock):
    assert (await otp_service.status(PHONE)).active is False

    await otp_service.issue(PHONE)
    clock.advance(100)
    status = await otp_service.status(PHONE)
    assert status.active is True
    assert status.remaining_seconds == 500
    assert status.resend_available_in == 20
