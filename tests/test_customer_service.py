"""Tests for customer signup."""

from __future__ import annotations

import pytest

from conftest import PHONE, make_customer
from otp_auth.directory.base import LookupResult
from otp_auth.errors import CustomerAlreadyExists, InvalidCustomerData, InvalidPhoneFormat
from otp_auth.security.passwords import PASSWORD_CHARSET, verify_password
from otp_auth.storage.token_store import customer_key


@pytest.mark.asyncio
async def test_signup_creates_customer_and_snapshots(customer_service, directory, store):
    result = await customer_service.signup(
        "01712345678", "Rahim  Uddin", "Rahim@Example.com", gender="Male",
        birthdate="1990-05-17",
    )

    new_customer = directory.create_customer.call_args.args[0]
    assert new_customer.phone == PHONE
    assert new_customer.email == "rahim@example.com"
    assert new_customer.name == "Rahim Uddin"
    assert new_customer.gender == "male"
    assert new_customer.password == result.temporary_password

    assert len(result.temporary_password) == 12
    assert set(result.temporary_password) <= set(PASSWORD_CHARSET)
    assert verify_password(result.snapshot.hashed_password, result.temporary_password)

    by_phone = await store.get(customer_key(PHONE))
    by_email = await store.get(customer_key("rahim@example.com"))
    assert by_phone == by_email
    assert by_phone["customer_id"] == "42"
    assert await store.ttl(customer_key(PHONE)) is None


@pytest.mark.asyncio
async def test_signup_rejects_existing_phone(customer_service, directory):
    directory.lookup_by_phone.return_value = LookupResult.found(make_customer())
    with pytest.raises(CustomerAlreadyExists) as exc_info:
        await customer_service.signup(PHONE, "Rahim Uddin", "new@example.com")
    assert exc_info.value.code == "CUSTOMER_EXISTS_PHONE"
    directory.create_customer.assert_not_called()


@pytest.mark.asyncio
async def test_signup_rejects_existing_email(customer_service, directory):
    directory.lookup_by_email.return_value = LookupResult.found(make_customer())
    with pytest.raises(CustomerAlreadyExists) as exc_info:
        await customer_service.signup(PHONE, "Rahim Uddin", "rahim@example.com")
    assert exc_info.value.code == "CUSTOMER_EXISTS_EMAIL"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kwargs, error",
    [
        ({"phone_raw": "123"}, InvalidPhoneFormat),
        ({"name": "R"}, InvalidCustomerData),
        ({"name": "Rahim 2"}, InvalidCustomerData),
        ({"gender": "robot"}, InvalidCustomerData),
        ({"birthdate": "2999-01-01"}, InvalidCustomerData),
        ({"birthdate": "17/05/1990"}, InvalidCustomerData),
    ],
)
async def test_signup_validates_input(customer_service, directory, kwargs, error):
    args = {"phone_raw": PHONE, "name": "Rahim Uddin", "email_raw": "rahim@example.com"}
    args.update(kwargs)
    with pytest.raises(error):
        await customer_service.signup(**args)
    directory.create_customer.assert_not_called()
