"""Customer signup — registers a customer and caches a credential snapshot."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from otp_auth.directory.base import Customer, Directory, NewCustomer
from otp_auth.errors import CustomerAlreadyExists
from otp_auth.models.records import CustomerSnapshot
from otp_auth.security.passwords import generate_password, hash_password
from otp_auth.storage.token_store import TokenStore, customer_key
from otp_auth.utils.phone import mask_phone, normalize
from otp_auth.utils.validation import (
    normalize_birthdate,
    normalize_email,
    normalize_gender,
    normalize_name,
)

logger = logging.getLogger(__name__)


@dataclass
class SignupResult:
    customer: Customer
    temporary_password: str
    snapshot: CustomerSnapshot


class CustomerService:
    """Creates customers in the directory and stores their snapshot.

    The snapshot is what OTP and login-link verification hand back to
    the caller for cross-channel session setup.
    """

    def __init__(
        self,
        store: TokenStore,
        directory: Directory,
        *,
        snapshot_ttl_seconds: int | None = None,
        password_length: int = 12,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._directory = directory
        self._snapshot_ttl = snapshot_ttl_seconds
        self._password_length = password_length
        self._clock = clock

    async def signup(
        self,
        phone_raw: str,
        name: str,
        email_raw: str,
        gender: str | None = None,
        birthdate: str | None = None,
        accepts_marketing: bool = False,
    ) -> SignupResult:
        """Register a new customer.

        Raises ``CustomerAlreadyExists`` when the phone or e-mail is
        taken; directory errors propagate as ``DirectoryUnavailable``.
        """
        phone = normalize(phone_raw)
        email = normalize_email(email_raw)
        name = normalize_name(name)
        gender = normalize_gender(gender)
        birthdate = normalize_birthdate(birthdate)

        if (await self._directory.lookup_by_phone(phone)).exists:
            raise CustomerAlreadyExists("phone")
        if (await self._directory.lookup_by_email(email)).exists:
            raise CustomerAlreadyExists("email")

        password = generate_password(self._password_length)
        customer = await self._directory.create_customer(
            NewCustomer(
                name=name,
                email=email,
                phone=phone,
                password=password,
                gender=gender,
                birthdate=birthdate,
                accepts_marketing=accepts_marketing,
            )
        )

        snapshot = CustomerSnapshot(
            customer_id=customer.customer_id,
            phone_number=phone,
            email=email,
            name=name,
            hashed_password=hash_password(password),
            temporary_password=password,
            created_at=int(self._clock() * 1000),
            gender=gender,
            birthdate=birthdate,
            accepts_marketing=accepts_marketing,
        )
        for identifier in (phone, email):
            await self._store.set(
                customer_key(identifier), snapshot.to_dict(), ttl_seconds=self._snapshot_ttl
            )

        logger.info("Customer %s signed up (%s)", customer.customer_id, mask_phone(phone))
        return SignupResult(customer=customer, temporary_password=password, snapshot=snapshot)


async def load_credentials(store: TokenStore, phone: str) -> dict[str, Any] | None:
    """Session credentials from the snapshot stored for *phone*, if any."""
    stored = await store.get(customer_key(phone))
    if stored is None:
        return None
    try:
        snapshot = CustomerSnapshot.from_dict(stored)
    except (KeyError, TypeError, ValueError):
        logger.warning("Ignoring malformed customer snapshot for %s", mask_phone(phone))
        return None
    return snapshot.credentials()
