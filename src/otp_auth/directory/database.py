"""Directory backed by the local SQL customer table."""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from otp_auth.database.repository import CustomerRepository
from otp_auth.directory.base import Customer, Directory, LookupResult, NewCustomer
from otp_auth.errors import CustomerAlreadyExists, DirectoryUnavailable
from otp_auth.models.customer import CustomerAccount
from otp_auth.security.passwords import hash_password

logger = logging.getLogger(__name__)


def _to_customer(account: CustomerAccount) -> Customer:
    return Customer(
        customer_id=str(account.id),
        name=account.name,
        email=account.email,
        phone=account.phone,
        accepts_marketing=account.accepts_marketing,
    )


class DatabaseDirectory(Directory):
    """Runs each call in its own session from *session_factory*."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def lookup_by_phone(self, phone: str) -> LookupResult:
        try:
            async with self._session_factory() as session:
                account = await CustomerRepository(session).find_by_phone(phone)
        except SQLAlchemyError as exc:
            logger.exception("Phone lookup failed: %s", exc)
            raise DirectoryUnavailable() from exc
        return LookupResult.found(_to_customer(account)) if account else LookupResult.missing()

    async def lookup_by_email(self, email: str) -> LookupResult:
        try:
            async with self._session_factory() as session:
                account = await CustomerRepository(session).find_by_email(email)
        except SQLAlchemyError as exc:
            logger.exception("Email lookup failed: %s", exc)
            raise DirectoryUnavailable() from exc
        return LookupResult.found(_to_customer(account)) if account else LookupResult.missing()

    async def create_customer(self, data: NewCustomer) -> Customer:
        account = CustomerAccount(
            name=data.name,
            phone=data.phone,
            email=data.email,
            password_hash=hash_password(data.password),
            gender=data.gender,
            birthdate=data.birthdate,
            accepts_marketing=data.accepts_marketing,
        )
        try:
            async with self._session_factory() as session:
                account = await CustomerRepository(session).create(account)
                await session.commit()
        except IntegrityError as exc:
            # Lost a race with a concurrent signup for the same phone/email.
            raise CustomerAlreadyExists("phone_or_email") from exc
        except SQLAlchemyError as exc:
            logger.exception("Customer creation failed: %s", exc)
            raise DirectoryUnavailable() from exc
        logger.info("Created customer %s in local directory", account.id)
        return _to_customer(account)
