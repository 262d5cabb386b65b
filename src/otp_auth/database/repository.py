"""Customer repository — data access layer for the local directory."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from otp_auth.models.customer import CustomerAccount


class CustomerRepository:
    """Encapsulates all database queries related to customers."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_phone(self, phone: str) -> CustomerAccount | None:
        """Look up an active customer by phone number.

        The phone is expected in canonical form (e.g. ``+8801712345678``).
        """
        stmt = select(CustomerAccount).where(
            CustomerAccount.phone == phone, CustomerAccount.is_active.is_(True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_email(self, email: str) -> CustomerAccount | None:
        """Look up an active customer by lowercased e-mail address."""
        stmt = select(CustomerAccount).where(
            CustomerAccount.email == email, CustomerAccount.is_active.is_(True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, account: CustomerAccount) -> CustomerAccount:
        self._session.add(account)
        await self._session.flush()
        await self._session.refresh(account)
        return account
