"""Seed script — populates the local directory with sample customers."""

import asyncio

from sqlalchemy.ext.asyncio import AsyncSession

from otp_auth.database.engine import async_session_factory, init_db
from otp_auth.models.customer import CustomerAccount
from otp_auth.security.passwords import hash_password

SAMPLE_CUSTOMERS = [
    CustomerAccount(
        name="Rahim Uddin",
        phone="+8801712345678",
        email="rahim@example.com",
        gender="male",
    ),
    CustomerAccount(
        name="Nusrat Jahan",
        phone="+8801812345678",
        email="nusrat@example.com",
        gender="female",
        accepts_marketing=True,
    ),
    CustomerAccount(
        name="Tanvir Ahmed",
        phone="+8801912345678",
        email="tanvir@example.com",
    ),
]


async def seed() -> None:
    """Insert sample customers into the database."""
    await init_db()
    async with async_session_factory() as session:
        session: AsyncSession
        for customer in SAMPLE_CUSTOMERS:
            customer.password_hash = hash_password("changeme123")
            session.add(customer)
        await session.commit()
    print(f"✅ Seeded {len(SAMPLE_CUSTOMERS)} customers into the database.")


if __name__ == "__main__":
    asyncio.run(seed())
