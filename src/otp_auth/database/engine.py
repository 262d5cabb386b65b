"""Database engine and async session factory for the local directory."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from otp_auth.config import settings
from otp_auth.models.customer import Base

engine = create_async_engine(settings.database_url, echo=settings.debug)

async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


def build_session_factory(
    database_url: str, echo: bool = False
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Create a dedicated engine + session factory (tests, alternate DBs)."""
    own_engine = create_async_engine(database_url, echo=echo)
    return own_engine, async_sessionmaker(own_engine, expire_on_commit=False)


async def init_db(target: AsyncEngine | None = None) -> None:
    """Create all tables that don't yet exist."""
    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

