"""SQLAlchemy model for the local customer directory."""

from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


class CustomerAccount(Base):
    """A storefront customer known to the local directory.

    Phone numbers are stored in canonical ``+880…`` form and e-mail
    addresses lowercased, so lookups are exact matches.
    """

    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str] = mapped_column(String(16), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(254), nullable=False, unique=True)
    password_hash: Mapped[str | None] = mapped_column(String(256), nullable=True)
    gender: Mapped[str | None] = mapped_column(String(16), nullable=True)
    birthdate: Mapped[str | None] = mapped_column(String(10), nullable=True)
    accepts_marketing: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("ix_customers_phone", "phone"),
        Index("ix_customers_email", "email"),
    )

    def __repr__(self) -> str:
        return f"<CustomerAccount id={self.id} name={self.name!r} phone={self.phone!r}>"
