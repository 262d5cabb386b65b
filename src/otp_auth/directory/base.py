"""Customer directory — abstract lookup/creation interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class Customer:
    """Lightweight value object returned by directory lookups."""

    customer_id: str
    name: str
    email: str
    phone: str
    accepts_marketing: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class LookupResult:
    exists: bool
    customer: Customer | None = None

    @classmethod
    def found(cls, customer: Customer) -> LookupResult:
        return cls(exists=True, customer=customer)

    @classmethod
    def missing(cls) -> LookupResult:
        return cls(exists=False)


@dataclass
class NewCustomer:
    """Data needed to register a customer in the directory."""

    name: str
    email: str
    phone: str
    password: str
    gender: str | None = None
    birthdate: str | None = None
    accepts_marketing: bool = False


class Directory(ABC):
    """Source of truth for customer accounts.

    Implementations raise ``DirectoryUnavailable`` when the backend
    cannot answer; "no such customer" is reported as
    ``LookupResult(exists=False)`` and never as an error.
    """

    @abstractmethod
    async def lookup_by_phone(self, phone: str) -> LookupResult:
        """Find a customer by canonical phone number."""

    @abstractmethod
    async def lookup_by_email(self, email: str) -> LookupResult:
        """Find a customer by lowercased e-mail address."""

    @abstractmethod
    async def create_customer(self, data: NewCustomer) -> Customer:
        """Register a new customer and return the stored record."""

    async def close(self) -> None:
        """Release any held resources."""
