"""Value objects persisted in the token store.

All timestamps are epoch milliseconds.  ``to_dict`` / ``from_dict``
define the stored JSON shape; the store serializes these mappings
canonically so compare-and-* operations can match exact values.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class OTPRecord:
    """One outstanding code challenge for a phone number."""

    identifier: str
    code: str
    issued_at: int
    expires_at: int
    integrity_tag: str

    def is_expired(self, now_ms: int) -> bool:
        return now_ms > self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OTPRecord:
        return cls(
            identifier=str(data["identifier"]),
            code=str(data["code"]),
            issued_at=int(data["issued_at"]),
            expires_at=int(data["expires_at"]),
            integrity_tag=str(data["integrity_tag"]),
        )


@dataclass(frozen=True)
class LoginToken:
    """Stored state behind a login-link token.

    ``used`` flips from ``False`` to ``True`` exactly once.
    """

    email: str
    customer: dict[str, Any]
    created_at: int
    expires_at: int
    used: bool = False
    used_at: int | None = None

    def is_expired(self, now_ms: int) -> bool:
        return now_ms > self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LoginToken:
        return cls(
            email=str(data["email"]),
            customer=dict(data.get("customer") or {}),
            created_at=int(data["created_at"]),
            expires_at=int(data["expires_at"]),
            used=bool(data.get("used", False)),
            used_at=data.get("used_at"),
        )


@dataclass(frozen=True)
class CustomerSnapshot:
    """Credential snapshot written at signup under ``customer:<phone|email>``.

    Returned alongside a successful OTP or login-link verification so
    the caller can establish a session on the storefront side.
    """

    customer_id: str
    phone_number: str
    email: str
    name: str
    hashed_password: str
    temporary_password: str
    created_at: int
    gender: str | None = None
    birthdate: str | None = None
    accepts_marketing: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CustomerSnapshot:
        return cls(
            customer_id=str(data["customer_id"]),
            phone_number=str(data["phone_number"]),
            email=str(data["email"]),
            name=str(data.get("name", "")),
            hashed_password=str(data.get("hashed_password", "")),
            temporary_password=str(data.get("temporary_password", "")),
            created_at=int(data.get("created_at", 0)),
            gender=data.get("gender"),
            birthdate=data.get("birthdate"),
            accepts_marketing=bool(data.get("accepts_marketing", False)),
            extra=dict(data.get("extra") or {}),
        )

    def credentials(self) -> dict[str, Any]:
        """Fields handed back to the storefront after a verification."""
        return {
            "customerId": self.customer_id,
            "email": self.email,
            "name": self.name,
            "password": self.temporary_password,
        }
