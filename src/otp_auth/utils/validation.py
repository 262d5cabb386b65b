"""Input validators for e-mail addresses, OTP codes and customer names."""

from __future__ import annotations

import hashlib
import re
from datetime import date

from otp_auth.errors import InvalidCodeFormat, InvalidCustomerData, InvalidEmail

MAX_EMAIL_LENGTH = 254

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_NAME = re.compile(r"^[A-Za-z\s]{2,100}$")


def normalize_email(raw: object) -> str:
    """Trim, lowercase and validate an e-mail address."""
    if not isinstance(raw, str):
        raise InvalidEmail()
    email = raw.strip().lower()
    if not email or len(email) > MAX_EMAIL_LENGTH or not _EMAIL.match(email):
        raise InvalidEmail()
    return email


def check_code_format(code: object, length: int) -> str:
    if not isinstance(code, str):
        raise InvalidCodeFormat()
    code = code.strip()
    if len(code) != length or not code.isascii() or not code.isdigit():
        raise InvalidCodeFormat(f"OTP must be exactly {length} digits")
    return code


def normalize_name(raw: object) -> str:
    if not isinstance(raw, str):
        raise InvalidCustomerData("Name is required")
    name = " ".join(raw.split())
    if not _NAME.match(name):
        raise InvalidCustomerData(
            "Name must be 2-100 characters and contain only letters and spaces"
        )
    return name


def mask_email(email: str) -> str:
    """``alice@example.com`` → ``a***e@example.com``."""
    local, _, domain = (email or "").partition("@")
    if not domain:
        return "***"
    if len(local) <= 2:
        return f"{local[:1]}***@{domain}"
    return f"{local[0]}***{local[-1]}@{domain}"


def fingerprint(secret_value: str) -> str:
    """Short, non-reversible identifier for a token in log lines."""
    return hashlib.sha256(secret_value.encode()).hexdigest()[:12]


GENDERS = ("male", "female", "other")


def normalize_gender(raw: object) -> str | None:
    if raw is None or raw == "":
        return None
    if not isinstance(raw, str) or raw.strip().lower() not in GENDERS:
        raise InvalidCustomerData("Gender must be either male, female, or other")
    return raw.strip().lower()


def normalize_birthdate(raw: object, today: date | None = None) -> str | None:
    """Accept ``YYYY-MM-DD`` dates between 1900-01-01 and today."""
    if raw is None or raw == "":
        return None
    try:
        value = raw if isinstance(raw, date) else date.fromisoformat(str(raw))
    except ValueError as exc:
        raise InvalidCustomerData("Please provide a valid birthdate") from exc
    if value > (today or date.today()):
        raise InvalidCustomerData("Birthdate cannot be in the future")
    if value < date(1900, 1, 1):
        raise InvalidCustomerData("Please provide a valid birthdate")
    return value.isoformat()
