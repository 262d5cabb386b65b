"""Bangladeshi mobile number parsing, validation and display helpers.

Accepted input forms (separators such as spaces, dashes, dots and
parentheses are ignored)::

    +8801XXXXXXXXX   international
    8801XXXXXXXXX    country code without ``+``
    01XXXXXXXXX      national
    1XXXXXXXXX       bare subscriber number

The canonical form is always ``+880`` followed by ten digits starting
with ``1``.  Every function here is pure.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from otp_auth.errors import InvalidPhoneFormat

COUNTRY_CODE = "880"
INTL_PREFIX = "+880"
NATIONAL_PREFIX = "01"
CANONICAL_LENGTH = 14  # +880XXXXXXXXXX
COUNTRY_CODE_LENGTH = 13  # 880XXXXXXXXXX
NATIONAL_LENGTH = 11  # 01XXXXXXXXX
SUBSCRIBER_LENGTH = 10
MAX_INPUT_LENGTH = 20

_CLEANUP = re.compile(r"[^\d+]")
_SUBSCRIBER = re.compile(r"^1\d{9}$")

_OPERATOR_PREFIXES: dict[str, str] = {
    "017": "grameenphone",
    "013": "grameenphone",
    "018": "robi",
    "019": "banglalink",
    "014": "banglalink",
    "016": "airtel",
    "015": "teletalk",
}


@dataclass(frozen=True)
class PhoneValidation:
    """Outcome of :func:`validate` — never raises, always explains."""

    is_valid: bool
    message: str
    normalized: str | None = None
    operator: str | None = None


def validate(raw: object) -> PhoneValidation:
    """Validate *raw* and return a descriptive result."""
    if not isinstance(raw, str) or not raw:
        return PhoneValidation(False, "Phone number is required and must be a string")

    trimmed = raw.strip()
    if not trimmed:
        return PhoneValidation(False, "Phone number cannot be empty")
    if len(trimmed) > MAX_INPUT_LENGTH:
        return PhoneValidation(False, "Phone number is too long")

    cleaned = _CLEANUP.sub("", trimmed)
    if not any(ch.isdigit() for ch in cleaned):
        return PhoneValidation(False, "Phone number contains no valid digits")

    candidate = _to_international(cleaned)
    if candidate is None:
        return PhoneValidation(False, "Invalid phone number format")

    if len(candidate) != CANONICAL_LENGTH:
        return PhoneValidation(False, "Invalid phone number length")
    subscriber = candidate[len(INTL_PREFIX):]
    if not subscriber.startswith("1"):
        return PhoneValidation(False, "Mobile number must start with 1")
    if not _SUBSCRIBER.match(subscriber):
        return PhoneValidation(False, "Mobile number must be exactly 10 digits")

    return PhoneValidation(
        True,
        "Valid Bangladeshi mobile number",
        normalized=candidate,
        operator=detect_operator(candidate),
    )


def normalize(raw: object) -> str:
    """Return the canonical ``+880…`` form of *raw*.

    Raises
    ------
    InvalidPhoneFormat
        With the specific reason the input was rejected.
    """
    result = validate(raw)
    if not result.is_valid:
        raise InvalidPhoneFormat(result.message)
    return result.normalized  # type: ignore[return-value]


def _to_international(cleaned: str) -> str | None:
    number = cleaned[1:] if cleaned.startswith("+") else cleaned

    if number.startswith(COUNTRY_CODE) and len(number) == COUNTRY_CODE_LENGTH:
        return "+" + number
    if number.startswith(NATIONAL_PREFIX) and len(number) == NATIONAL_LENGTH:
        return INTL_PREFIX + number[1:]
    if len(number) == SUBSCRIBER_LENGTH and number.startswith("1"):
        return INTL_PREFIX + number
    return None


def detect_operator(canonical: str) -> str:
    """Guess the mobile operator from the number prefix."""
    if not canonical:
        return "unknown"
    national = canonical.replace(INTL_PREFIX, "0", 1)
    return _OPERATOR_PREFIXES.get(national[:3], "unknown")


def format_for_display(canonical: str) -> str:
    """``+8801712345678`` → ``+880 1712 345 678``."""
    if not canonical or len(canonical) != CANONICAL_LENGTH:
        return canonical or ""
    return f"{canonical[:4]} {canonical[4:8]} {canonical[8:11]} {canonical[11:]}"


def to_msisdn(canonical: str) -> str:
    """Strip the leading ``+`` for providers that expect ``880…``."""
    return canonical.lstrip("+")


def mask_phone(phone: str) -> str:
    """Mask the middle digits for logging: ``+880171****678``."""
    if not phone or len(phone) < 8:
        return "****"
    return phone[:-7] + "****" + phone[-3:]
