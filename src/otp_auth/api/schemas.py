"""Request models and the response envelope for the HTTP surface."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _Request(BaseModel):
    # camelCase aliases keep older clients working.
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class PhoneRequest(_Request):
    phone_number: str = Field(..., alias="phoneNumber", max_length=32)


class OTPVerifyRequest(_Request):
    phone_number: str = Field(..., alias="phoneNumber", max_length=32)
    otp: str = Field(..., max_length=16)


class LoginLinkRequest(_Request):
    email: str = Field(..., max_length=320)


class SignupRequest(_Request):
    phone_number: str = Field(..., alias="phoneNumber", max_length=32)
    name: str = Field(..., max_length=200)
    email: str = Field(..., max_length=320)
    gender: str | None = None
    birthdate: str | None = None
    accepts_marketing: bool = Field(False, alias="acceptsMarketing")


def envelope(
    message: str, data: Any = None, *, success: bool = True, **extra: Any
) -> dict[str, Any]:
    """``{"success", "message", "data", "timestamp"}`` plus any extra keys."""
    body: dict[str, Any] = {
        "success": success,
        "message": message,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body
