"""Typed error taxonomy for the OTP and login-link lifecycles.

Every error carries a stable machine-readable ``code`` so the HTTP
layer can map it without string matching.  The core raises these and
never deals in status codes.
"""

from __future__ import annotations

from typing import Any


class OTPAuthError(Exception):
    """Base class for every error raised by the service core."""

    code = "OTP_AUTH_ERROR"
    default_message = "Authentication error"
    security_event = False

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.message = message or self.default_message
        self.details: dict[str, Any] = details
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} code={self.code} message={self.message!r}>"


# ── Input errors ─────────────────────────────────────────

class InputError(OTPAuthError):
    """Malformed input supplied by the caller."""

    code = "INVALID_INPUT"


class InvalidPhoneFormat(InputError):
    code = "INVALID_PHONE_FORMAT"
    default_message = "Invalid phone number format"

    def __init__(self, reason: str) -> None:
        super().__init__(reason, reason=reason)
        self.reason = reason


class InvalidCodeFormat(InputError):
    code = "INVALID_OTP_FORMAT"
    default_message = "OTP must be a numeric code of the expected length"


class InvalidEmail(InputError):
    code = "INVALID_EMAIL"
    default_message = "Please provide a valid email address"


class InvalidToken(InputError):
    code = "INVALID_TOKEN"
    default_message = "Invalid or malformed login token"


class InvalidCustomerData(InputError):
    code = "INVALID_CUSTOMER_DATA"
    default_message = "Invalid customer data"


# ── OTP verification ─────────────────────────────────────

class OTPVerificationError(OTPAuthError):
    code = "OTP_VERIFICATION_FAILED"


class OTPNotFound(OTPVerificationError):
    code = "OTP_NOT_FOUND"
    default_message = "OTP not found or expired. Please request a new one."


class OTPExpired(OTPVerificationError):
    code = "OTP_EXPIRED"
    default_message = "OTP has expired. Please request a new one."


class IdentifierMismatch(OTPVerificationError):
    code = "PHONE_MISMATCH"
    default_message = "Phone number mismatch"


class InvalidCode(OTPVerificationError):
    code = "INVALID_OTP"
    default_message = "Invalid OTP. Please check and try again."


class IntegrityFailure(OTPVerificationError):
    code = "OTP_INTEGRITY_FAILED"
    default_message = "OTP verification failed"
    security_event = True


class ResendTooEarly(OTPAuthError):
    code = "RESEND_TOO_EARLY"
    default_message = "Please wait before requesting a new OTP"

    def __init__(self, remaining_seconds: int, expires_in: int | None = None) -> None:
        super().__init__(
            f"Please wait {remaining_seconds} seconds before requesting a new OTP",
            remaining_seconds=remaining_seconds,
            expires_in=expires_in,
        )
        self.remaining_seconds = remaining_seconds
        self.expires_in = expires_in


# ── Login links ──────────────────────────────────────────

class EmailNotFound(OTPAuthError):
    code = "EMAIL_NOT_FOUND"
    default_message = "Invalid Email. Please sign up."


class LoginTokenError(OTPAuthError):
    code = "LOGIN_TOKEN_ERROR"


class TokenNotFound(LoginTokenError):
    code = "TOKEN_NOT_FOUND"
    default_message = "Login link not found or has expired"


class TokenAlreadyUsed(LoginTokenError):
    code = "TOKEN_ALREADY_USED"
    default_message = "Login link has already been used"


class TokenExpired(LoginTokenError):
    code = "TOKEN_EXPIRED"
    default_message = "Login link has expired"


class TokenIntegrityFailed(LoginTokenError):
    code = "TOKEN_INTEGRITY_FAILED"
    default_message = "Login link verification failed"
    security_event = True


# ── Customers ────────────────────────────────────────────

class CustomerAlreadyExists(OTPAuthError):
    code = "CUSTOMER_EXISTS"
    default_message = "A customer with these details already exists"

    def __init__(self, field: str) -> None:
        super().__init__(
            f"A customer with this {field.replace('_', ' ')} already exists",
            field=field,
        )
        self.code = f"CUSTOMER_EXISTS_{field.upper()}"
        self.field = field


# ── Admission control ────────────────────────────────────

class RateLimited(OTPAuthError):
    code = "RATE_LIMIT_EXCEEDED"
    default_message = "Too many requests. Please try again later."

    def __init__(self, operation: str, retry_after_seconds: int) -> None:
        super().__init__(
            operation=operation, retry_after_seconds=retry_after_seconds
        )
        self.operation = operation
        self.retry_after_seconds = retry_after_seconds


# ── Dependencies ─────────────────────────────────────────

class DependencyError(OTPAuthError):
    """A collaborator (store, directory, delivery provider) failed."""

    code = "DEPENDENCY_ERROR"


class DeliveryError(DependencyError):
    code = "DELIVERY_FAILED"
    default_message = "Failed to deliver the message. Please try again."


class DirectoryUnavailable(DependencyError):
    code = "DIRECTORY_UNAVAILABLE"
    default_message = "Customer directory is unavailable"


class StoreUnavailable(DependencyError):
    code = "STORE_UNAVAILABLE"
    default_message = "Token store is unavailable"
