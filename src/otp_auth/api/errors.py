"""Exception handlers — map the core error taxonomy onto HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from otp_auth.api.schemas import envelope
from otp_auth.errors import (
    CustomerAlreadyExists,
    DependencyError,
    EmailNotFound,
    InputError,
    LoginTokenError,
    OTPAuthError,
    OTPVerificationError,
    RateLimited,
    ResendTooEarly,
)

logger = logging.getLogger(__name__)

# Most specific first.
_STATUS_MAP: tuple[tuple[type[OTPAuthError], int], ...] = (
    (RateLimited, 429),
    (ResendTooEarly, 429),
    (InputError, 400),
    (OTPVerificationError, 400),
    (LoginTokenError, 401),
    (EmailNotFound, 401),
    (CustomerAlreadyExists, 409),
    (DependencyError, 503),
)


def status_for(exc: OTPAuthError) -> int:
    for error_type, status_code in _STATUS_MAP:
        if isinstance(exc, error_type):
            return status_code
    return 500


def _retry_after(exc: OTPAuthError) -> int | None:
    if isinstance(exc, RateLimited):
        return exc.retry_after_seconds
    if isinstance(exc, ResendTooEarly):
        return exc.remaining_seconds
    return None


async def handle_service_error(request: Request, exc: OTPAuthError) -> JSONResponse:
    status_code = status_for(exc)
    if exc.security_event or isinstance(exc, DependencyError):
        # Details stay in the logs.
        body = envelope(exc.message, success=False, error=exc.code)
    else:
        body = envelope(exc.message, exc.details or None, success=False, error=exc.code)

    headers = {}
    retry_after = _retry_after(exc)
    if retry_after is not None:
        headers["Retry-After"] = str(retry_after)

    log = logger.warning if status_code >= 500 else logger.info
    log("%s %s → %s %s", request.method, request.url.path, status_code, exc.code)
    return JSONResponse(body, status_code=status_code, headers=headers)


async def handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {"field": ".".join(str(p) for p in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        envelope("Validation failed", success=False, error="VALIDATION_ERROR", errors=errors),
        status_code=400,
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    extra = {"detail": str(exc)} if getattr(request.app.state, "debug", False) else {}
    return JSONResponse(
        envelope("Internal server error", success=False, error="INTERNAL_ERROR", **extra),
        status_code=500,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OTPAuthError, handle_service_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
