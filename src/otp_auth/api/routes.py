"""HTTP routes — thin adapters between requests and the lifecycles.

Every handler consults the rate gate first, then calls exactly one
service operation.  Errors propagate to the handlers in ``api.errors``.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request, status

from otp_auth.api.dependencies import ServiceContainer, get_container
from otp_auth.api.schemas import (
    LoginLinkRequest,
    OTPVerifyRequest,
    PhoneRequest,
    SignupRequest,
    envelope,
)
from otp_auth.services.rate_gate import OperationClass
from otp_auth.utils import phone as phone_utils

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def phone_or_ip(raw: str, request: Request) -> str:
    """Rate-limit key: the canonical phone if it parses, else the caller's IP."""
    return phone_utils.validate(raw).normalized or client_ip(request)


# ──────────────────────────────────────────────────────────────
# OTP
# ──────────────────────────────────────────────────────────────
@router.post("/otp/send", tags=["otp"])
async def send_otp(
    body: PhoneRequest,
    request: Request,
    services: ServiceContainer = Depends(get_container),
) -> dict:
    """Derive a code for the phone number and deliver it by SMS."""
    await services.rate_gate.enforce(
        OperationClass.SEND, phone_or_ip(body.phone_number, request)
    )
    result = await services.otp.issue(body.phone_number)
    data = {
        "phoneNumber": result.phone,
        "customerExists": result.customer_exists,
        "expiresIn": result.expires_in,
        "operator": phone_utils.detect_operator(result.phone),
    }
    if result.code is not None:
        data["otp"] = result.code
    return envelope("OTP sent successfully", data)


@router.post("/otp/verify", tags=["otp"])
async def verify_otp(
    body: OTPVerifyRequest,
    request: Request,
    services: ServiceContainer = Depends(get_container),
) -> dict:
    await services.rate_gate.enforce(
        OperationClass.VERIFY, phone_or_ip(body.phone_number, request)
    )
    result = await services.otp.verify(body.phone_number, body.otp)
    return envelope(
        "OTP verified successfully",
        {
            "phoneNumber": result.phone,
            "verified": result.verified,
            "customer": result.customer,
        },
    )


@router.post("/otp/resend", tags=["otp"])
async def resend_otp(
    body: PhoneRequest,
    request: Request,
    services: ServiceContainer = Depends(get_container),
) -> dict:
    await services.rate_gate.enforce(
        OperationClass.RESEND, phone_or_ip(body.phone_number, request)
    )
    result = await services.otp.resend(body.phone_number)
    data = {
        "phoneNumber": result.phone,
        "customerExists": result.customer_exists,
        "expiresIn": result.expires_in,
    }
    if result.code is not None:
        data["otp"] = result.code
    return envelope("OTP resent successfully", data)


@router.get("/otp/status", tags=["otp"])
async def otp_status(
    request: Request,
    phone_number: str = Query(..., alias="phoneNumber", max_length=32),
    services: ServiceContainer = Depends(get_container),
) -> dict:
    await services.rate_gate.enforce(OperationClass.GENERAL, client_ip(request))
    result = await services.otp.status(phone_number)
    return envelope(
        "OTP status retrieved successfully",
        {
            "phoneNumber": result.phone,
            "hasActiveOTP": result.active,
            "remainingSeconds": result.remaining_seconds,
            "resendAvailableIn": result.resend_available_in,
        },
    )


# ──────────────────────────────────────────────────────────────
# Login links
# ──────────────────────────────────────────────────────────────
@router.post("/auth/login-link/request", tags=["login-link"])
async def request_login_link(
    body: LoginLinkRequest,
    request: Request,
    services: ServiceContainer = Depends(get_container),
) -> dict:
    """E-mail a single-use login link to a known customer."""
    await services.rate_gate.enforce(OperationClass.LOGIN_LINK, client_ip(request))
    result = await services.login_links.request(body.email)
    data = {"email": result.email, "expiresIn": result.expires_in}
    if services.settings.expose_otp_in_response:
        data["loginUrl"] = result.login_url
    return envelope("Login link sent to your email", data)


@router.get("/auth/login-link/verify", tags=["login-link"])
async def verify_login_link(
    request: Request,
    token: str = Query(..., max_length=1024),
    services: ServiceContainer = Depends(get_container),
) -> dict:
    await services.rate_gate.enforce(OperationClass.GENERAL, client_ip(request))
    result = await services.login_links.verify(token)
    return envelope(
        "Login successful",
        {
            "email": result.email,
            "customer": result.customer,
            "credentials": result.credentials,
        },
    )


@router.get("/auth/login-link/status", tags=["login-link"])
async def login_link_status(
    services: ServiceContainer = Depends(get_container),
) -> dict:
    return envelope("Login link service status", services.login_links.status())


# ──────────────────────────────────────────────────────────────
# Customers
# ──────────────────────────────────────────────────────────────
@router.post("/customer/signup", tags=["customer"], status_code=status.HTTP_201_CREATED)
async def signup(
    body: SignupRequest,
    request: Request,
    services: ServiceContainer = Depends(get_container),
) -> dict:
    await services.rate_gate.enforce(OperationClass.SIGNUP, client_ip(request))
    result = await services.customers.signup(
        body.phone_number,
        body.name,
        body.email,
        gender=body.gender,
        birthdate=body.birthdate,
        accepts_marketing=body.accepts_marketing,
    )
    return envelope(
        "Customer account created successfully",
        {
            "customerId": result.customer.customer_id,
            "phoneNumber": result.snapshot.phone_number,
            "email": result.snapshot.email,
            "name": result.snapshot.name,
        },
    )
