"""Directory backed by an external customer API over HTTP.

Expected endpoints (relative to ``base_url``)::

    GET  /customers/lookup?phone=...   → 200 customer | 404
    GET  /customers/lookup?email=...   → 200 customer | 404
    POST /customers                    → 201 customer | 409 duplicate

Anything other than those outcomes is reported as
``DirectoryUnavailable`` so callers can tell "down" from "not found".
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from otp_auth.directory.base import Customer, Directory, LookupResult, NewCustomer
from otp_auth.errors import CustomerAlreadyExists, DirectoryUnavailable
from otp_auth.utils.phone import mask_phone
from otp_auth.utils.validation import mask_email

logger = logging.getLogger(__name__)


def _parse_customer(data: dict[str, Any]) -> Customer:
    return Customer(
        customer_id=str(data["customer_id"]),
        name=data.get("name", ""),
        email=data.get("email", ""),
        phone=data.get("phone", ""),
        accepts_marketing=bool(data.get("accepts_marketing", False)),
    )


class HttpDirectory(Directory):
    """Async HTTP wrapper around the external customer API."""

    def __init__(
        self,
        base_url: str,
        api_token: str = "",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {api_token}"} if api_token else {}
        self._timeout = timeout
        self._client = client

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self._base_url}{path}"
        try:
            if self._client is not None:
                return await self._client.request(
                    method, url, headers=self._headers, timeout=self._timeout, **kwargs
                )
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                return await client.request(method, url, headers=self._headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("Directory request %s %s failed: %s", method, path, exc)
            raise DirectoryUnavailable() from exc

    async def _lookup(self, params: dict[str, str], label: str) -> LookupResult:
        resp = await self._request("GET", "/customers/lookup", params=params)
        if resp.status_code == 200:
            try:
                return LookupResult.found(_parse_customer(resp.json()))
            except (ValueError, KeyError) as exc:
                logger.error("Malformed directory response for %s: %s", label, exc)
                raise DirectoryUnavailable() from exc
        if resp.status_code == 404:
            return LookupResult.missing()
        logger.error("Directory lookup for %s failed: %s %s", label, resp.status_code, resp.text)
        raise DirectoryUnavailable()

    # ── Lookups ──────────────────────────────────────────

    async def lookup_by_phone(self, phone: str) -> LookupResult:
        return await self._lookup({"phone": phone}, mask_phone(phone))

    async def lookup_by_email(self, email: str) -> LookupResult:
        return await self._lookup({"email": email}, mask_email(email))

    # ── Creation ─────────────────────────────────────────

    async def create_customer(self, data: NewCustomer) -> Customer:
        payload = {
            "name": data.name,
            "email": data.email,
            "phone": data.phone,
            "password": data.password,
            "gender": data.gender,
            "birthdate": data.birthdate,
            "accepts_marketing": data.accepts_marketing,
        }
        resp = await self._request("POST", "/customers", json=payload)
        if resp.status_code in (200, 201):
            try:
                return _parse_customer(resp.json())
            except (ValueError, KeyError) as exc:
                raise DirectoryUnavailable() from exc
        if resp.status_code == 409:
            raise CustomerAlreadyExists("phone_or_email")
        logger.error("Customer creation failed: %s %s", resp.status_code, resp.text)
        raise DirectoryUnavailable()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
