"""Delivery channel interfaces for codes (SMS) and login links (email)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class DeliveryResult:
    """Outcome of one dispatch.  Providers never retry implicitly."""

    success: bool
    reference: str | None = None
    error: str | None = None

    @classmethod
    def ok(cls, reference: str | None = None) -> DeliveryResult:
        return cls(success=True, reference=reference)

    @classmethod
    def failed(cls, error: str) -> DeliveryResult:
        return cls(success=False, error=error)


class SmsNotifier(ABC):
    """Sends a text message to a canonical phone number."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name (used in logs and status output)."""

    @abstractmethod
    async def send(self, phone: str, message: str) -> DeliveryResult:
        """Dispatch *message* to *phone*.

        Parameters
        ----------
        phone:
            Canonical ``+880…`` number.
        message:
            Final rendered SMS body.
        """

    async def close(self) -> None:
        """Release any held resources."""


class EmailNotifier(ABC):
    """Sends a multipart e-mail."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    async def send(
        self, to_email: str, subject: str, html_body: str, text_body: str
    ) -> DeliveryResult:
        """Dispatch one message; the result's ``reference`` is the message id."""

    def status(self) -> dict[str, Any]:
        return {"provider": self.name, "enabled": True}
