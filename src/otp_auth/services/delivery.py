"""Bounded-time dispatch shared by the OTP and login-link lifecycles."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable

from otp_auth.errors import DeliveryError
from otp_auth.notifiers.base import DeliveryResult

logger = logging.getLogger(__name__)


async def dispatch(
    send: Awaitable[DeliveryResult], timeout: float, channel: str
) -> DeliveryResult:
    """Await *send* for at most *timeout* seconds.

    Raises ``DeliveryError`` on timeout, on a reported failure, or when
    the notifier itself raises, so a message that did not go out is
    never mistaken for success.
    """
    try:
        result = await asyncio.wait_for(send, timeout=timeout)
    except TimeoutError as exc:
        logger.error("%s dispatch timed out after %.1fs", channel, timeout)
        raise DeliveryError(f"{channel} delivery timed out", channel=channel) from exc
    except Exception as exc:
        logger.exception("%s notifier raised during dispatch", channel)
        raise DeliveryError(channel=channel, provider_error=str(exc)) from exc

    if not result.success:
        logger.error("%s dispatch failed: %s", channel, result.error)
        raise DeliveryError(channel=channel, provider_error=result.error)
    return result
