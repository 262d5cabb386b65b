"""Per-key admission control backed by the shared token store.

Counters are fixed windows keyed by ``(operation class, key, window
index)`` and live in the token store, so limits hold across every
service instance.  This gate is independent of the OTP resend-wait
rule; both apply.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum

from otp_auth.config import Settings
from otp_auth.errors import RateLimited
from otp_auth.storage.token_store import TokenStore, rate_limit_key

logger = logging.getLogger(__name__)


class OperationClass(str, Enum):
    SEND = "otp_send"
    VERIFY = "otp_verify"
    RESEND = "otp_resend"
    SIGNUP = "signup"
    LOGIN_LINK = "login_link"
    GENERAL = "general"


@dataclass(frozen=True)
class RateRule:
    limit: int
    window_seconds: int


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: int = 0


def rules_from_settings(settings: Settings) -> dict[OperationClass, RateRule]:
    return {
        OperationClass.SEND: RateRule(settings.otp_send_limit, settings.otp_send_window_seconds),
        OperationClass.VERIFY: RateRule(
            settings.otp_verify_limit, settings.otp_verify_window_seconds
        ),
        OperationClass.RESEND: RateRule(
            settings.otp_resend_limit, settings.otp_resend_window_seconds
        ),
        OperationClass.SIGNUP: RateRule(settings.signup_limit, settings.signup_window_seconds),
        OperationClass.LOGIN_LINK: RateRule(
            settings.login_link_limit, settings.login_link_window_seconds
        ),
        OperationClass.GENERAL: RateRule(settings.general_limit, settings.general_window_seconds),
    }


class RateGate:
    """Fixed-window counter per ``(operation class, phone-or-IP)``."""

    def __init__(
        self,
        store: TokenStore,
        rules: Mapping[OperationClass, RateRule],
        *,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._rules = dict(rules)
        self._enabled = enabled
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return self._enabled

    def rule_for(self, operation: OperationClass) -> RateRule:
        return self._rules.get(operation) or self._rules[OperationClass.GENERAL]

    async def admit(self, operation: OperationClass, key: str) -> RateDecision:
        """Count one request and decide whether it may proceed."""
        rule = self.rule_for(operation)
        if not self._enabled:
            return RateDecision(True, rule.limit, rule.limit)

        now = self._clock()
        window_index = int(now // rule.window_seconds)
        window_end = (window_index + 1) * rule.window_seconds
        count = await self._store.increment(
            rate_limit_key(operation.value, key, window_index), rule.window_seconds
        )

        if count > rule.limit:
            retry_after = max(1, math.ceil(window_end - now))
            logger.warning(
                "Rate limit hit for %s (%d/%d), retry in %ss",
                operation.value, count, rule.limit, retry_after,
            )
            return RateDecision(False, rule.limit, 0, retry_after)
        return RateDecision(True, rule.limit, rule.limit - count)

    async def enforce(self, operation: OperationClass, key: str) -> RateDecision:
        """Like :meth:`admit` but raises ``RateLimited`` when denied."""
        decision = await self.admit(operation, key)
        if not decision.allowed:
            raise RateLimited(operation.value, decision.retry_after_seconds)
        return decision
