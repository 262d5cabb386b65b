"""Tests for the store-backed rate gate."""

import pytest

from otp_auth.errors import RateLimited
from otp_auth.services.rate_gate import (
    OperationClass,
    RateGate,
    RateRule,
    rules_from_settings,
)

RULES = {
    OperationClass.SEND: RateRule(limit=3, window_seconds=900),
    OperationClass.VERIFY: RateRule(limit=5, window_seconds=600),
    OperationClass.GENERAL: RateRule(limit=100, window_seconds=900),
}


@pytest.fixture
def gate(store, clock):
    return RateGate(store, RULES, clock=clock)


@pytest.mark.asyncio
async def test_admits_up_to_limit_then_denies(gate):
    decisions = [await gate.admit(OperationClass.SEND, "+8801712345678") for _ in range(4)]
    assert [d.allowed for d in decisions] == [True, True, True, False]
    assert [d.remaining for d in decisions[:3]] == [2, 1, 0]
    assert decisions[3].retry_after_seconds > 0


@pytest.mark.asyncio
async def test_keys_and_classes_are_independent(gate):
    for _ in range(3):
        await gate.admit(OperationClass.SEND, "+8801712345678")
    assert (await gate.admit(OperationClass.SEND, "+8801812345678")).allowed
    assert (await gate.admit(OperationClass.VERIFY, "+8801712345678")).allowed


@pytest.mark.asyncio
async def test_window_resets(gate, clock):
    for _ in range(3):
        await gate.admit(OperationClass.SEND, "k")
    denied = await gate.admit(OperationClass.SEND, "k")
    assert not denied.allowed

    clock.advance(denied.retry_after_seconds)
    assert (await gate.admit(OperationClass.SEND, "k")).allowed


@pytest.mark.asyncio
async def test_retry_after_points_at_window_end(gate, clock):
    # Clock starts on a 900s boundary.
    clock.advance(100)
    for _ in range(3):
        await gate.admit(OperationClass.SEND, "k")
    assert (await gate.admit(OperationClass.SEND, "k")).retry_after_seconds == 800


@pytest.mark.asyncio
async def test_enforce_raises(gate):
    for _ in range(5):
        await gate.enforce(OperationClass.VERIFY, "k")
    with pytest.raises(RateLimited) as exc_info:
        await gate.enforce(OperationClass.VERIFY, "k")
    assert exc_info.value.operation == "otp_verify"
    assert exc_info.value.retry_after_seconds > 0


@pytest.mark.asyncio
async def test_unknown_class_falls_back_to_general(gate):
    decision = await gate.admit(OperationClass.SIGNUP, "1.2.3.4")
    assert decision.limit == 100


@pytest.mark.asyncio
async def test_disabled_gate_always_admits(store, clock):
    gate = RateGate(store, RULES, enabled=False, clock=clock)
    for _ in range(10):
        assert (await gate.admit(OperationClass.SEND, "k")).allowed


def test_rules_from_settings(settings):
    rules = rules_from_settings(settings)
    assert rules[OperationClass.SEND] == RateRule(3, 900)
    assert rules[OperationClass.VERIFY] == RateRule(5, 600)
    assert rules[OperationClass.RESEND] == RateRule(3, 120)
    assert rules[OperationClass.SIGNUP] == RateRule(5, 3600)
