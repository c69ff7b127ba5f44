"""Tests for capture_with_retry: backoff, timeouts and terminal declines."""

import pytest
from payments.gateway.fake_adapter import FakeGateway
from payments.gateway.port import Cardholder, ChargeRequest, PaymentErrorKind, PaymentStatus
from payments.payment.capture import RetryPolicy, RetryState, capture_with_retry


@pytest.fixture()
def gateway():
    return FakeGateway()


@pytest.fixture()
def charge():
    return ChargeRequest(
        token="prime-1",
        amount=260.0,
        idempotency_key="chk_retry",
        details="Item",
        cardholder=Cardholder(name="Luke", phone_number="0987654321", email="luke@example.com"),
    )


@pytest.fixture()
def sleeps():
    return []


def _capture(gateway, charge, sleeps, **policy):
    state = RetryState(policy=RetryPolicy(**policy))
    return capture_with_retry(gateway, charge, state, sleep=sleeps.append), state


class TestRetryPolicy:
    def test_exponential_backoff_is_capped(self):
        policy = RetryPolicy(base_delay=0.5, max_delay=4.0)
        assert [policy.delay_for(n) for n in range(1, 6)] == [0.5, 1.0, 2.0, 4.0, 4.0]

    def test_exhausted(self):
        state = RetryState(policy=RetryPolicy(max_attempts=2))
        assert not state.exhausted
        state.attempts = 2
        assert state.exhausted

    def test_at_least_one_attempt(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


class TestCaptureWithRetry:
    def test_first_attempt_succeeds(self, gateway, charge, sleeps):
        result, state = _capture(gateway, charge, sleeps)
        assert result.ok
        assert state.attempts == 1
        assert sleeps == []

    def test_decline_is_not_retried(self, gateway, charge, sleeps):
        gateway.configure(should_succeed=False)
        result, state = _capture(gateway, charge, sleeps)

        assert result.error.kind is PaymentErrorKind.DECLINED
        assert state.attempts == 1
        assert sleeps == []

    def test_unavailable_is_retried_with_backoff(self, gateway, charge, sleeps):
        gateway.fail_next(PaymentErrorKind.UNAVAILABLE, times=2)
        result, state = _capture(gateway, charge, sleeps, base_delay=0.1, max_delay=1.0)

        assert result.ok
        assert state.attempts == 3
        assert sleeps == [0.1, 0.2]
        assert gateway.capture_count == 1

    def test_attempts_run_out(self, gateway, charge, sleeps):
        gateway.fail_next(PaymentErrorKind.UNAVAILABLE, times=3)
        result, state = _capture(gateway, charge, sleeps, max_attempts=3)

        assert result.error.kind is PaymentErrorKind.UNRESOLVED
        assert "3 attempts" in result.error.message
        assert result.error.message.endswith("Scripted unavailable")
        assert len(state.errors) == 3
        assert len(sleeps) == 2

    def test_timeout_with_capture_found_by_lookup(self, gateway, charge, sleeps):
        gateway.fail_next(PaymentErrorKind.TIMEOUT, charged=True)
        result, state = _capture(gateway, charge, sleeps)

        assert result.ok
        assert result.value.status is PaymentStatus.CAPTURED
        assert state.attempts == 1
        assert state.lookups == 1
        assert gateway.capture_count == 1

    def test_timeout_without_capture_retries(self, gateway, charge, sleeps):
        gateway.fail_next(PaymentErrorKind.TIMEOUT)
        result, state = _capture(gateway, charge, sleeps)

        assert result.ok
        assert state.attempts == 2
        assert state.lookups == 1

    def test_timeout_with_failed_lookup_is_unresolved(self, gateway, charge, sleeps):
        gateway.fail_next(PaymentErrorKind.TIMEOUT)
        gateway.lookup_fails = True
        result, state = _capture(gateway, charge, sleeps)

        assert result.error.kind is PaymentErrorKind.UNRESOLVED
        assert state.attempts == 1
        assert sleeps == []

    def test_timeouts_without_capture_run_out(self, gateway, charge, sleeps):
        gateway.fail_next(PaymentErrorKind.TIMEOUT, times=2)
        result, state = _capture(gateway, charge, sleeps, max_attempts=2)

        assert result.error.kind is PaymentErrorKind.UNRESOLVED
        assert result.error.message.endswith("Scripted timeout")
        assert state.lookups == 2
        assert gateway.capture_count == 0

    def test_same_key_on_every_attempt(self, gateway, charge, sleeps):
        gateway.fail_next(PaymentErrorKind.UNAVAILABLE, times=2)
        _capture(gateway, charge, sleeps)

        keys = {call["idempotency_key"] for call in gateway.calls if call["method"] == "capture"}
        assert keys == {"chk_retry"}
