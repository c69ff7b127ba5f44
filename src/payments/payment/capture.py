"""Payment capture with bounded retry and timeout reconciliation.

Rules for one logical checkout:

- The same idempotency key is sent on every attempt, so the processor can
  never hold two captures for one checkout.
- ``DECLINED`` is terminal and returned immediately.
- ``UNAVAILABLE`` means the request never reached the processor; the next
  attempt follows after an exponential backoff.
- ``TIMEOUT`` means the charge is unknown. The processor is queried with
  ``lookup`` before anything else happens: a capture found under the key is
  the result, no capture found allows another attempt, and a lookup that
  cannot answer stops the checkout as ``UNRESOLVED``.
- When the attempts run out the outcome is ``UNRESOLVED``.

Retry bookkeeping lives in a ``RetryState`` owned by the caller and passed
in explicitly.
"""

import time
from dataclasses import dataclass, field

import structlog

from payments.gateway.port import (
    ChargeRequest,
    PaymentError,
    PaymentErrorKind,
    PaymentGateway,
    PaymentRecord,
    PaymentStatus,
)
from shared.result import Err, Ok, Result

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 4.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, attempt: int) -> float:
        """Backoff before the attempt following ``attempt`` (1-based)."""
        return min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))


@dataclass
class RetryState:
    """Per-checkout retry bookkeeping."""

    policy: RetryPolicy = field(default_factory=RetryPolicy)
    attempts: int = 0
    lookups: int = 0
    errors: list[PaymentError] = field(default_factory=list)

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.policy.max_attempts


def capture_with_retry(
    gateway: PaymentGateway,
    charge: ChargeRequest,
    state: RetryState,
    sleep=time.sleep,
) -> Result[PaymentRecord, PaymentError]:
    while not state.exhausted:
        state.attempts += 1
        result = gateway.capture(charge)
        if result.ok:
            logger.info("Payment captured", attempt=state.attempts, transaction_id=result.value.transaction_id)
            return result

        error = result.error
        state.errors.append(error)
        logger.warning(
            "Capture attempt failed",
            attempt=state.attempts,
            kind=error.kind.value,
            message=error.message,
        )

        if error.kind is PaymentErrorKind.TIMEOUT:
            state.lookups += 1
            found = gateway.lookup(charge.idempotency_key)
            if not found.ok:
                return Err(
                    PaymentError(
                        kind=PaymentErrorKind.UNRESOLVED,
                        message=f"Capture timed out and status query failed: {found.error.message}",
                    )
                )
            if found.value is not None and found.value.status is PaymentStatus.CAPTURED:
                logger.info("Timed-out capture found on gateway", transaction_id=found.value.transaction_id)
                return Ok(found.value)

        if not error.retryable:
            return result

        if not state.exhausted:
            sleep(state.policy.delay_for(state.attempts))

    return Err(
        PaymentError(
            kind=PaymentErrorKind.UNRESOLVED,
            message=f"Payment could not be confirmed after {state.attempts} attempts: {state.errors[-1].message}",
        )
    )
