"""Configurable fake payment gateway for development and testing.

This adapter simulates a processor without any external calls. Captures are
idempotent per key, like a real processor honouring an idempotency header:
capturing the same key twice returns the first record and charges nothing
new.

Failures can be scripted for the next capture attempts, including the
ambiguous case where the processor charged the card but the response timed
out.
"""

import threading
from collections import deque
from uuid import uuid4

from payments.gateway.port import (
    ChargeRequest,
    PaymentError,
    PaymentErrorKind,
    PaymentGateway,
    PaymentRecord,
    PaymentStatus,
)
from shared.result import Err, Ok


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.refunds_succeed: bool = True
        self.refund_failure_reason: str = "Refund rejected"
        self.lookup_fails: bool = False
        self.calls: list[dict] = []
        self.captures: dict[str, PaymentRecord] = {}
        self.refunds: list[dict] = []
        self._scripted: deque[tuple[PaymentErrorKind, bool]] = deque()
        self._lock = threading.Lock()

    def configure(self, should_succeed: bool, failure_reason: str = "Card declined") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def fail_next(self, kind: PaymentErrorKind, times: int = 1, charged: bool = False) -> None:
        """Fail the next ``times`` capture attempts with ``kind``.

        With ``charged=True`` the card is charged before the failure is
        reported, which is what a timeout after capture looks like.
        """
        for _ in range(times):
            self._scripted.append((kind, charged))

    def fail_refunds(self, reason: str = "Refund rejected") -> None:
        self.refunds_succeed = False
        self.refund_failure_reason = reason

    @property
    def capture_count(self) -> int:
        return len(self.captures)

    def capture(self, charge: ChargeRequest):
        with self._lock:
            self.calls.append(
                {
                    "method": "capture",
                    "amount": charge.amount,
                    "idempotency_key": charge.idempotency_key,
                }
            )

            if self._scripted:
                kind, charged = self._scripted.popleft()
                if charged:
                    self._record_capture(charge)
                return Err(PaymentError(kind=kind, message=f"Scripted {kind.value}"))

            if charge.idempotency_key in self.captures:
                return Ok(self.captures[charge.idempotency_key])

            if not self.should_succeed:
                return Err(PaymentError(kind=PaymentErrorKind.DECLINED, message=self.failure_reason))

            return Ok(self._record_capture(charge))

    def refund(self, transaction_id: str, amount: float):
        with self._lock:
            call = {
                "method": "refund",
                "transaction_id": transaction_id,
                "amount": amount,
            }
            self.calls.append(call)

            if not self.refunds_succeed:
                return Err(PaymentError(kind=PaymentErrorKind.DECLINED, message=self.refund_failure_reason))

            self.refunds.append(call)
            for key, record in self.captures.items():
                if record.transaction_id == transaction_id:
                    self.captures[key] = record.with_status(PaymentStatus.REFUNDED)
            return Ok(f"fake_ref_{uuid4().hex[:12]}")

    def lookup(self, idempotency_key: str):
        with self._lock:
            self.calls.append({"method": "lookup", "idempotency_key": idempotency_key})
            if self.lookup_fails:
                return Err(PaymentError(kind=PaymentErrorKind.UNAVAILABLE, message="Lookup unavailable"))
            return Ok(self.captures.get(idempotency_key))

    def _record_capture(self, charge: ChargeRequest) -> PaymentRecord:
        record = PaymentRecord(
            transaction_id=f"fake_txn_{uuid4().hex[:12]}",
            status=PaymentStatus.CAPTURED,
            amount=charge.amount,
            idempotency_key=charge.idempotency_key,
            message="Charge successful",
        )
        self.captures[charge.idempotency_key] = record
        return record
