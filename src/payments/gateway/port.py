"""Payment gateway port (abstract interface).

Defines the contract that all payment gateway adapters must implement.
This enables swapping between FakeGateway (dev/test) and TapPayGateway
(production) without changing the checkout pipeline.

Every call returns a tagged result. Failures carry a ``PaymentErrorKind``:

- ``DECLINED``: the processor rejected the card. Terminal, never retried.
- ``TIMEOUT``: no answer in time. The charge may or may not have happened;
  callers must look the charge up before trying again.
- ``UNAVAILABLE``: the request never reached the processor. Safe to retry.
- ``UNRESOLVED``: retries or lookups could not establish what happened.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum

from shared.result import Result


class PaymentErrorKind(Enum):
    DECLINED = "declined"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"
    UNRESOLVED = "unresolved"


class PaymentStatus(Enum):
    CAPTURED = "captured"
    REFUNDED = "refunded"
    REFUND_FAILED = "refund_failed"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class PaymentError:
    kind: PaymentErrorKind
    message: str

    @property
    def retryable(self) -> bool:
        """Another capture attempt may follow. After a ``TIMEOUT`` only once a lookup finds no charge."""
        return self.kind in (PaymentErrorKind.UNAVAILABLE, PaymentErrorKind.TIMEOUT)


@dataclass(frozen=True)
class Cardholder:
    name: str
    phone_number: str
    email: str
    address: str = ""
    member_id: str = ""


@dataclass(frozen=True)
class ChargeRequest:
    """One capture request. ``idempotency_key`` identifies the logical checkout."""

    token: str
    amount: float
    idempotency_key: str
    details: str
    cardholder: Cardholder


@dataclass(frozen=True)
class PaymentRecord:
    """What the gateway holds for one checkout. Never deleted, only updated."""

    transaction_id: str | None
    status: PaymentStatus
    amount: float
    idempotency_key: str
    message: str = ""

    def with_status(self, status: PaymentStatus, message: str = "") -> "PaymentRecord":
        return replace(self, status=status, message=message or self.message)


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def capture(self, charge: ChargeRequest) -> Result[PaymentRecord, PaymentError]:
        """Capture funds. At most one capture per idempotency key."""
        ...

    @abstractmethod
    def refund(self, transaction_id: str, amount: float) -> Result[str, PaymentError]:
        """Refund a previous capture; returns the gateway refund reference."""
        ...

    @abstractmethod
    def lookup(self, idempotency_key: str) -> Result[PaymentRecord | None, PaymentError]:
        """Query the processor for a capture made under this key."""
        ...
