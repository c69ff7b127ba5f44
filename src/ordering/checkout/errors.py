"""Checkout outcome types: error kinds, pipeline states and the final result."""

from dataclasses import dataclass, field
from enum import Enum


class CheckoutErrorKind(Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    PRODUCT_NOT_MATCH = "PRODUCT_NOT_MATCH"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    PAYMENT_DECLINED = "PAYMENT_DECLINED"
    PAYMENT_UNRESOLVED = "PAYMENT_UNRESOLVED"
    STOCK_RACE_LOST = "STOCK_RACE_LOST"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    DUPLICATE_CHECKOUT = "DUPLICATE_CHECKOUT"


class CheckoutState(Enum):
    VALIDATING = "validating"
    STOCK_CHECKED = "stock_checked"
    PAYMENT_CAPTURED = "payment_captured"
    ORDER_PERSISTED = "order_persisted"
    COMPLETED = "completed"
    REJECTED = "rejected"
    COMPENSATING = "compensating"
    FAILED = "failed"


@dataclass(frozen=True)
class CheckoutError:
    kind: CheckoutErrorKind
    message: str
    details: dict = field(default_factory=dict)


@dataclass(frozen=True)
class CheckoutResult:
    """What one checkout call ended with.

    ``trace`` lists every state the pipeline passed through, in order.
    ``refund_issued`` is only meaningful for ``FAILED`` outcomes.
    """

    state: CheckoutState
    trace: tuple[CheckoutState, ...]
    order_id: str | None = None
    total: float | None = None
    payment_status: str | None = None
    error: CheckoutError | None = None
    refund_issued: bool = False
    replayed: bool = False

    @property
    def completed(self) -> bool:
        return self.state is CheckoutState.COMPLETED
