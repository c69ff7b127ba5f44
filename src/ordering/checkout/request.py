"""CheckoutRequest: one logical checkout, as handed to the orchestrator.

The request is created per call and discarded when the pipeline ends. Its
idempotency key is derived from the user, the cart contents and a nonce, so
resubmitting the same cart with the same nonce maps to the same checkout.
"""

import hashlib
import json
import re
from dataclasses import dataclass

from inventory.stock.ledger import StockLine, VariantRef, merge_lines
from ordering.checkout.errors import CheckoutError, CheckoutErrorKind
from shared.result import Err, Ok, Result

MAX_LINES = 20
MAX_QUANTITY = 100
RECIPIENT_NAME_LENGTH = (2, 50)
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class CartLine:
    variant: VariantRef
    name: str
    quantity: int
    color_name: str | None = None


@dataclass(frozen=True)
class RecipientDetails:
    name: str
    phone: str
    email: str
    address: str
    time: str | None = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "time": self.time,
        }


@dataclass(frozen=True)
class CheckoutRequest:
    user_id: str
    lines: tuple[CartLine, ...]
    shipping: str
    payment: str
    recipient: RecipientDetails
    freight: float
    prime: str
    nonce: str | None = None

    def stock_lines(self) -> list[StockLine]:
        return merge_lines(StockLine(variant=line.variant, quantity=line.quantity) for line in self.lines)

    def idempotency_key(self) -> str:
        """``chk_`` + sha256 over user id, canonical lines and nonce.

        Lines are merged per variant and sorted, so neither their order nor
        their splitting changes the key. Without an explicit nonce the
        single-use payment prime is used.
        """
        canonical = json.dumps(
            {
                "user": str(self.user_id),
                "lines": [
                    [line.variant.product_id, line.variant.color_code, line.variant.size, line.quantity]
                    for line in self.stock_lines()
                ],
                "nonce": self.nonce or self.prime,
            },
            sort_keys=True,
            separators=(",", ":"),
        )
        return "chk_" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:40]


def validate_request(request: CheckoutRequest) -> Result[CheckoutRequest, CheckoutError]:
    """Check field presence and ranges. Collects every problem, keyed by field."""
    errors: dict[str, list[str]] = {}

    def problem(field_name: str, message: str) -> None:
        errors.setdefault(field_name, []).append(message)

    if not str(request.user_id or "").strip():
        problem("user_id", "User is required")

    if not request.lines:
        problem("order.list", "At least one item is required")
    elif len(request.lines) > MAX_LINES:
        problem("order.list", f"At most {MAX_LINES} items per order")

    for index, line in enumerate(request.lines):
        prefix = f"order.list[{index}]"
        if line.variant.product_id <= 0:
            problem(f"{prefix}.id", "Product id must be positive")
        if not line.name.strip():
            problem(f"{prefix}.name", "Name is required")
        if not line.variant.color_code.strip():
            problem(f"{prefix}.color.code", "Color code is required")
        if not line.variant.size.strip():
            problem(f"{prefix}.size", "Size is required")
        if not 1 <= line.quantity <= MAX_QUANTITY:
            problem(f"{prefix}.qty", f"Quantity must be between 1 and {MAX_QUANTITY}")

    recipient = request.recipient
    low, high = RECIPIENT_NAME_LENGTH
    if not low <= len(recipient.name.strip()) <= high:
        problem("order.recipient.name", f"Name must be {low}-{high} characters")
    if not recipient.phone.strip():
        problem("order.recipient.phone", "Phone is required")
    if not EMAIL_PATTERN.match(recipient.email):
        problem("order.recipient.email", "Email is invalid")
    if not recipient.address.strip():
        problem("order.recipient.address", "Address is required")

    if not request.shipping.strip():
        problem("order.shipping", "Shipping method is required")
    if not request.payment.strip():
        problem("order.payment", "Payment method is required")
    if request.freight < 0:
        problem("order.freight", "Freight cannot be negative")
    if not request.prime.strip():
        problem("prime", "Payment token is required")

    if errors:
        return Err(CheckoutError(kind=CheckoutErrorKind.VALIDATION_ERROR, message="Invalid checkout request", details=errors))
    return Ok(request)
