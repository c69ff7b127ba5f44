"""Order aggregate: the durable result of a successful checkout.

An Order is created only on the checkout success path, already paid, inside
the same storage transaction as the stock decrement. Prices and recipient
details are snapshots taken at checkout and never change afterwards.

State Machine:
    PENDING → PAID | FAILED | CANCELLED
    PAID → CANCELLED
    FAILED, CANCELLED are terminal
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Integer,
    String,
    ValueObject,
)

from inventory.stock.ledger import StockLine, VariantRef
from ordering.domain import ordering
from ordering.order.events import OrderCancelled, OrderPlaced


class OrderStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PAID, OrderStatus.FAILED, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.CANCELLED},
    OrderStatus.FAILED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}


def _money(amount: float) -> float:
    return round(amount, 2)


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@ordering.value_object(part_of="Order")
class Recipient:
    """Who receives the parcel, as entered at checkout."""

    name = String(required=True, max_length=50)
    phone = String(required=True, max_length=32)
    email = String(required=True, max_length=255)
    address = String(required=True, max_length=255)
    time = String(max_length=16)  # preferred delivery slot


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderLine:
    """One purchased variant with the price charged for it."""

    position = Integer(required=True, min_value=0)
    product_id = Integer(required=True, min_value=1)
    name = String(required=True, max_length=255)
    unit_price = Float(required=True, min_value=0.0)
    color_name = String(max_length=16)
    color_code = String(required=True, max_length=8)
    size = String(required=True, max_length=8)
    quantity = Integer(required=True, min_value=1)

    @property
    def variant(self) -> VariantRef:
        return VariantRef(product_id=self.product_id, color_code=self.color_code, size=self.size)

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "unit_price": self.unit_price,
            "color_name": self.color_name,
            "color_code": self.color_code,
            "size": self.size,
            "quantity": self.quantity,
        }


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    user_id = String(required=True, max_length=64)
    idempotency_key = String(required=True, max_length=64)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    lines = HasMany(OrderLine)
    recipient = ValueObject(Recipient)
    shipping = String(required=True, max_length=32)
    payment = String(required=True, max_length=32)
    subtotal = Float(default=0.0, min_value=0.0)
    freight = Float(default=0.0, min_value=0.0)
    total = Float(default=0.0, min_value=0.0)
    transaction_id = String(max_length=255)
    cancellation_reason = String(max_length=255)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def draft(cls, user_id, idempotency_key, lines_data, recipient, shipping, payment, freight):
        """Build a pending order from a priced checkout.

        Args:
            lines_data: List of dicts with product_id, name, unit_price,
                        color_name, color_code, size, quantity. Prices are
                        the catalogue prices resolved for this checkout.
            recipient: Dict with name, phone, email, address and optional time.
        """
        if not lines_data:
            raise ValidationError({"lines": ["An order needs at least one line"]})

        now = datetime.now(UTC)
        order = cls(
            user_id=str(user_id),
            idempotency_key=idempotency_key,
            status=OrderStatus.PENDING.value,
            recipient=Recipient(**recipient),
            shipping=shipping,
            payment=payment,
            freight=_money(freight),
            created_at=now,
            updated_at=now,
        )
        for position, data in enumerate(lines_data):
            order.add_lines(OrderLine(position=position, **data))

        order.subtotal = _money(sum(line.line_total for line in order.lines))
        order.total = _money(order.subtotal + order.freight)
        return order

    # -------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status):
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def mark_paid(self, transaction_id):
        if not transaction_id:
            raise ValidationError({"transaction_id": ["A paid order needs a gateway transaction"]})
        self._assert_can_transition(OrderStatus.PAID)
        self.status = OrderStatus.PAID.value
        self.transaction_id = transaction_id
        self.updated_at = datetime.now(UTC)

        self.raise_(
            OrderPlaced(
                order_id=str(self.id),
                user_id=self.user_id,
                idempotency_key=self.idempotency_key,
                lines=json.dumps([line.to_dict() for line in self.ordered_lines()]),
                line_count=len(self.lines),
                subtotal=self.subtotal,
                freight=self.freight,
                total=self.total,
                transaction_id=transaction_id,
                placed_at=self.updated_at,
            )
        )

    def cancel(self, reason):
        """Cancel a pending or paid order. Stock restoration is the caller's job."""
        previous = OrderStatus(self.status)
        self._assert_can_transition(OrderStatus.CANCELLED)
        self.status = OrderStatus.CANCELLED.value
        self.cancellation_reason = reason
        self.updated_at = datetime.now(UTC)

        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                previous_status=previous.value,
                reason=reason,
                cancelled_at=self.updated_at,
            )
        )

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def ordered_lines(self) -> list[OrderLine]:
        return sorted(self.lines, key=lambda line: line.position)

    def stock_lines(self) -> list[StockLine]:
        return [StockLine(variant=line.variant, quantity=line.quantity) for line in self.ordered_lines()]
