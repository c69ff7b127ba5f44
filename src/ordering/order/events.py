"""Domain events for the Order aggregate.

Events are versioned, immutable facts. They are raised on the aggregate and
logged by the repository once the order transaction commits.
"""

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderPlaced:
    """A paid order was created by a checkout."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    user_id = String(required=True)
    idempotency_key = String(required=True)
    lines = Text(required=True)  # JSON: list of line dicts
    line_count = Integer(required=True)
    subtotal = Float(required=True)
    freight = Float(required=True)
    total = Float(required=True)
    transaction_id = String(required=True)
    placed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderCancelled:
    """An operator cancelled the order and its stock went back on the shelf."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    reason = String(required=True)
    cancelled_at = DateTime(required=True)
