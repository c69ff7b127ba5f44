"""Order cancellation: operator-triggered.

Cancelling moves the order to ``cancelled`` and puts its stock back in one
transaction. A paid order is then refunded through the gateway and its
payment record updated.
"""

import structlog

from inventory.stock.ledger import StockLedger
from ordering.order.order import Order, OrderStatus
from ordering.order.repository import OrderRepository
from payments.gateway.port import PaymentGateway, PaymentStatus
from payments.payment.records import PaymentRecordError, PaymentRecordStore
from shared.result import Ok

logger = structlog.get_logger(__name__)


class OrderCancellation:
    def __init__(
        self,
        orders: OrderRepository,
        ledger: StockLedger,
        gateway: PaymentGateway | None = None,
        payment_records: PaymentRecordStore | None = None,
    ) -> None:
        self.orders = orders
        self.ledger = ledger
        self.gateway = gateway
        self.payment_records = payment_records

    def cancel(self, order_id: str, reason: str) -> Order:
        """Cancel the order and restore its stock.

        Raises ``OrderNotFound`` for an unknown id and protean's
        ``ValidationError`` when the order is already cancelled.
        """
        was_paid = False

        def cancel_and_restore(tx):
            nonlocal was_paid
            order = self.orders.get(order_id, tx)
            was_paid = order.status == OrderStatus.PAID.value
            order.cancel(reason)
            self.ledger.restore(order.stock_lines(), tx)
            self.orders.update_status(order, tx)
            return Ok(order)

        order = self.orders.with_transaction(cancel_and_restore).value
        self.orders.publish_events(order)
        logger.info("Order cancelled", order_id=str(order.id), reason=reason)

        if was_paid and self.gateway is not None:
            self._refund(order)
        return order

    def _refund(self, order: Order) -> None:
        refund = self.gateway.refund(order.transaction_id, order.total)
        status = PaymentStatus.REFUNDED if refund.ok else PaymentStatus.REFUND_FAILED
        if refund.ok:
            logger.info("Cancelled order refunded", order_id=str(order.id), amount=order.total)
        else:
            logger.critical(
                "Refund for cancelled order failed",
                operator_alert=True,
                order_id=str(order.id),
                transaction_id=order.transaction_id,
                amount=order.total,
                refund_error=refund.error.message,
            )

        if self.payment_records is not None:
            try:
                self.payment_records.mark_status(order.idempotency_key, status, f"Order cancelled: {order.cancellation_reason}")
            except PaymentRecordError as exc:
                logger.error("Could not update payment record", order_id=str(order.id), error=str(exc))
