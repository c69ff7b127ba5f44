"""CheckoutOrchestrator: the checkout state machine.

Flow:
    1. VALIDATING: check the request, price it from the catalogue and draft
       the Order. Failure → REJECTED.
    2. STOCK_CHECKED: advisory availability read. Failure → REJECTED, the
       gateway is never contacted.
    3. PAYMENT_CAPTURED: capture with bounded retry under one idempotency
       key. Declined or unresolved → REJECTED.
    4. ORDER_PERSISTED: one transaction holds the conditional stock decrement
       and the order insert. A lost stock race or a storage failure rolls it
       back → COMPENSATING (refund) → FAILED.
    5. COMPLETED: order id, total and payment status go back to the caller.

Before any side effect the idempotency key is checked against the payment
records, so a replayed checkout never charges twice.
"""

import time

import structlog
from protean.exceptions import ValidationError

from catalogue.pricing import ProductCatalog
from inventory.stock.ledger import StockLedger
from ordering.checkout.errors import (
    CheckoutError,
    CheckoutErrorKind,
    CheckoutResult,
    CheckoutState,
)
from ordering.checkout.quote import build_quote
from ordering.checkout.request import CheckoutRequest, validate_request
from ordering.order.order import Order
from ordering.order.repository import OrderRepository, PersistenceError
from payments.gateway.port import (
    Cardholder,
    ChargeRequest,
    PaymentErrorKind,
    PaymentGateway,
    PaymentRecord,
    PaymentStatus,
)
from payments.payment.capture import RetryPolicy, RetryState, capture_with_retry
from payments.payment.records import PaymentRecordError, PaymentRecordStore
from shared.logging import add_context, clear_context
from shared.result import Err, Ok

logger = structlog.get_logger(__name__)

CONTACT_SUPPORT = "Please contact support"


class _Trace:
    def __init__(self) -> None:
        self.states: list[CheckoutState] = []

    def enter(self, state: CheckoutState, **kw) -> None:
        previous = self.states[-1].value if self.states else None
        self.states.append(state)
        logger.info("Checkout state changed", from_state=previous, to_state=state.value, **kw)

    def result(self, state: CheckoutState, **kw) -> CheckoutResult:
        self.enter(state)
        return CheckoutResult(state=state, trace=tuple(self.states), **kw)


class CheckoutOrchestrator:
    def __init__(
        self,
        catalog: ProductCatalog,
        ledger: StockLedger,
        gateway: PaymentGateway,
        orders: OrderRepository,
        payment_records: PaymentRecordStore,
        retry_policy: RetryPolicy | None = None,
        sleep=time.sleep,
    ) -> None:
        self.catalog = catalog
        self.ledger = ledger
        self.gateway = gateway
        self.orders = orders
        self.payment_records = payment_records
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    def checkout(self, request: CheckoutRequest) -> CheckoutResult:
        key = request.idempotency_key()
        add_context(idempotency_key=key, user_id=str(request.user_id))
        try:
            return self._run(request, key)
        finally:
            clear_context("idempotency_key", "user_id")

    # -------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------
    def _run(self, request: CheckoutRequest, key: str) -> CheckoutResult:
        trace = _Trace()
        trace.enter(CheckoutState.VALIDATING)

        validated = validate_request(request)
        if not validated.ok:
            return self._reject(trace, validated.error)

        quoted = build_quote(request, self.catalog)
        if not quoted.ok:
            return self._reject(trace, quoted.error)
        quote = quoted.value

        try:
            draft = Order.draft(
                user_id=request.user_id,
                idempotency_key=key,
                lines_data=[line.to_order_line() for line in quote.lines],
                recipient=request.recipient.to_dict(),
                shipping=request.shipping,
                payment=request.payment,
                freight=quote.freight,
            )
        except ValidationError as exc:
            return self._reject(
                trace,
                CheckoutError(CheckoutErrorKind.VALIDATION_ERROR, "Invalid checkout request", details=exc.messages),
            )

        replay = self._replay(trace, key)
        if replay is not None:
            return replay

        availability = self.ledger.check_availability(request.stock_lines())
        if not availability.available:
            return self._reject(
                trace,
                CheckoutError(
                    CheckoutErrorKind.INSUFFICIENT_STOCK,
                    "out of stock",
                    details={"variants": [str(v) for v in availability.unavailable_variants]},
                ),
            )
        trace.enter(CheckoutState.STOCK_CHECKED)

        charge = ChargeRequest(
            token=request.prime,
            amount=quote.total,
            idempotency_key=key,
            details=", ".join(line.name for line in quote.lines)[:100],
            cardholder=Cardholder(
                name=request.recipient.name,
                phone_number=request.recipient.phone,
                email=request.recipient.email,
                address=request.recipient.address,
                member_id=str(request.user_id),
            ),
        )
        captured = capture_with_retry(self.gateway, charge, RetryState(policy=self.retry_policy), sleep=self._sleep)
        if not captured.ok:
            return self._payment_failed(trace, request, charge, captured.error)

        record = captured.value
        self._save_record(record, request.user_id)
        trace.enter(CheckoutState.PAYMENT_CAPTURED, transaction_id=record.transaction_id, amount=record.amount)

        return self._persist(trace, request, key, draft, record)

    def _persist(self, trace, request, key, order, record: PaymentRecord) -> CheckoutResult:
        order.mark_paid(record.transaction_id)
        stock_lines = request.stock_lines()

        def decrement_and_insert(tx):
            reserved = self.ledger.reserve_and_decrement(stock_lines, tx)
            if not reserved.ok:
                return Err(
                    CheckoutError(
                        CheckoutErrorKind.STOCK_RACE_LOST,
                        "An item sold out while your payment was processed. Your payment has been refunded, please try again.",
                        details={"variants": [str(v) for v in reserved.error.variants]},
                    )
                )
            self.orders.insert(order, tx)
            return Ok(order)

        try:
            persisted = self.orders.with_transaction(decrement_and_insert)
        except PersistenceError as exc:
            logger.error("Order persistence failed after capture", error=str(exc))
            winner = self._stored_by_twin(key, record)
            if winner is not None:
                return self._completed(trace, winner, replayed=True)
            return self._compensate(
                trace,
                record,
                CheckoutError(
                    CheckoutErrorKind.PERSISTENCE_ERROR,
                    "Your order could not be saved and your payment has been refunded. "
                    f"If retrying keeps failing, {CONTACT_SUPPORT.lower()}.",
                ),
            )

        if not persisted.ok:
            winner = self._stored_by_twin(key, record)
            if winner is not None:
                return self._completed(trace, winner, replayed=True)
            return self._compensate(trace, record, persisted.error)

        trace.enter(CheckoutState.ORDER_PERSISTED, order_id=str(order.id))
        self.orders.publish_events(order)
        try:
            self.payment_records.link_order(key, str(order.id))
        except PaymentRecordError as exc:
            logger.error("Could not link payment record to order", order_id=str(order.id), error=str(exc))
        return self._completed(trace, order)

    # -------------------------------------------------------------------
    # Exits
    # -------------------------------------------------------------------
    def _reject(self, trace: _Trace, error: CheckoutError) -> CheckoutResult:
        logger.info("Checkout rejected", kind=error.kind.value, reason=error.message)
        return trace.result(CheckoutState.REJECTED, error=error)

    def _completed(self, trace: _Trace, order: Order, replayed: bool = False) -> CheckoutResult:
        return trace.result(
            CheckoutState.COMPLETED,
            order_id=str(order.id),
            total=order.total,
            payment_status=order.status,
            replayed=replayed,
        )

    def _payment_failed(self, trace, request, charge: ChargeRequest, error) -> CheckoutResult:
        if error.kind is PaymentErrorKind.DECLINED:
            return self._reject(trace, CheckoutError(CheckoutErrorKind.PAYMENT_DECLINED, error.message))

        logger.error(
            "Payment unresolved",
            operator_alert=True,
            amount=charge.amount,
            reason=error.message,
        )
        self._save_record(
            PaymentRecord(
                transaction_id=None,
                status=PaymentStatus.UNRESOLVED,
                amount=charge.amount,
                idempotency_key=charge.idempotency_key,
                message=error.message,
            ),
            request.user_id,
        )
        return self._reject(
            trace,
            CheckoutError(
                CheckoutErrorKind.PAYMENT_UNRESOLVED,
                f"We could not confirm your payment. {CONTACT_SUPPORT} before trying again.",
                details={"reference": charge.idempotency_key},
            ),
        )

    def _compensate(self, trace: _Trace, record: PaymentRecord, error: CheckoutError) -> CheckoutResult:
        trace.enter(CheckoutState.COMPENSATING, reason=error.kind.value)

        refund = self.gateway.refund(record.transaction_id, record.amount)
        if refund.ok:
            self._mark_record(record.idempotency_key, PaymentStatus.REFUNDED, f"Refunded: {error.kind.value}")
            logger.info("Payment refunded", transaction_id=record.transaction_id, amount=record.amount)
            return trace.result(CheckoutState.FAILED, error=error, refund_issued=True)

        logger.critical(
            "Refund failed, payment held without an order",
            operator_alert=True,
            transaction_id=record.transaction_id,
            amount=record.amount,
            cause=error.kind.value,
            refund_error=refund.error.message,
        )
        self._mark_record(record.idempotency_key, PaymentStatus.REFUND_FAILED, refund.error.message)
        return trace.result(
            CheckoutState.FAILED,
            error=CheckoutError(
                error.kind,
                f"Your order could not be completed and the automatic refund failed. {CONTACT_SUPPORT}.",
                details={**error.details, "reference": record.transaction_id},
            ),
            refund_issued=False,
        )

    # -------------------------------------------------------------------
    # Replay handling
    # -------------------------------------------------------------------
    def _replay(self, trace: _Trace, key: str) -> CheckoutResult | None:
        stored = self.payment_records.find(key)
        if stored is None:
            return None

        if stored.order_id:
            logger.info("Replayed checkout", order_id=stored.order_id)
            return self._completed(trace, self.orders.get(stored.order_id), replayed=True)

        if stored.status is PaymentStatus.CAPTURED:
            order = self._order_for_key(key)
            if order is not None:
                return self._completed(trace, order, replayed=True)

        if stored.status in (PaymentStatus.CAPTURED, PaymentStatus.UNRESOLVED):
            return self._reject(
                trace,
                CheckoutError(
                    CheckoutErrorKind.PAYMENT_UNRESOLVED,
                    f"A payment for this checkout is still being reconciled. {CONTACT_SUPPORT}.",
                    details={"reference": key},
                ),
            )

        return self._reject(
            trace,
            CheckoutError(
                CheckoutErrorKind.DUPLICATE_CHECKOUT,
                "This checkout was already attempted. Start a new checkout to try again.",
                details={"payment_status": stored.status.value},
            ),
        )

    def _stored_by_twin(self, key: str, record: PaymentRecord) -> Order | None:
        """The order a concurrent submission of this checkout stored with the same capture.

        Its capture is that order's payment and must never be refunded here.
        """
        order = self._order_for_key(key)
        if order is not None and order.transaction_id == record.transaction_id:
            logger.info("Concurrent submission already stored the order", order_id=str(order.id))
            return order
        return None

    def _order_for_key(self, key: str) -> Order | None:
        try:
            return self.orders.find_by_idempotency_key(key)
        except PersistenceError as exc:
            logger.error("Could not look up order by idempotency key", error=str(exc))
            return None

    def _save_record(self, record: PaymentRecord, user_id) -> None:
        try:
            self.payment_records.save(record, str(user_id))
        except PaymentRecordError as exc:
            logger.error("Could not save payment record", status=record.status.value, error=str(exc))

    def _mark_record(self, key: str, status: PaymentStatus, message: str) -> None:
        try:
            self.payment_records.mark_status(key, status, message)
        except PaymentRecordError as exc:
            logger.error("Could not update payment record", status=status.value, error=str(exc))
