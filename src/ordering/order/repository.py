"""OrderRepository: transactional persistence of orders and their lines.

``with_transaction(fn)`` opens one storage transaction, hands its connection
to ``fn`` and commits only when ``fn`` returns ``Ok``. An ``Err`` result or
any exception rolls the transaction back. Storage failures, including a
transaction that exceeds its timeout, surface as ``PersistenceError``.
"""

import structlog
from sqlalchemy import Connection, Engine, insert, select, text, update
from sqlalchemy.exc import SQLAlchemyError

from ordering.order.order import Order, OrderLine, Recipient
from shared.db import order_lists, orders

logger = structlog.get_logger(__name__)


class PersistenceError(Exception):
    """The order store failed. The transaction has been rolled back."""


class OrderNotFound(LookupError):
    pass


def _to_aggregate(row, line_rows) -> Order:
    return Order(
        id=row.id,
        user_id=row.user_id,
        idempotency_key=row.idempotency_key,
        status=row.status,
        recipient=Recipient(
            name=row.name,
            phone=row.phone,
            email=row.email,
            address=row.address,
            time=row.time,
        ),
        shipping=row.shipping,
        payment=row.payment,
        subtotal=float(row.subtotal),
        freight=float(row.freight),
        total=float(row.total),
        transaction_id=row.rec_trade_id,
        cancellation_reason=row.cancellation_reason,
        created_at=row.created_at,
        updated_at=row.updated_at,
        lines=[
            OrderLine(
                position=line.position,
                product_id=line.product_id,
                name=line.name,
                unit_price=float(line.price),
                color_name=line.color_name,
                color_code=line.color_code,
                size=line.size,
                quantity=line.qty,
            )
            for line in line_rows
        ],
    )


class OrderRepository:
    def __init__(self, engine: Engine, transaction_timeout_ms: int = 5000) -> None:
        self._engine = engine
        self.transaction_timeout_ms = transaction_timeout_ms

    # -------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------
    def with_transaction(self, fn):
        try:
            with self._engine.connect() as conn:
                with conn.begin() as tx:
                    self._apply_timeout(conn)
                    result = fn(conn)
                    if not result.ok:
                        tx.rollback()
        except SQLAlchemyError as exc:
            logger.error("Order transaction failed", error=str(exc))
            raise PersistenceError(str(exc)) from exc
        return result

    def _apply_timeout(self, conn: Connection) -> None:
        dialect = conn.dialect.name
        if dialect == "postgresql":
            conn.execute(text(f"SET LOCAL statement_timeout = {int(self.transaction_timeout_ms)}"))
        elif dialect in ("mysql", "mariadb"):
            seconds = max(1, int(self.transaction_timeout_ms) // 1000)
            conn.execute(text(f"SET SESSION innodb_lock_wait_timeout = {seconds}"))
        # SQLite relies on the connect-time busy timeout

    # -------------------------------------------------------------------
    # Writes (inside a caller's transaction)
    # -------------------------------------------------------------------
    def insert(self, order: Order, tx: Connection) -> str:
        """Insert the order header and all its lines; returns the order id."""
        order_id = str(order.id)
        try:
            tx.execute(
                insert(orders).values(
                    id=order_id,
                    idempotency_key=order.idempotency_key,
                    user_id=order.user_id,
                    status=order.status,
                    shipping=order.shipping,
                    payment=order.payment,
                    subtotal=order.subtotal,
                    freight=order.freight,
                    total=order.total,
                    name=order.recipient.name,
                    phone=order.recipient.phone,
                    email=order.recipient.email,
                    address=order.recipient.address,
                    time=order.recipient.time,
                    rec_trade_id=order.transaction_id,
                    created_at=order.created_at,
                    updated_at=order.updated_at,
                )
            )
            tx.execute(
                insert(order_lists),
                [
                    {
                        "order_id": order_id,
                        "position": line.position,
                        "product_id": line.product_id,
                        "name": line.name,
                        "price": line.unit_price,
                        "color_name": line.color_name,
                        "color_code": line.color_code,
                        "size": line.size,
                        "qty": line.quantity,
                    }
                    for line in order.ordered_lines()
                ],
            )
        except SQLAlchemyError as exc:
            raise PersistenceError(str(exc)) from exc
        return order_id

    def update_status(self, order: Order, tx: Connection) -> None:
        try:
            result = tx.execute(
                update(orders)
                .where(orders.c.id == str(order.id))
                .values(
                    status=order.status,
                    cancellation_reason=order.cancellation_reason,
                    updated_at=order.updated_at,
                )
            )
        except SQLAlchemyError as exc:
            raise PersistenceError(str(exc)) from exc
        if result.rowcount == 0:
            raise OrderNotFound(f"Order {order.id} does not exist")

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get(self, order_id: str, tx: Connection | None = None) -> Order:
        order = self._load(orders.c.id == str(order_id), tx)
        if order is None:
            raise OrderNotFound(f"Order {order_id} does not exist")
        return order

    def find_by_idempotency_key(self, idempotency_key: str) -> Order | None:
        return self._load(orders.c.idempotency_key == idempotency_key)

    def _load(self, condition, tx: Connection | None = None) -> Order | None:
        try:
            if tx is not None:
                return self._read(tx, condition)
            with self._engine.connect() as conn:
                return self._read(conn, condition)
        except SQLAlchemyError as exc:
            raise PersistenceError(str(exc)) from exc

    def _read(self, conn: Connection, condition) -> Order | None:
        row = conn.execute(select(orders).where(condition)).first()
        if row is None:
            return None
        line_rows = conn.execute(
            select(order_lists).where(order_lists.c.order_id == row.id).order_by(order_lists.c.position)
        ).all()
        return _to_aggregate(row, line_rows)

    # -------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------
    def publish_events(self, order: Order) -> None:
        """Log the aggregate's pending events once its transaction has committed."""
        for event in order._events:
            logger.info("Domain event", event_type=type(event).__name__, payload=event.to_dict())
        order._events.clear()
