"""Durable payment records, one row per idempotency key.

A record is written as soon as the gateway may hold money for a checkout
and is never deleted. Each write commits in its own transaction so it
survives a rollback of the order transaction. Refunds and failed refunds
update the status in place.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from sqlalchemy import Engine, insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from payments.gateway.port import PaymentRecord, PaymentStatus
from shared.db import payment_records

logger = structlog.get_logger(__name__)


class PaymentRecordError(Exception):
    """The payment record table could not be read or written."""


@dataclass(frozen=True)
class StoredPaymentRecord:
    record: PaymentRecord
    user_id: str
    order_id: str | None
    created_at: datetime
    updated_at: datetime

    @property
    def idempotency_key(self) -> str:
        return self.record.idempotency_key

    @property
    def status(self) -> PaymentStatus:
        return self.record.status


def _from_row(row) -> StoredPaymentRecord:
    return StoredPaymentRecord(
        record=PaymentRecord(
            transaction_id=row.transaction_id,
            status=PaymentStatus(row.status),
            amount=float(row.amount),
            idempotency_key=row.idempotency_key,
            message=row.message or "",
        ),
        user_id=row.user_id,
        order_id=row.order_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class PaymentRecordStore:
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def save(self, record: PaymentRecord, user_id: str) -> None:
        """Insert the record, or update status and transaction id if the key exists."""
        now = datetime.now(UTC)
        try:
            with self._engine.begin() as conn:
                existing = conn.execute(
                    select(payment_records.c.idempotency_key).where(
                        payment_records.c.idempotency_key == record.idempotency_key
                    )
                ).first()
                if existing is None:
                    conn.execute(
                        insert(payment_records).values(
                            idempotency_key=record.idempotency_key,
                            user_id=user_id,
                            transaction_id=record.transaction_id,
                            status=record.status.value,
                            amount=record.amount,
                            message=record.message,
                            created_at=now,
                            updated_at=now,
                        )
                    )
                else:
                    conn.execute(
                        update(payment_records)
                        .where(payment_records.c.idempotency_key == record.idempotency_key)
                        .values(
                            transaction_id=record.transaction_id,
                            status=record.status.value,
                            amount=record.amount,
                            message=record.message,
                            updated_at=now,
                        )
                    )
        except SQLAlchemyError as exc:
            raise PaymentRecordError(str(exc)) from exc

        logger.info(
            "Payment record saved",
            idempotency_key=record.idempotency_key,
            status=record.status.value,
            transaction_id=record.transaction_id,
        )

    def find(self, idempotency_key: str) -> StoredPaymentRecord | None:
        try:
            with self._engine.connect() as conn:
                row = conn.execute(
                    select(payment_records).where(payment_records.c.idempotency_key == idempotency_key)
                ).first()
        except SQLAlchemyError as exc:
            raise PaymentRecordError(str(exc)) from exc
        return _from_row(row) if row is not None else None

    def link_order(self, idempotency_key: str, order_id: str) -> None:
        self._update(idempotency_key, order_id=order_id)

    def mark_status(self, idempotency_key: str, status: PaymentStatus, message: str = "") -> None:
        values = {"status": status.value}
        if message:
            values["message"] = message
        self._update(idempotency_key, **values)
        logger.info("Payment record status changed", idempotency_key=idempotency_key, status=status.value)

    def list_unresolved(self) -> list[StoredPaymentRecord]:
        """Records needing offline reconciliation.

        That is every unresolved or refund-failed record, plus captured
        records that never got linked to an order.
        """
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(
                    select(payment_records)
                    .where(
                        (payment_records.c.status.in_([PaymentStatus.UNRESOLVED.value, PaymentStatus.REFUND_FAILED.value]))
                        | (
                            (payment_records.c.status == PaymentStatus.CAPTURED.value)
                            & payment_records.c.order_id.is_(None)
                        )
                    )
                    .order_by(payment_records.c.created_at)
                ).all()
        except SQLAlchemyError as exc:
            raise PaymentRecordError(str(exc)) from exc
        return [_from_row(row) for row in rows]

    def _update(self, idempotency_key: str, **values) -> None:
        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    update(payment_records)
                    .where(payment_records.c.idempotency_key == idempotency_key)
                    .values(updated_at=datetime.now(UTC), **values)
                )
        except SQLAlchemyError as exc:
            raise PaymentRecordError(str(exc)) from exc
        if result.rowcount == 0:
            raise PaymentRecordError(f"No payment record for {idempotency_key}")
