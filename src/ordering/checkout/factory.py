"""Wires the checkout collaborators from Settings."""

from sqlalchemy import Engine

from catalogue.pricing import SqlProductCatalog
from inventory.stock.ledger import StockLedger
from ordering.checkout.orchestrator import CheckoutOrchestrator
from ordering.order.cancellation import OrderCancellation
from ordering.order.repository import OrderRepository
from payments.gateway import build_gateway
from payments.gateway.port import PaymentGateway
from payments.payment.capture import RetryPolicy
from payments.payment.records import PaymentRecordStore
from shared.config import Settings
from shared.db import create_db_engine


def build_orchestrator(
    settings: Settings,
    engine: Engine | None = None,
    gateway: PaymentGateway | None = None,
    sleep=None,
) -> CheckoutOrchestrator:
    engine = engine or create_db_engine(settings.database_uri)
    kwargs = {"sleep": sleep} if sleep is not None else {}
    return CheckoutOrchestrator(
        catalog=SqlProductCatalog(engine),
        ledger=StockLedger(engine),
        gateway=gateway or build_gateway(settings),
        orders=OrderRepository(engine, transaction_timeout_ms=settings.transaction_timeout_ms),
        payment_records=PaymentRecordStore(engine),
        retry_policy=RetryPolicy(
            max_attempts=settings.capture_max_attempts,
            base_delay=settings.capture_backoff_base,
            max_delay=settings.capture_backoff_max,
        ),
        **kwargs,
    )


def build_cancellation(
    settings: Settings,
    engine: Engine | None = None,
    gateway: PaymentGateway | None = None,
) -> OrderCancellation:
    engine = engine or create_db_engine(settings.database_uri)
    return OrderCancellation(
        orders=OrderRepository(engine, transaction_timeout_ms=settings.transaction_timeout_ms),
        ledger=StockLedger(engine),
        gateway=gateway or build_gateway(settings),
        payment_records=PaymentRecordStore(engine),
    )
