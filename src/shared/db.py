"""Relational schema and engine setup shared by every bounded context.

The tables mirror the storefront's MySQL schema for the parts the checkout
pipeline touches. Product ids are storefront ids such as ``201807201824``
and need 64-bit columns. ``variants.stock`` carries a CHECK constraint so the
database itself refuses a negative count.
"""

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    Engine,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    UniqueConstraint,
    create_engine,
)

metadata = MetaData()

Money = Numeric(18, 2, asdecimal=False)

product = Table(
    "product",
    metadata,
    Column("id", BigInteger, primary_key=True, autoincrement=False),
    Column("title", String(64), nullable=False),
    Column("price", Money, nullable=False),
    Column("status", String(16), nullable=False, default="active"),
    CheckConstraint("price >= 0", name="chk_product_price"),
)

variants = Table(
    "variants",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("product_id", BigInteger, ForeignKey("product.id"), nullable=False),
    Column("color_name", String(16)),
    Column("color_code", String(8), nullable=False),
    Column("size", String(8), nullable=False),
    Column("stock", Integer, nullable=False, default=0),
    UniqueConstraint("product_id", "color_code", "size", name="uq_variants_sku"),
    CheckConstraint("stock >= 0", name="chk_variants_stock"),
)

orders = Table(
    "orders",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("idempotency_key", String(64), nullable=False, unique=True),
    Column("user_id", String(64), nullable=False, index=True),
    Column("status", String(16), nullable=False),
    Column("shipping", String(32), nullable=False),
    Column("payment", String(32), nullable=False),
    Column("subtotal", Money, nullable=False),
    Column("freight", Money, nullable=False, default=0),
    Column("total", Money, nullable=False),
    Column("name", String(64), nullable=False),
    Column("phone", String(32), nullable=False),
    Column("email", String(255), nullable=False),
    Column("address", String(255), nullable=False),
    Column("time", String(16)),
    Column("rec_trade_id", String(255), nullable=False),
    Column("cancellation_reason", String(255)),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True)),
    CheckConstraint("total >= 0", name="chk_orders_total"),
)

order_lists = Table(
    "order_lists",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("order_id", String(36), ForeignKey("orders.id"), nullable=False, index=True),
    Column("position", Integer, nullable=False),
    Column("product_id", BigInteger, nullable=False),
    Column("name", String(255), nullable=False),
    Column("price", Money, nullable=False),
    Column("color_name", String(16)),
    Column("color_code", String(8), nullable=False),
    Column("size", String(8), nullable=False),
    Column("qty", Integer, nullable=False),
    CheckConstraint("qty > 0", name="chk_order_lists_qty"),
)

payment_records = Table(
    "payment_records",
    metadata,
    Column("idempotency_key", String(64), primary_key=True),
    Column("user_id", String(64), nullable=False),
    Column("transaction_id", String(255)),
    Column("status", String(16), nullable=False),
    Column("amount", Money, nullable=False),
    Column("order_id", String(36)),
    Column("message", String(500)),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)


def create_db_engine(database_uri: str) -> Engine:
    """Create an engine; SQLite gets a busy timeout so writers queue instead of failing."""
    connect_args = {}
    if database_uri.startswith("sqlite"):
        connect_args = {"timeout": 30, "check_same_thread": False}
    return create_engine(database_uri, connect_args=connect_args, pool_pre_ping=True)


def setup_db(engine: Engine) -> None:
    """Setup database schema"""
    metadata.create_all(engine)


def drop_db(engine: Engine) -> None:
    """Drop database schema"""
    metadata.drop_all(engine)
