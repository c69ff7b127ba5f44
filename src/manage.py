"""Stylish checkout management CLI.

Usage:
    python src/manage.py setup-db                       # Create all tables
    python src/manage.py drop-db                        # Drop all tables
    python src/manage.py seed-demo                      # Insert demo products and stock
    python src/manage.py cancel-order <id> --reason ... # Cancel an order, restore stock, refund
    python src/manage.py unresolved-payments            # Payments needing reconciliation
"""

import argparse
import sys

from sqlalchemy import insert, select

from shared.config import Settings
from shared.db import create_db_engine, drop_db, product, setup_db, variants

DEMO_PRODUCTS = [
    {
        "id": 201807201824,
        "title": "Front Slit Knot Dress",
        "price": 799.0,
        "variants": [
            ("White", "FFFFFF", "S", 5),
            ("White", "FFFFFF", "M", 3),
            ("Mint", "DDFFBB", "S", 0),
        ],
    },
    {
        "id": 201807202140,
        "title": "Pleated Sleeve Top",
        "price": 499.0,
        "variants": [
            ("Cream", "FFDDDD", "M", 10),
            ("Cream", "FFDDDD", "L", 1),
        ],
    },
]


def setup_database(settings):
    engine = create_db_engine(settings.database_uri)
    print(f"Creating schema on {engine.url.render_as_string(hide_password=True)}...")
    setup_db(engine)
    print("Done.")


def drop_database(settings):
    engine = create_db_engine(settings.database_uri)
    print(f"Dropping schema on {engine.url.render_as_string(hide_password=True)}...")
    drop_db(engine)
    print("Done.")


def seed_demo(settings):
    """Insert the demo catalogue. Existing products are left untouched."""
    engine = create_db_engine(settings.database_uri)
    setup_db(engine)
    with engine.begin() as conn:
        for item in DEMO_PRODUCTS:
            if conn.execute(select(product.c.id).where(product.c.id == item["id"])).first() is not None:
                print(f"  {item['id']} already present, skipping.")
                continue
            conn.execute(insert(product).values(id=item["id"], title=item["title"], price=item["price"], status="active"))
            conn.execute(
                insert(variants),
                [
                    {"product_id": item["id"], "color_name": name, "color_code": code, "size": size, "stock": stock}
                    for name, code, size, stock in item["variants"]
                ],
            )
            print(f"  {item['id']} {item['title']}: {len(item['variants'])} variants")
    print("Done.")


def cancel_order(settings, order_id, reason):
    from ordering.checkout.factory import build_cancellation
    from ordering.domain import ordering
    from ordering.order.repository import OrderNotFound
    from protean.exceptions import ValidationError

    ordering.init()
    with ordering.domain_context():
        cancellation = build_cancellation(settings)
        try:
            order = cancellation.cancel(order_id, reason)
        except OrderNotFound:
            print(f"Order {order_id} not found.")
            return 1
        except ValidationError as exc:
            print(f"Order {order_id} cannot be cancelled: {exc.messages}")
            return 1

    print(f"Order {order.id} cancelled; {len(order.lines)} line(s) restocked.")
    return 0


def list_unresolved_payments(settings):
    from payments.payment.records import PaymentRecordStore

    records = PaymentRecordStore(create_db_engine(settings.database_uri)).list_unresolved()
    if not records:
        print("No payments need reconciliation.")
        return

    for stored in records:
        print(
            f"{stored.created_at:%Y-%m-%d %H:%M:%S}  {stored.status.value:<14} "
            f"{stored.record.amount:>10.2f}  key={stored.idempotency_key}  "
            f"txn={stored.record.transaction_id or '-'}  user={stored.user_id}  {stored.record.message}"
        )


def main():
    parser = argparse.ArgumentParser(description="Stylish checkout management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    subparsers.add_parser("seed-demo", help="Insert demo products and stock")

    cancel_parser = subparsers.add_parser("cancel-order", help="Cancel an order and restore its stock")
    cancel_parser.add_argument("order_id")
    cancel_parser.add_argument("--reason", default="Cancelled by operator")

    subparsers.add_parser("unresolved-payments", help="List payments needing offline reconciliation")

    args = parser.parse_args()
    settings = Settings.from_env()

    if args.command == "setup-db":
        setup_database(settings)
    elif args.command == "drop-db":
        drop_database(settings)
    elif args.command == "seed-demo":
        seed_demo(settings)
    elif args.command == "cancel-order":
        sys.exit(cancel_order(settings, args.order_id, args.reason))
    elif args.command == "unresolved-payments":
        list_unresolved_payments(settings)


if __name__ == "__main__":
    main()
