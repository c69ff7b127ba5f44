import os
import tempfile
from pathlib import Path

import pytest
from sqlalchemy import insert


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests.

    Selects the config environment and keeps log files out of the working tree.
    """
    os.environ["PROTEAN_ENV"] = session.config.option.env
    os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="stylish-logs-"))


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        # Get the test file path relative to the tests directory
        test_path = Path(item.fspath)

        # Mark tests based on their directory
        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/integration/" in str(test_path) or "/bdd/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture()
def engine(tmp_path):
    """A file-backed SQLite database with the full schema."""
    from shared.db import create_db_engine, setup_db

    engine = create_db_engine(f"sqlite:///{tmp_path / 'stylish.db'}")
    setup_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def seed(engine):
    """Insert a product variant with stock; returns its VariantRef."""
    from inventory.stock.ledger import VariantRef
    from shared.db import product, variants

    products = set()

    def _seed(product_id=1, color_code="FFFFFF", size="M", stock=5, price=100.0, title=None, color_name="White"):
        with engine.begin() as conn:
            if product_id not in products:
                conn.execute(
                    insert(product).values(
                        id=product_id,
                        title=title or f"Product {product_id}",
                        price=price,
                        status="active",
                    )
                )
                products.add(product_id)
            conn.execute(
                insert(variants).values(
                    product_id=product_id,
                    color_name=color_name,
                    color_code=color_code,
                    size=size,
                    stock=stock,
                )
            )
        return VariantRef(product_id=product_id, color_code=color_code, size=size)

    return _seed


@pytest.fixture()
def fake_gateway():
    from payments.gateway.fake_adapter import FakeGateway

    return FakeGateway()
