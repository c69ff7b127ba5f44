"""Shared BDD fixtures and step definitions for checkout."""

import pytest
from ordering.order.repository import PersistenceError
from payments.gateway.port import PaymentErrorKind
from pytest_bdd import given, parsers


def _failing_insert(order, tx):
    raise PersistenceError("orders table unavailable")


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse("a dress priced {price:f} with {stock:d} in stock"), target_fixture="dress")
def _(seed, price, stock):
    return seed(product_id=201807201824, color_code="FFFFFF", size="S", stock=stock, price=price, title="Knot Dress")


@given("the card will be declined")
def _(fake_gateway):
    fake_gateway.configure(should_succeed=False, failure_reason="Card declined")


@given("the gateway times out after charging the card")
def _(fake_gateway):
    fake_gateway.fail_next(PaymentErrorKind.TIMEOUT, charged=True)


@given("the order store is failing")
def _(orchestrator, monkeypatch):
    monkeypatch.setattr(orchestrator.orders, "insert", _failing_insert)


@pytest.fixture()
def outcome():
    """Container for the checkout result of the When step."""
    return {}
