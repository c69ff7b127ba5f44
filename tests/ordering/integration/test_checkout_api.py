"""Integration tests for the checkout endpoint via TestClient."""

from dataclasses import replace

import pytest
from app import create_app
from fastapi.testclient import TestClient
from inventory.stock.ledger import StockLedger


@pytest.fixture()
def variant(seed):
    return seed(product_id=201807201824, color_code="FFFFFF", size="S", stock=3, price=799.0)


def _client(settings, orchestrator, engine):
    return TestClient(create_app(settings, orchestrator=orchestrator, engine=engine))


@pytest.fixture()
def client(settings, orchestrator, engine):
    return _client(settings, orchestrator, engine)


@pytest.fixture()
def legacy_client(settings, orchestrator, engine):
    return _client(replace(settings, legacy_responses=True), orchestrator, engine)


def _body(variant, qty=1, prime="prime-api-1", **order_overrides):
    order = {
        "list": [
            {
                "id": variant.product_id,
                "name": "Front Slit Knot Dress",
                "color": {"name": "White", "code": variant.color_code},
                "size": variant.size,
                "qty": qty,
                "price": 1.0,
            }
        ],
        "recipient": {
            "name": "Luke Lin",
            "phone": "0987654321",
            "email": "luke@example.com",
            "address": "Taipei",
            "time": "morning",
        },
        "shipping": "delivery",
        "payment": "credit_card",
        "freight": 60,
    }
    order.update(order_overrides)
    return {"order": order, "prime": prime}


AUTH = {"X-User-Id": "user-api-1"}


class TestStructuredResponses:
    def test_successful_checkout(self, client, variant, engine):
        response = client.post("/order/checkout", json=_body(variant, qty=2), headers=AUTH)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["number"]
        assert data["total"] == 1658.0
        assert data["payment_status"] == "paid"
        assert StockLedger(engine).stock_of(variant) == 1

    def test_client_price_is_ignored(self, client, variant):
        response = client.post("/order/checkout", json=_body(variant), headers=AUTH)
        assert response.json()["data"]["total"] == 859.0

    def test_missing_principal(self, client, variant):
        response = client.post("/order/checkout", json=_body(variant))
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHENTICATED"

    def test_malformed_body(self, client, variant):
        body = _body(variant)
        del body["prime"]
        response = client.post("/order/checkout", json=body, headers=AUTH)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_out_of_range_quantity(self, client, variant, fake_gateway):
        response = client.post("/order/checkout", json=_body(variant, qty=0), headers=AUTH)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert "order.list[0].qty" in error["details"]
        assert fake_gateway.calls == []

    def test_unknown_product(self, client, seed):
        from inventory.stock.ledger import VariantRef

        missing = VariantRef(product_id=999, color_code="000000", size="XL")
        response = client.post("/order/checkout", json=_body(missing), headers=AUTH)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "PRODUCT_NOT_MATCH"

    def test_insufficient_stock(self, client, variant, fake_gateway):
        response = client.post("/order/checkout", json=_body(variant, qty=5), headers=AUTH)

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INSUFFICIENT_STOCK"
        assert fake_gateway.capture_count == 0

    def test_declined_card(self, client, variant, fake_gateway, engine):
        fake_gateway.configure(should_succeed=False, failure_reason="Insufficient funds")
        response = client.post("/order/checkout", json=_body(variant), headers=AUTH)

        assert response.status_code == 402
        error = response.json()["error"]
        assert error["code"] == "PAYMENT_DECLINED"
        assert error["message"] == "Insufficient funds"
        assert StockLedger(engine).stock_of(variant) == 3

    def test_same_idempotency_key_returns_same_order(self, client, variant, fake_gateway, engine):
        headers = {**AUTH, "Idempotency-Key": "retry-123"}
        first = client.post("/order/checkout", json=_body(variant, prime="prime-a"), headers=headers)
        second = client.post("/order/checkout", json=_body(variant, prime="prime-b"), headers=headers)

        assert first.status_code == second.status_code == 200
        assert first.json()["data"]["number"] == second.json()["data"]["number"]
        assert fake_gateway.capture_count == 1
        assert StockLedger(engine).stock_of(variant) == 2


class TestLegacyResponses:
    def test_success_carries_only_number(self, legacy_client, variant):
        response = legacy_client.post("/order/checkout", json=_body(variant), headers=AUTH)

        assert response.status_code == 200
        assert list(response.json()["data"]) == ["number"]

    def test_missing_principal(self, legacy_client, variant):
        response = legacy_client.post("/order/checkout", json=_body(variant))
        assert response.status_code == 401
        assert response.json() == "no token"

    def test_out_of_stock_answers_200(self, legacy_client, variant):
        response = legacy_client.post("/order/checkout", json=_body(variant, qty=5), headers=AUTH)
        assert response.status_code == 200
        assert response.json() == "out of stock"

    def test_decline_answers_200_with_message(self, legacy_client, variant, fake_gateway):
        fake_gateway.configure(should_succeed=False, failure_reason="Card declined")
        response = legacy_client.post("/order/checkout", json=_body(variant), headers=AUTH)
        assert response.status_code == 200
        assert response.json() == "Card declined"

    def test_malformed_body(self, legacy_client, variant):
        response = legacy_client.post("/order/checkout", json={"prime": "x"}, headers=AUTH)
        assert response.status_code == 400
        assert response.json() == "Invalid checkout request"


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["database"] == "ok"
        assert body["gateway"] == "fake"
        assert body["legacy_responses"] is False
