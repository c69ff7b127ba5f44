"""Checkout through the TapPay adapter when responses get lost in transit."""

from unittest.mock import MagicMock

import pytest
import requests
from inventory.stock.ledger import StockLedger
from ordering.checkout.errors import CheckoutErrorKind, CheckoutState
from ordering.checkout.factory import build_orchestrator
from ordering.order.repository import PersistenceError
from payments.gateway.port import PaymentStatus
from payments.gateway.tappay_adapter import PAY_BY_PRIME_PATH, QUERY_PATH, REFUND_PATH, TapPayGateway
from payments.payment.records import PaymentRecordStore


def _response(payload, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    return response


CAPTURED = _response({"status": 0, "msg": "Success", "rec_trade_id": "D20180728ABC"})
NO_TRADE = _response({"status": 0, "trade_records": []})
TRADE_FOUND = _response(
    {"status": 0, "trade_records": [{"rec_trade_id": "D20180728ABC", "record_status": 1, "amount": 260}]}
)


class _ScriptedTapPay:
    """Answers each TapPay path from its own queue; an exception in a queue is raised."""

    def __init__(self, **script):
        self.script = {path: list(outcomes) for path, outcomes in script.items()}
        self.paths = []

    def post(self, url, **kwargs):
        path = next(p for p in self.script if url.endswith(p))
        self.paths.append(path)
        outcome = self.script[path].pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _failing_insert(order, tx):
    raise PersistenceError("database went away")


@pytest.fixture()
def tappay_checkout(settings, engine, sleeps):
    def _build(tappay):
        session = MagicMock(spec=requests.Session)
        session.post.side_effect = tappay.post
        gateway = TapPayGateway(partner_key="partner_key", merchant_id="merchant", session=session)
        return build_orchestrator(settings, engine=engine, gateway=gateway, sleep=sleeps.append)

    return _build


def test_broken_capture_response_is_reconciled_by_lookup(tappay_checkout, seed, make_request, engine):
    variant = seed(stock=5, price=100.0)
    tappay = _ScriptedTapPay(
        **{
            PAY_BY_PRIME_PATH: [requests.exceptions.ChunkedEncodingError("connection broken")],
            QUERY_PATH: [TRADE_FOUND],
        }
    )

    result = tappay_checkout(tappay).checkout(make_request((variant, 2), freight=60.0))

    assert result.state is CheckoutState.COMPLETED
    assert tappay.paths == [PAY_BY_PRIME_PATH, QUERY_PATH]
    assert StockLedger(engine).stock_of(variant) == 3


@pytest.mark.parametrize("status_code", [500, 502, 504])
def test_server_error_is_looked_up_before_another_capture(tappay_checkout, seed, make_request, status_code):
    variant = seed(stock=5, price=100.0)
    tappay = _ScriptedTapPay(
        **{
            PAY_BY_PRIME_PATH: [_response({}, status_code=status_code), CAPTURED],
            QUERY_PATH: [NO_TRADE],
        }
    )

    result = tappay_checkout(tappay).checkout(make_request((variant, 2), freight=60.0))

    assert result.state is CheckoutState.COMPLETED
    assert tappay.paths == [PAY_BY_PRIME_PATH, QUERY_PATH, PAY_BY_PRIME_PATH]


def test_broken_refund_response_is_escalated(tappay_checkout, seed, make_request, engine, monkeypatch):
    variant = seed(stock=5, price=100.0)
    tappay = _ScriptedTapPay(
        **{
            PAY_BY_PRIME_PATH: [CAPTURED],
            REFUND_PATH: [requests.exceptions.ChunkedEncodingError("connection broken")],
        }
    )
    orchestrator = tappay_checkout(tappay)
    monkeypatch.setattr(orchestrator.orders, "insert", _failing_insert)
    request = make_request((variant, 2), freight=60.0)

    result = orchestrator.checkout(request)

    assert result.state is CheckoutState.FAILED
    assert result.error.kind is CheckoutErrorKind.PERSISTENCE_ERROR
    assert result.refund_issued is False
    assert result.error.details["reference"] == "D20180728ABC"
    assert "contact support" in result.error.message
    assert PaymentRecordStore(engine).find(request.idempotency_key()).status is PaymentStatus.REFUND_FAILED
    assert StockLedger(engine).stock_of(variant) == 5
