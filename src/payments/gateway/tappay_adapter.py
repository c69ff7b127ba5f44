"""TapPay payment gateway adapter.

Talks to TapPay's backend API over HTTPS:

- ``/tpc/payment/pay-by-prime`` captures with the single-use prime from the
  storefront. The idempotency key travels as ``order_number`` so the charge
  can be found again with a record query.
- ``/tpc/transaction/refund`` refunds a captured trade.
- ``/tpc/transaction/query`` looks a trade up by ``order_number``.

A response with ``status == 0`` is success; any other status is a
processor-side rejection carrying ``msg``.

Transport failures are classified by whether the request can have reached
TapPay. Connect failures and 503 are ``UNAVAILABLE``. Read timeouts, other
5xx answers and responses broken mid-transfer are ``TIMEOUT``, so a capture
is looked up before it is attempted again.
"""

import requests
import structlog

from payments.gateway.port import (
    ChargeRequest,
    PaymentError,
    PaymentErrorKind,
    PaymentGateway,
    PaymentRecord,
    PaymentStatus,
)
from shared.result import Err, Ok

logger = structlog.get_logger(__name__)

PAY_BY_PRIME_PATH = "/tpc/payment/pay-by-prime"
REFUND_PATH = "/tpc/transaction/refund"
QUERY_PATH = "/tpc/transaction/query"

# TapPay record_status values
_RECORD_STATUS = {
    0: PaymentStatus.CAPTURED,  # authorised
    1: PaymentStatus.CAPTURED,  # captured
    2: PaymentStatus.CAPTURED,  # partially refunded
    3: PaymentStatus.REFUNDED,
}


class TapPayGateway(PaymentGateway):
    """Production TapPay adapter."""

    def __init__(
        self,
        partner_key: str,
        merchant_id: str,
        base_url: str = "https://sandbox.tappaysdk.com",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.partner_key = partner_key
        self.merchant_id = merchant_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    def capture(self, charge: ChargeRequest):
        body = {
            "prime": charge.token,
            "partner_key": self.partner_key,
            "merchant_id": self.merchant_id,
            "details": charge.details,
            # TWD has no minor unit
            "amount": int(round(charge.amount)),
            "order_number": charge.idempotency_key,
            "cardholder": {
                "phone_number": charge.cardholder.phone_number,
                "name": charge.cardholder.name,
                "email": charge.cardholder.email,
                "address": charge.cardholder.address,
                "member_id": charge.cardholder.member_id,
            },
            "remember": False,
        }
        response = self._post(PAY_BY_PRIME_PATH, body)
        if not response.ok:
            return response

        payload = response.value
        if payload.get("status") != 0:
            return Err(PaymentError(kind=PaymentErrorKind.DECLINED, message=payload.get("msg", "Payment declined")))

        return Ok(
            PaymentRecord(
                transaction_id=payload["rec_trade_id"],
                status=PaymentStatus.CAPTURED,
                amount=charge.amount,
                idempotency_key=charge.idempotency_key,
                message=payload.get("msg", ""),
            )
        )

    def refund(self, transaction_id: str, amount: float):
        body = {
            "partner_key": self.partner_key,
            "rec_trade_id": transaction_id,
            "amount": int(round(amount)),
        }
        response = self._post(REFUND_PATH, body)
        if not response.ok:
            return response

        payload = response.value
        if payload.get("status") != 0:
            return Err(PaymentError(kind=PaymentErrorKind.DECLINED, message=payload.get("msg", "Refund rejected")))
        return Ok(payload.get("refund_id", transaction_id))

    def lookup(self, idempotency_key: str):
        body = {
            "partner_key": self.partner_key,
            "records_per_page": 1,
            "page": 0,
            "filters": {"order_number": idempotency_key},
        }
        response = self._post(QUERY_PATH, body)
        if not response.ok:
            return response

        payload = response.value
        if payload.get("status") != 0:
            return Err(PaymentError(kind=PaymentErrorKind.UNRESOLVED, message=payload.get("msg", "Query failed")))

        records = payload.get("trade_records") or []
        if not records:
            return Ok(None)

        trade = records[0]
        status = _RECORD_STATUS.get(trade.get("record_status"))
        if status is None:
            # pending, cancelled or errored trades hold no money
            return Ok(None)
        return Ok(
            PaymentRecord(
                transaction_id=trade["rec_trade_id"],
                status=status,
                amount=float(trade.get("amount", 0)),
                idempotency_key=idempotency_key,
            )
        )

    def _post(self, path: str, body: dict):
        """POST to TapPay and classify transport failures."""
        url = f"{self.base_url}{path}"
        try:
            response = self._session.post(
                url,
                json=body,
                headers={"Content-Type": "application/json", "x-api-key": self.partner_key},
                timeout=self.timeout,
            )
        except requests.ConnectTimeout as exc:
            # Never connected, so nothing was sent
            logger.warning("TapPay connect timeout", path=path, error=str(exc))
            return Err(PaymentError(kind=PaymentErrorKind.UNAVAILABLE, message="Payment gateway unavailable"))
        except requests.Timeout as exc:
            logger.warning("TapPay read timeout", path=path, error=str(exc))
            return Err(PaymentError(kind=PaymentErrorKind.TIMEOUT, message="Payment gateway timed out"))
        except requests.ConnectionError as exc:
            logger.warning("TapPay connection error", path=path, error=str(exc))
            return Err(PaymentError(kind=PaymentErrorKind.UNAVAILABLE, message="Payment gateway unavailable"))
        except requests.RequestException as exc:
            # Failed after the request went out; the processor may have acted on it
            logger.warning("TapPay response failed", path=path, error_type=type(exc).__name__, error=str(exc))
            return Err(PaymentError(kind=PaymentErrorKind.TIMEOUT, message="Payment gateway response was lost"))

        if response.status_code == 503:
            logger.warning("TapPay unavailable", path=path, status_code=response.status_code)
            return Err(PaymentError(kind=PaymentErrorKind.UNAVAILABLE, message="Payment gateway unavailable"))
        if response.status_code >= 500:
            # 500, 502 and 504 can follow a charge the processor already made
            logger.warning("TapPay server error", path=path, status_code=response.status_code)
            return Err(PaymentError(kind=PaymentErrorKind.TIMEOUT, message="Payment gateway failed to answer"))

        try:
            payload = response.json()
        except ValueError:
            return Err(PaymentError(kind=PaymentErrorKind.UNRESOLVED, message="Unreadable gateway response"))

        logger.info(
            "TapPay response",
            path=path,
            status=payload.get("status"),
            msg=payload.get("msg"),
            rec_trade_id=payload.get("rec_trade_id"),
        )
        return Ok(payload)
