"""FastAPI routes for checkout.

The handler is a plain ``def``: the pipeline blocks on the payment gateway
and the database, so it runs in the threadpool.

Two wire formats are supported. The structured format maps each
``CheckoutErrorKind`` to a status code and an ``{"error": {...}}`` body.
With ``STYLISH_LEGACY_RESPONSES`` the old storefront contract is kept: stock
problems and declines answer 200 with a bare string.
"""

import structlog
from fastapi import APIRouter, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ordering.api.auth import resolve_principal
from ordering.api.schemas import CheckoutBody, CheckoutData, CheckoutResponse, ErrorBody, ErrorResponse
from ordering.checkout.errors import CheckoutErrorKind, CheckoutResult, CheckoutState
from ordering.domain import ordering

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/order", tags=["checkout"])

STATUS_BY_KIND = {
    CheckoutErrorKind.VALIDATION_ERROR: 400,
    CheckoutErrorKind.PRODUCT_NOT_MATCH: 400,
    CheckoutErrorKind.INSUFFICIENT_STOCK: 409,
    CheckoutErrorKind.STOCK_RACE_LOST: 409,
    CheckoutErrorKind.DUPLICATE_CHECKOUT: 409,
    CheckoutErrorKind.PAYMENT_DECLINED: 402,
    CheckoutErrorKind.PAYMENT_UNRESOLVED: 502,
    CheckoutErrorKind.PERSISTENCE_ERROR: 500,
}

LEGACY_OUT_OF_STOCK = "out of stock"
LEGACY_PRODUCT_NOT_MATCH = "product not match"
LEGACY_FAILURE = "Failed to process checkout"


def _error(status_code: int, code: str, message: str, details: dict | None = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorBody(code=code, message=message, details=details or {}))
    return JSONResponse(status_code=status_code, content=body.model_dump())


def render_result(result: CheckoutResult, legacy: bool = False) -> JSONResponse:
    """Translate a checkout outcome into an HTTP response."""
    if result.completed:
        if legacy:
            return JSONResponse(content={"data": {"number": result.order_id}})
        body = CheckoutResponse(
            data=CheckoutData(number=result.order_id, total=result.total, payment_status=result.payment_status)
        )
        return JSONResponse(content=body.model_dump())

    error = result.error
    if legacy:
        return _render_legacy_error(error)

    details = dict(error.details)
    if result.state is CheckoutState.FAILED:
        details["refund_issued"] = result.refund_issued
    return _error(STATUS_BY_KIND[error.kind], error.kind.value, error.message, details)


def _render_legacy_error(error) -> JSONResponse:
    if error.kind in (CheckoutErrorKind.INSUFFICIENT_STOCK, CheckoutErrorKind.STOCK_RACE_LOST):
        return JSONResponse(content=LEGACY_OUT_OF_STOCK)
    if error.kind is CheckoutErrorKind.PRODUCT_NOT_MATCH:
        return JSONResponse(content=LEGACY_PRODUCT_NOT_MATCH)
    if error.kind is CheckoutErrorKind.PAYMENT_DECLINED:
        return JSONResponse(content=error.message)
    if error.kind is CheckoutErrorKind.VALIDATION_ERROR:
        return JSONResponse(status_code=400, content=error.message)
    return JSONResponse(status_code=500, content=f"{LEGACY_FAILURE}: {error.message}")


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed JSON bodies answer 400 like every other validation failure."""
    if request.app.state.settings.legacy_responses:
        return JSONResponse(status_code=400, content="Invalid checkout request")
    details = {".".join(str(part) for part in err["loc"]): [err["msg"]] for err in exc.errors()}
    return _error(400, CheckoutErrorKind.VALIDATION_ERROR.value, "Invalid checkout request", details)


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    responses={status: {"model": ErrorResponse} for status in (400, 401, 402, 409, 500, 502)},
)
def checkout(body: CheckoutBody, request: Request, idempotency_key: str | None = Header(default=None)):
    settings = request.app.state.settings
    principal = resolve_principal(request, settings)
    if principal is None:
        if settings.legacy_responses:
            return JSONResponse(status_code=401, content="no token")
        return _error(401, "UNAUTHENTICATED", "no token")

    checkout_request = body.to_request(principal.user_id, nonce=idempotency_key)
    with ordering.domain_context():
        result = request.app.state.orchestrator.checkout(checkout_request)

    logger.info(
        "Checkout finished",
        state=result.state.value,
        order_id=result.order_id,
        error=result.error.kind.value if result.error else None,
    )
    return render_result(result, legacy=settings.legacy_responses)
