"""Pydantic request/response schemas for the checkout API.

These are external contracts (anti-corruption layer), separate from the
internal CheckoutRequest. The wire names follow the storefront client
(``order.list``, ``color.code``, ``qty``). Range checks live in the checkout
validation so that every violation is reported in one response.
"""

from pydantic import BaseModel, Field

from inventory.stock.ledger import VariantRef
from ordering.checkout.request import CartLine, CheckoutRequest, RecipientDetails


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class ColorSchema(BaseModel):
    name: str = ""
    code: str


class CheckoutItemSchema(BaseModel):
    id: int
    name: str
    color: ColorSchema
    size: str
    qty: int
    # Sent by the storefront; never used for pricing
    price: float | None = None


class RecipientSchema(BaseModel):
    name: str
    phone: str
    email: str
    address: str
    time: str | None = None


class OrderSchema(BaseModel):
    items: list[CheckoutItemSchema] = Field(alias="list")
    recipient: RecipientSchema
    shipping: str
    payment: str
    freight: float = 0.0

    model_config = {"populate_by_name": True}


class CheckoutBody(BaseModel):
    order: OrderSchema
    prime: str

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "order": {
                        "list": [
                            {
                                "id": 201807201824,
                                "name": "Front Slit Knot Dress",
                                "color": {"name": "White", "code": "FFFFFF"},
                                "size": "S",
                                "qty": 1,
                            }
                        ],
                        "recipient": {
                            "name": "Luke",
                            "phone": "0987654321",
                            "email": "luke@example.com",
                            "address": "Taipei",
                            "time": "morning",
                        },
                        "shipping": "delivery",
                        "payment": "credit_card",
                        "freight": 60,
                    },
                    "prime": "test_prime_token",
                }
            ]
        }
    }

    def to_request(self, user_id: str, nonce: str | None = None) -> CheckoutRequest:
        order = self.order
        return CheckoutRequest(
            user_id=user_id,
            lines=tuple(
                CartLine(
                    variant=VariantRef(product_id=item.id, color_code=item.color.code, size=item.size),
                    name=item.name,
                    quantity=item.qty,
                    color_name=item.color.name or None,
                )
                for item in order.items
            ),
            shipping=order.shipping,
            payment=order.payment,
            recipient=RecipientDetails(
                name=order.recipient.name,
                phone=order.recipient.phone,
                email=order.recipient.email,
                address=order.recipient.address,
                time=order.recipient.time,
            ),
            freight=order.freight,
            prime=self.prime,
            nonce=nonce,
        )


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class CheckoutData(BaseModel):
    number: str
    total: float
    payment_status: str


class CheckoutResponse(BaseModel):
    data: CheckoutData


class ErrorBody(BaseModel):
    code: str
    message: str
    details: dict = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    error: ErrorBody
