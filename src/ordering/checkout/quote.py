"""PriceQuote: checkout totals from catalogue prices.

Derived per checkout and never stored. Unit prices come from the catalogue;
client-sent prices play no part.
"""

from dataclasses import dataclass

from catalogue.pricing import ProductCatalog
from ordering.checkout.errors import CheckoutError, CheckoutErrorKind
from ordering.checkout.request import CheckoutRequest
from shared.result import Err, Ok, Result


@dataclass(frozen=True)
class QuotedLine:
    product_id: int
    color_code: str
    size: str
    name: str
    unit_price: float
    quantity: int
    color_name: str | None = None

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity

    def to_order_line(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "unit_price": self.unit_price,
            "color_name": self.color_name,
            "color_code": self.color_code,
            "size": self.size,
            "quantity": self.quantity,
        }


@dataclass(frozen=True)
class PriceQuote:
    lines: tuple[QuotedLine, ...]
    freight: float

    @property
    def subtotal(self) -> float:
        return round(sum(line.line_total for line in self.lines), 2)

    @property
    def total(self) -> float:
        return round(self.subtotal + self.freight, 2)


def build_quote(request: CheckoutRequest, catalog: ProductCatalog) -> Result[PriceQuote, CheckoutError]:
    entries = catalog.resolve(line.variant for line in request.lines)

    missing = [str(line.variant) for line in request.lines if line.variant not in entries]
    if missing:
        return Err(
            CheckoutError(
                kind=CheckoutErrorKind.PRODUCT_NOT_MATCH,
                message="product not match",
                details={"variants": missing},
            )
        )

    lines = []
    for line in request.lines:
        entry = entries[line.variant]
        lines.append(
            QuotedLine(
                product_id=line.variant.product_id,
                color_code=line.variant.color_code,
                size=line.variant.size,
                name=entry.title,
                unit_price=entry.unit_price,
                quantity=line.quantity,
                color_name=entry.color_name or line.color_name,
            )
        )
    return Ok(PriceQuote(lines=tuple(lines), freight=round(request.freight, 2)))
