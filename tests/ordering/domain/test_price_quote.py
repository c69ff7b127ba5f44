"""Tests for PriceQuote: totals always come from catalogue prices."""

from catalogue.pricing import CatalogEntry, ProductCatalog
from inventory.stock.ledger import VariantRef
from ordering.checkout.errors import CheckoutErrorKind
from ordering.checkout.quote import build_quote

V1 = VariantRef(1, "FFFFFF", "M")
V2 = VariantRef(2, "000000", "L")


class StubCatalog(ProductCatalog):
    def __init__(self, entries):
        self.entries = {entry.variant: entry for entry in entries}
        self.requested = []

    def resolve(self, refs):
        refs = list(refs)
        self.requested.extend(refs)
        return {ref: self.entries[ref] for ref in refs if ref in self.entries}


CATALOG = StubCatalog(
    [
        CatalogEntry(variant=V1, title="Knot Dress", unit_price=799.0, color_name="White"),
        CatalogEntry(variant=V2, title="Pleated Top", unit_price=499.0, color_name="Black"),
    ]
)


def test_total_is_catalog_subtotal_plus_freight(make_request):
    quote = build_quote(make_request((V1, 2), (V2, 1), freight=60.0), CATALOG).value
    assert quote.subtotal == 2 * 799.0 + 499.0
    assert quote.total == quote.subtotal + 60.0


def test_lines_use_catalog_title_and_price(make_request):
    quote = build_quote(make_request((V1, 2)), CATALOG).value
    line = quote.lines[0]
    assert line.name == "Knot Dress"
    assert line.unit_price == 799.0
    assert line.color_name == "White"
    assert line.to_order_line()["quantity"] == 2


def test_unknown_variant_is_product_not_match(make_request):
    unknown = VariantRef(9, "FFFFFF", "M")
    result = build_quote(make_request((V1, 1), (unknown, 1)), CATALOG)
    assert not result.ok
    assert result.error.kind is CheckoutErrorKind.PRODUCT_NOT_MATCH
    assert result.error.details == {"variants": [str(unknown)]}


def test_keeps_cart_line_order(make_request):
    quote = build_quote(make_request((V2, 1), (V1, 1)), CATALOG).value
    assert [line.product_id for line in quote.lines] == [2, 1]


def test_fractional_prices_round_to_cents(make_request):
    catalog = StubCatalog([CatalogEntry(variant=V1, title="Socks", unit_price=0.1)])
    quote = build_quote(make_request((V1, 3), freight=0.2), catalog).value
    assert quote.subtotal == 0.3
    assert quote.total == 0.5
