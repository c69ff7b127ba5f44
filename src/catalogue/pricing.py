"""Authoritative price lookup for checkout.

Unit prices are always read from the catalogue at checkout time. Whatever
price a client sends is ignored.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from sqlalchemy import Engine, and_, select

from inventory.stock.ledger import VariantRef
from shared.db import product, variants


@dataclass(frozen=True)
class CatalogEntry:
    variant: VariantRef
    title: str
    unit_price: float
    color_name: str | None = None


class ProductCatalog(ABC):
    """Read-only view of the product catalogue."""

    @abstractmethod
    def resolve(self, refs) -> dict[VariantRef, CatalogEntry]:
        """Return entries for the variants that exist; unknown ones are omitted."""
        ...


class SqlProductCatalog(ProductCatalog):
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def resolve(self, refs) -> dict[VariantRef, CatalogEntry]:
        entries = {}
        with self._engine.connect() as conn:
            for ref in set(refs):
                row = conn.execute(
                    select(product.c.title, product.c.price, variants.c.color_name)
                    .select_from(product.join(variants, variants.c.product_id == product.c.id))
                    .where(
                        and_(
                            product.c.id == ref.product_id,
                            product.c.status == "active",
                            variants.c.color_code == ref.color_code,
                            variants.c.size == ref.size,
                        )
                    )
                ).first()
                if row is not None:
                    entries[ref] = CatalogEntry(
                        variant=ref,
                        title=row.title,
                        unit_price=float(row.price),
                        color_name=row.color_name,
                    )
        return entries
