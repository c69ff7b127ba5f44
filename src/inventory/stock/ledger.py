"""StockLedger: the authoritative inventory count per variant.

Stock lives in the ``variants`` table, one row per (product, color code,
size). The only writes to ``stock`` happen here:

- ``reserve_and_decrement`` subtracts through a single conditional UPDATE
  (``... WHERE stock >= :qty``) and checks the affected-row count. The
  database evaluates the condition under its row lock, so two checkouts
  racing for the last unit cannot both succeed. This is the oversell guard.
- ``restore`` adds stock back when an already-committed decrement must be
  undone (operator cancellation).

``check_availability`` is a plain read used to fail fast before the payment
gateway is contacted. It reserves nothing and may be stale by the time the
decrement runs.
"""

from collections import defaultdict
from dataclasses import dataclass

import structlog
from sqlalchemy import Connection, Engine, and_, select, update

from shared.db import variants
from shared.result import Err, Ok, Result

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, order=True)
class VariantRef:
    """One purchasable SKU: product, color code and size."""

    product_id: int
    color_code: str
    size: str

    def __str__(self) -> str:
        return f"{self.product_id}/{self.color_code}/{self.size}"


@dataclass(frozen=True)
class StockLine:
    variant: VariantRef
    quantity: int


@dataclass(frozen=True)
class Availability:
    available: bool
    unavailable_variants: tuple[VariantRef, ...] = ()


@dataclass(frozen=True)
class InsufficientStock:
    """The conditional decrement matched no row for these variants."""

    variants: tuple[VariantRef, ...]


class VariantNotFound(LookupError):
    pass


def merge_lines(lines) -> list[StockLine]:
    """Sum quantities per variant and return them in a stable (sorted) order.

    Decrementing in sorted order means concurrent multi-line checkouts take
    row locks in the same sequence.
    """
    totals: dict[VariantRef, int] = defaultdict(int)
    for line in lines:
        totals[line.variant] += line.quantity
    return [StockLine(variant=v, quantity=q) for v, q in sorted(totals.items())]


def _matches(variant: VariantRef):
    return and_(
        variants.c.product_id == variant.product_id,
        variants.c.color_code == variant.color_code,
        variants.c.size == variant.size,
    )


class StockLedger:
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def check_availability(self, lines) -> Availability:
        """Best-effort pre-check. Reads only; reserves nothing."""
        unavailable = []
        with self._engine.connect() as conn:
            for line in merge_lines(lines):
                stock = conn.execute(select(variants.c.stock).where(_matches(line.variant))).scalar_one_or_none()
                if stock is None or stock < line.quantity:
                    unavailable.append(line.variant)

        if unavailable:
            logger.info(
                "Stock pre-check failed",
                unavailable=[str(v) for v in unavailable],
            )
        return Availability(available=not unavailable, unavailable_variants=tuple(unavailable))

    def reserve_and_decrement(self, lines, tx: Connection) -> Result[tuple[StockLine, ...], InsufficientStock]:
        """Conditionally decrement every line inside the caller's transaction.

        Stops at the first line whose UPDATE affects zero rows. Earlier
        decrements in the same transaction are undone only when the caller
        rolls back, which it must do on ``Err``.
        """
        merged = merge_lines(lines)
        for line in merged:
            result = tx.execute(
                update(variants)
                .where(_matches(line.variant), variants.c.stock >= line.quantity)
                .values(stock=variants.c.stock - line.quantity)
            )
            if result.rowcount == 0:
                logger.info(
                    "Conditional decrement matched no row",
                    variant=str(line.variant),
                    quantity=line.quantity,
                )
                return Err(InsufficientStock(variants=(line.variant,)))

        return Ok(tuple(merged))

    def restore(self, lines, tx: Connection) -> None:
        """Compensating increment for a decrement that has already committed."""
        for line in merge_lines(lines):
            result = tx.execute(
                update(variants).where(_matches(line.variant)).values(stock=variants.c.stock + line.quantity)
            )
            if result.rowcount == 0:
                raise VariantNotFound(f"Variant {line.variant} does not exist")
            logger.info("Stock restored", variant=str(line.variant), quantity=line.quantity)

    def stock_of(self, variant: VariantRef) -> int | None:
        with self._engine.connect() as conn:
            return conn.execute(select(variants.c.stock).where(_matches(variant))).scalar_one_or_none()
