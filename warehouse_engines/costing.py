"""
warehouse_engines.costing -- Line price resolution and job material cost.

Responsibility:
    Decides the unit price fixed onto a movement line at recording time and
    aggregates the material cost of a job from those fixed prices.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Price resolution (first match wins):

    Line                        | Price                          | Source
    ----------------------------|--------------------------------|---------
    Fictitious                  | job override for the item      | override
                                | else 0                         | missing
    Real exit / sale            | job override for the item      | override
                                | else batch unit price          | batch
    Real entry, return to lot   | batch unit price               | batch
    Real entry, fresh receipt   | line unit price                | receipt
                                | else 0                         | missing

    A resolved price of 0 is not an error.  The line is flagged
    needs_price_review so that someone prices it later.

Invariants enforced:
    - Material cost = sum over exit and sale lines of the job of
      quantity x unit_price_at_movement, fictitious lines included.
      Entry lines (returns) are not subtracted.
    - Prices are taken from the lines as recorded; nothing is re-resolved.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from warehouse_kernel.domain.dtos import ItemCost, JobMaterialCost, LedgerLine
from warehouse_kernel.domain.lines import MovementKind, PriceSource

_ZERO = Decimal("0")


@dataclass(frozen=True, slots=True)
class PriceResolution:
    price: Decimal
    source: PriceSource

    @property
    def needs_review(self) -> bool:
        return self.price == _ZERO


def resolve_fictitious_price(override: Decimal | None) -> PriceResolution:
    if override is not None:
        return PriceResolution(override, PriceSource.OVERRIDE)
    return PriceResolution(_ZERO, PriceSource.MISSING)


def resolve_batch_line_price(
    kind: MovementKind,
    batch_price: Decimal,
    override: Decimal | None,
) -> PriceResolution:
    """Price of a real line that draws from or returns to an existing batch."""
    if kind.is_outbound and override is not None:
        return PriceResolution(override, PriceSource.OVERRIDE)
    return PriceResolution(batch_price, PriceSource.BATCH)


def resolve_receipt_price(unit_price: Decimal | None) -> PriceResolution:
    if unit_price is None:
        return PriceResolution(_ZERO, PriceSource.MISSING)
    return PriceResolution(unit_price, PriceSource.RECEIPT)


def aggregate_material_cost(job_id: UUID, lines: Iterable[LedgerLine]) -> JobMaterialCost:
    """
    Material cost of a job, per item and in total.

    The total is the raw sum; no rounding or redaction is applied.
    """
    quantities: dict[UUID, Decimal] = {}
    totals: dict[UUID, Decimal] = {}
    counts: dict[UUID, int] = {}
    reviews: dict[UUID, int] = {}

    for entry in lines:
        if entry.job_id != job_id or not entry.kind.is_outbound:
            continue
        line = entry.line
        item_id = line.item_id
        quantities[item_id] = quantities.get(item_id, _ZERO) + line.quantity
        totals[item_id] = totals.get(item_id, _ZERO) + line.line_value
        counts[item_id] = counts.get(item_id, 0) + 1
        if line.needs_price_review:
            reviews[item_id] = reviews.get(item_id, 0) + 1

    items = tuple(
        ItemCost(
            item_id=item_id,
            quantity=quantities[item_id],
            total_cost=totals[item_id],
            line_count=counts[item_id],
            lines_needing_review=reviews.get(item_id, 0),
        )
        for item_id in sorted(totals, key=str)
    )
    return JobMaterialCost(
        job_id=job_id,
        total=sum((item.total_cost for item in items), _ZERO),
        items=items,
    )
