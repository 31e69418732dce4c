"""
warehouse_engines.projection -- Stock projection from the movement ledger.

Responsibility:
    Turns committed movement lines into stock figures:
    - on_hand per item: sum of real entry lines minus real exit/sale lines
    - stock status of an item against its min_stock
    - per-(job, batch) material on a job site: real exits/sales to the job
      minus real returns from the job

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Fictitious lines never move stock.
    - The projection is a pure function of the lines.  Replaying the same
      ledger always yields the same on_hand, which is what the cached
      counter on the item row is checked against.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from warehouse_kernel.domain.dtos import JobBatchBalance, LedgerLine, StockStatus
from warehouse_kernel.domain.lines import LineEffect, MovementKind

_ZERO = Decimal("0")


def line_stock_delta(kind: MovementKind, is_fictitious: bool, quantity: Decimal) -> Decimal:
    """Signed on-hand effect of one line."""
    if is_fictitious:
        return _ZERO
    if kind == MovementKind.ENTRY:
        return quantity
    return -quantity


def project_on_hand(lines: Iterable[LedgerLine]) -> dict[UUID, Decimal]:
    """Replay on_hand for every item that appears in the lines."""
    totals: dict[UUID, Decimal] = {}
    for entry in lines:
        line = entry.line
        totals[line.item_id] = totals.get(line.item_id, _ZERO) + line_stock_delta(
            entry.kind, line.is_fictitious, line.quantity
        )
    return totals


def project_item_on_hand(item_id: UUID, lines: Iterable[LedgerLine]) -> Decimal:
    return project_on_hand(
        entry for entry in lines if entry.line.item_id == item_id
    ).get(item_id, _ZERO)


def classify_stock(on_hand: Decimal, min_stock: Decimal) -> StockStatus:
    """
    out_of_stock when nothing is left (or the ledger went negative),
    low_stock at or below the reorder threshold, in_stock otherwise.
    """
    if on_hand <= _ZERO:
        return StockStatus.OUT_OF_STOCK
    if on_hand <= min_stock:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


def job_batch_balances(job_id: UUID, lines: Iterable[LedgerLine]) -> list[JobBatchBalance]:
    """
    Material currently on a job site, per batch.

    Only real lines with a batch count.  Fresh receipts on an entry note
    attached to a job create new stock and are not returns.
    """
    issued: dict[tuple[UUID, UUID], Decimal] = {}
    returned: dict[tuple[UUID, UUID], Decimal] = {}
    for entry in lines:
        line = entry.line
        if entry.job_id != job_id or line.is_fictitious or line.batch_id is None:
            continue
        key = (line.item_id, line.batch_id)
        if entry.kind.is_outbound:
            issued[key] = issued.get(key, _ZERO) + line.quantity
        elif line.effect == LineEffect.RESTOCK:
            returned[key] = returned.get(key, _ZERO) + line.quantity

    keys = sorted(set(issued) | set(returned), key=lambda k: (str(k[0]), str(k[1])))
    return [
        JobBatchBalance(
            job_id=job_id,
            item_id=item_id,
            batch_id=batch_id,
            issued=issued.get((item_id, batch_id), _ZERO),
            returned=returned.get((item_id, batch_id), _ZERO),
        )
        for item_id, batch_id in keys
    ]
