"""
Tests for stock projection: replayed on_hand, classification and job site
balances.
"""

from datetime import datetime, UTC
from decimal import Decimal
from uuid import uuid4

import pytest

from warehouse_engines.projection import (
    classify_stock,
    job_batch_balances,
    line_stock_delta,
    project_item_on_hand,
    project_on_hand,
)
from warehouse_kernel.domain.dtos import AppliedLine, LedgerLine, StockStatus
from warehouse_kernel.domain.lines import LineEffect, MovementKind, PriceSource

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def ledger_line(
    kind, item_id, quantity, *, batch_id=None, fictitious=False, job_id=None, effect=None
):
    if effect is None:
        if fictitious:
            effect = LineEffect.NONE
        elif kind.is_outbound:
            effect = LineEffect.DEPLETE
        else:
            effect = LineEffect.RESTOCK if batch_id else LineEffect.RECEIPT
    return LedgerLine(
        movement_id=uuid4(),
        kind=kind,
        job_id=job_id,
        committed_at=NOW,
        movement_date=None,
        document_number=None,
        line=AppliedLine(
            line_no=1,
            item_id=item_id,
            quantity=Decimal(quantity),
            pieces=None,
            batch_id=batch_id,
            is_fictitious=fictitious,
            unit_price_at_movement=Decimal("0"),
            price_source=PriceSource.MISSING,
            needs_price_review=True,
            effect=effect,
        ),
    )


class TestLineStockDelta:

    def test_entry_adds(self):
        assert line_stock_delta(MovementKind.ENTRY, False, Decimal("5")) == Decimal("5")

    @pytest.mark.parametrize("kind", [MovementKind.EXIT, MovementKind.SALE])
    def test_outbound_subtracts(self, kind):
        assert line_stock_delta(kind, False, Decimal("5")) == Decimal("-5")

    @pytest.mark.parametrize("kind", list(MovementKind))
    def test_fictitious_never_moves_stock(self, kind):
        assert line_stock_delta(kind, True, Decimal("5")) == Decimal("0")


class TestProjectOnHand:

    def test_replay_over_mixed_lines(self):
        cable, valve = uuid4(), uuid4()
        lines = [
            ledger_line(MovementKind.ENTRY, cable, "100"),
            ledger_line(MovementKind.EXIT, cable, "25", batch_id=uuid4()),
            ledger_line(MovementKind.SALE, cable, "5", batch_id=uuid4()),
            ledger_line(MovementKind.EXIT, cable, "1000", fictitious=True),
            ledger_line(MovementKind.ENTRY, valve, "3"),
        ]
        assert project_on_hand(lines) == {cable: Decimal("70"), valve: Decimal("3")}

    def test_single_item_defaults_to_zero(self):
        assert project_item_on_hand(uuid4(), []) == Decimal("0")


class TestClassifyStock:

    @pytest.mark.parametrize("on_hand,min_stock,expected", [
        ("0", "5", StockStatus.OUT_OF_STOCK),
        ("-2", "0", StockStatus.OUT_OF_STOCK),
        ("5", "5", StockStatus.LOW_STOCK),
        ("0.5", "5", StockStatus.LOW_STOCK),
        ("6", "5", StockStatus.IN_STOCK),
        ("1", "0", StockStatus.IN_STOCK),
    ])
    def test_thresholds(self, on_hand, min_stock, expected):
        assert classify_stock(Decimal(on_hand), Decimal(min_stock)) == expected


class TestJobBatchBalances:

    def test_issued_minus_returned_per_batch(self):
        job, item, batch = uuid4(), uuid4(), uuid4()
        lines = [
            ledger_line(MovementKind.EXIT, item, "40", batch_id=batch, job_id=job),
            ledger_line(MovementKind.ENTRY, item, "15", batch_id=batch, job_id=job),
        ]
        [balance] = job_batch_balances(job, lines)
        assert balance.issued == Decimal("40")
        assert balance.returned == Decimal("15")
        assert balance.on_site == Decimal("25")

    def test_other_jobs_and_fictitious_lines_ignored(self):
        job, item, batch = uuid4(), uuid4(), uuid4()
        lines = [
            ledger_line(MovementKind.EXIT, item, "40", batch_id=batch, job_id=uuid4()),
            ledger_line(MovementKind.EXIT, item, "7", fictitious=True, job_id=job),
        ]
        assert job_batch_balances(job, lines) == []

    def test_fresh_receipt_on_job_entry_is_not_a_return(self):
        job, item, batch = uuid4(), uuid4(), uuid4()
        lines = [
            ledger_line(MovementKind.EXIT, item, "10", batch_id=batch, job_id=job),
            ledger_line(
                MovementKind.ENTRY, item, "10", batch_id=batch, job_id=job,
                effect=LineEffect.RECEIPT,
            ),
        ]
        [balance] = job_batch_balances(job, lines)
        assert balance.on_site == Decimal("10")
