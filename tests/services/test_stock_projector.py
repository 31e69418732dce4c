"""
Tests for the on-hand cache, its classification, history and reconciliation
against the ledger replay.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from warehouse_kernel.domain.dtos import StockStatus
from warehouse_kernel.domain.lines import FictitiousLine, MovementKind, RealLine
from warehouse_kernel.exceptions import ItemNotFoundError
from warehouse_kernel.models.item import ItemModel


@pytest.fixture
def projector(recorder):
    return recorder.projector


class TestOnHand:

    def test_cache_matches_replay(self, recorder, projector, create_item, receive_stock):
        item = create_item()
        batch = receive_stock(item.id, Decimal("20"))
        recorder.record(
            uuid4(), MovementKind.EXIT,
            [
                RealLine(item_id=item.id, quantity=Decimal("7"), batch_id=batch.id),
                FictitiousLine(item_id=item.id, quantity=Decimal("100")),
            ],
        )
        assert projector.on_hand(item.id) == Decimal("13")
        assert projector.recompute_on_hand(item.id) == Decimal("13")

    def test_unknown_item(self, projector):
        with pytest.raises(ItemNotFoundError):
            projector.on_hand(uuid4())


class TestClassification:

    def test_levels_follow_stock(self, recorder, projector, create_item, receive_stock):
        item = create_item(min_stock=Decimal("5"))
        assert projector.classify(item.id) == StockStatus.OUT_OF_STOCK

        batch = receive_stock(item.id, Decimal("5"))
        assert projector.classify(item.id) == StockStatus.LOW_STOCK

        receive_stock(item.id, Decimal("1"))
        level = projector.stock_level(item.id)
        assert level.status == StockStatus.IN_STOCK
        assert level.on_hand == Decimal("6")
        assert level.min_stock == Decimal("5")

        recorder.record(
            uuid4(), MovementKind.EXIT,
            [RealLine(item_id=item.id, quantity=Decimal("5"), batch_id=batch.id)],
        )
        assert projector.classify(item.id) == StockStatus.LOW_STOCK


class TestItemHistory:

    def test_chronological_with_signed_quantities(
        self, recorder, projector, clock, create_item, receive_stock
    ):
        item = create_item()
        batch = receive_stock(item.id, Decimal("10"), document_number="DDT-1")
        clock.advance(60)
        recorder.record(
            uuid4(), MovementKind.EXIT,
            [RealLine(item_id=item.id, quantity=Decimal("4"), batch_id=batch.id)],
        )
        clock.advance(60)
        recorder.record(
            uuid4(), MovementKind.SALE,
            [FictitiousLine(item_id=item.id, quantity=Decimal("1"))],
        )

        history = projector.item_history(item.id)

        assert [entry.kind for entry in history] == [
            MovementKind.ENTRY, MovementKind.EXIT, MovementKind.SALE,
        ]
        assert [entry.signed_quantity for entry in history] == [
            Decimal("10"), Decimal("-4"), Decimal("0"),
        ]
        assert history[0].document_number == "DDT-1"
        assert history[2].is_fictitious


class TestReconcile:

    def test_consistent_ledger_has_no_discrepancies(
        self, recorder, projector, create_item, receive_stock
    ):
        item = create_item()
        batch = receive_stock(item.id, Decimal("10"))
        recorder.record(
            uuid4(), MovementKind.EXIT,
            [RealLine(item_id=item.id, quantity=Decimal("3"), batch_id=batch.id)],
        )
        assert projector.reconcile() == []

    def test_corrupted_cache_detected_and_rebuilt(
        self, session, projector, create_item, receive_stock, captured_logs
    ):
        item = create_item(code="VALV-1")
        receive_stock(item.id, Decimal("10"))
        session.get(ItemModel, item.id).on_hand = Decimal("12")
        session.flush()

        [discrepancy] = projector.reconcile()
        assert discrepancy.item_code == "VALV-1"
        assert discrepancy.cache_drift == Decimal("2")
        assert discrepancy.batch_drift == Decimal("0")
        assert any(r["message"] == "stock_discrepancy_detected" for r in captured_logs())

        assert projector.rebuild_cache() == 1
        assert projector.on_hand(item.id) == Decimal("10")
        assert projector.reconcile() == []

    def test_batch_created_outside_movements_reported(self, recorder, projector, create_item):
        item = create_item()
        recorder.ledger.create_batch(item.id, Decimal("4"))
        [discrepancy] = projector.reconcile()
        assert discrepancy.cache_drift == Decimal("0")
        assert discrepancy.batch_drift == Decimal("4")
