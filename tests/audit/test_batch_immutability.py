"""
Batch immutability tests.

Verifies the rules registered by warehouse_kernel/db/immutability.py:
- original quantities, unit price, item and source are frozen once a batch exists
- remaining quantities move freely (through the ledger)
- batches are never deleted, exhausted ones included
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from warehouse_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from warehouse_kernel.exceptions import ImmutabilityViolationError
from warehouse_kernel.models.batch import BatchModel


@pytest.fixture
def batch_model(session, create_item, receive_stock):
    item = create_item(coefficient=Decimal("2"))
    batch = receive_stock(item.id, Decimal("10"), unit_price=Decimal("4.50"), pieces=Decimal("5"))
    return session.get(BatchModel, batch.id)


class TestFrozenBatchFields:
    """Fields that fix history cannot change after creation."""

    @pytest.mark.parametrize(
        "field, value",
        [
            ("original_quantity", Decimal("12")),
            ("original_pieces", Decimal("6")),
            ("unit_price", Decimal("5.00")),
            ("source_reference", "DDT-999"),
        ],
    )
    def test_frozen_field_update_rejected(self, session, batch_model, field, value):
        setattr(batch_model, field, value)

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()

        assert exc_info.value.entity_type == "Batch"
        assert field in exc_info.value.reason

    def test_received_at_update_rejected(self, session, batch_model):
        batch_model.received_at = batch_model.received_at - timedelta(days=1)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_reassigning_equal_value_allowed(self, session, batch_model):
        batch_model.unit_price = Decimal("4.50")
        batch_model.remaining_quantity = Decimal("8")
        batch_model.remaining_pieces = Decimal("4")
        session.flush()

        assert session.get(BatchModel, batch_model.id).remaining_quantity == Decimal("8")

    def test_violation_is_logged(self, session, batch_model, captured_logs):
        batch_model.unit_price = Decimal("0")

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked[0]["field"] == "unit_price"
        assert blocked[0]["operation"] == "UPDATE"


class TestMutableBatchFields:
    """Remainders and audit metadata stay writable."""

    def test_remaining_quantity_can_change(self, session, batch_model):
        version_before = batch_model.version
        batch_model.remaining_quantity = Decimal("6")
        batch_model.remaining_pieces = Decimal("3")
        session.flush()

        refreshed = session.get(BatchModel, batch_model.id)
        assert refreshed.remaining_quantity == Decimal("6")
        assert refreshed.version == version_before + 1


class TestBatchDeletion:
    """Batches are retained for audit."""

    def test_delete_rejected(self, session, batch_model):
        session.delete(batch_model)

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()

        assert "cannot be deleted" in exc_info.value.reason

    def test_exhausted_batch_delete_rejected(self, session, recorder, batch_model):
        recorder.ledger.deplete(batch_model.id, pieces=Decimal("5"))
        session.delete(batch_model)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestListenerRegistration:

    def test_unregistered_listeners_allow_changes(self, session, batch_model):
        unregister_immutability_listeners()
        try:
            batch_model.unit_price = Decimal("9.99")
            session.flush()
            assert session.get(BatchModel, batch_model.id).unit_price == Decimal("9.99")
        finally:
            register_immutability_listeners()

    def test_register_twice_is_harmless(self, session, batch_model):
        register_immutability_listeners()
        register_immutability_listeners()
        batch_model.original_quantity = Decimal("11")

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
