"""Tests for item master data."""

from decimal import Decimal
from uuid import uuid4

import pytest

from warehouse_kernel.exceptions import (
    DuplicateItemCodeError,
    InvalidCoefficientError,
    InvalidQuantityError,
    ItemNotFoundError,
)


@pytest.fixture
def catalog(recorder):
    return recorder.catalog


class TestRegisterItem:

    def test_new_item_has_no_stock(self, catalog):
        item = catalog.register_item(
            "CAV-3G15", "Cavo FG16 3G1.5", unit="m", coefficient=Decimal("100")
        )
        assert item.on_hand == Decimal("0")
        assert item.coefficient == Decimal("100")
        assert catalog.get_by_code("CAV-3G15").id == item.id

    def test_duplicate_code(self, catalog):
        catalog.register_item("EST-6KG", "Estintore 6 kg")
        with pytest.raises(DuplicateItemCodeError) as exc_info:
            catalog.register_item("EST-6KG", "Another")
        assert exc_info.value.item_code == "EST-6KG"

    @pytest.mark.parametrize("coefficient", [Decimal("0"), Decimal("-2")])
    def test_invalid_coefficient(self, catalog, coefficient):
        with pytest.raises(InvalidCoefficientError):
            catalog.register_item("X", "X", coefficient=coefficient)

    def test_negative_min_stock(self, catalog):
        with pytest.raises(InvalidQuantityError):
            catalog.register_item("X", "X", min_stock=Decimal("-1"))


class TestUpdateItem:

    def test_partial_update(self, catalog, create_item):
        item = create_item(min_stock=Decimal("5"))
        updated = catalog.update_item(item.id, name="Renamed", min_stock=Decimal("8"))
        assert updated.name == "Renamed"
        assert updated.min_stock == Decimal("8")
        assert updated.unit == item.unit

    def test_coefficient_change_logged(self, catalog, create_item, captured_logs):
        item = create_item(coefficient=Decimal("25"))
        catalog.update_item(item.id, coefficient=Decimal("50"))
        assert any(r["message"] == "item_coefficient_changed" for r in captured_logs())

    def test_invalid_coefficient_on_update(self, catalog, create_item):
        item = create_item()
        with pytest.raises(InvalidCoefficientError):
            catalog.update_item(item.id, coefficient=Decimal("0"))

    def test_unknown_item(self, catalog):
        with pytest.raises(ItemNotFoundError):
            catalog.update_item(uuid4(), name="x")
        with pytest.raises(ItemNotFoundError):
            catalog.get_by_code("missing")
