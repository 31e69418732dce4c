"""
warehouse_services.item_catalog -- Item master data.

Responsibility:
    Registers and updates stocked items: code, name, stock unit, the
    pieces/base coefficient and the reorder threshold (min_stock).  Hands out
    the UnitConversionRule of an item to the rest of the services.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Session injected; flushes but never commits (the caller owns the
    transaction).

Invariants enforced:
    - coefficient > 0 on registration and on every update.
    - min_stock >= 0.
    - item codes are unique.
    - on_hand is never written here; it belongs to StockProjector.

Failure modes:
    - InvalidCoefficientError on coefficient <= 0.
    - InvalidQuantityError on min_stock < 0.
    - DuplicateItemCodeError on a code already in use.
    - ItemNotFoundError on an unknown id or code.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from warehouse_engines.conversion import DEFAULT_QUANTITY_TOLERANCE, UnitConversionRule
from warehouse_kernel.domain.dtos import ItemRecord
from warehouse_kernel.exceptions import (
    DuplicateItemCodeError,
    InvalidCoefficientError,
    InvalidQuantityError,
    ItemNotFoundError,
)
from warehouse_kernel.logging_config import get_logger
from warehouse_kernel.models.item import ItemModel

logger = get_logger("services.item_catalog")


class ItemCatalog:
    """
    Item master data service.

    Contract:
        Receives a Session via constructor injection.  Returns ItemRecord
        DTOs, never ORM rows.
    """

    def __init__(
        self,
        session: Session,
        tolerance: Decimal = DEFAULT_QUANTITY_TOLERANCE,
        actor_id: UUID | None = None,
    ):
        self.session = session
        self.tolerance = tolerance
        self.actor_id = actor_id

    def register_item(
        self,
        code: str,
        name: str,
        unit: str = "pz",
        coefficient: Decimal = Decimal("1"),
        min_stock: Decimal = Decimal("0"),
        description: str | None = None,
    ) -> ItemRecord:
        """
        Register a new item with on_hand = 0.

        Raises:
            InvalidCoefficientError: coefficient <= 0.
            InvalidQuantityError: min_stock < 0.
            DuplicateItemCodeError: code already registered.
        """
        self._validate(coefficient, min_stock, item_ref=code)

        existing = self.session.execute(
            select(ItemModel.id).where(ItemModel.code == code)
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateItemCodeError(code)

        model = ItemModel(
            code=code,
            name=name,
            unit=unit,
            coefficient=coefficient,
            min_stock=min_stock,
            on_hand=Decimal("0"),
            description=description,
            created_by_id=self.actor_id,
        )
        self.session.add(model)
        self.session.flush()

        logger.info("item_registered", extra={
            "item_id": str(model.id),
            "item_code": code,
            "unit": unit,
            "coefficient": str(coefficient),
            "min_stock": str(min_stock),
        })
        return ItemRecord.from_model(model)

    def update_item(
        self,
        item_id: UUID,
        name: str | None = None,
        unit: str | None = None,
        coefficient: Decimal | None = None,
        min_stock: Decimal | None = None,
        description: str | None = None,
    ) -> ItemRecord:
        """
        Update master data fields.  None leaves a field unchanged.

        A new coefficient applies to future lines only; recorded lines keep
        the quantity and pieces they were recorded with.
        """
        model = self._load(item_id)
        self._validate(
            coefficient if coefficient is not None else model.coefficient,
            min_stock if min_stock is not None else model.min_stock,
            item_ref=str(item_id),
        )

        if name is not None:
            model.name = name
        if unit is not None:
            model.unit = unit
        if coefficient is not None:
            if coefficient != model.coefficient:
                logger.warning("item_coefficient_changed", extra={
                    "item_id": str(item_id),
                    "old_coefficient": str(model.coefficient),
                    "new_coefficient": str(coefficient),
                })
            model.coefficient = coefficient
        if min_stock is not None:
            model.min_stock = min_stock
        if description is not None:
            model.description = description
        model.updated_by_id = self.actor_id
        self.session.flush()

        logger.info("item_updated", extra={"item_id": str(item_id)})
        return ItemRecord.from_model(model)

    def get_item(self, item_id: UUID) -> ItemRecord:
        return ItemRecord.from_model(self._load(item_id))

    def get_by_code(self, code: str) -> ItemRecord:
        model = self.session.execute(
            select(ItemModel).where(ItemModel.code == code)
        ).scalar_one_or_none()
        if model is None:
            raise ItemNotFoundError(code)
        return ItemRecord.from_model(model)

    def conversion_rule(self, item_id: UUID) -> UnitConversionRule:
        """The pieces/base conversion of an item at the configured tolerance."""
        model = self._load(item_id)
        return UnitConversionRule(coefficient=model.coefficient, tolerance=self.tolerance)

    def _load(self, item_id: UUID) -> ItemModel:
        model = self.session.get(ItemModel, item_id)
        if model is None:
            raise ItemNotFoundError(str(item_id))
        return model

    def _validate(self, coefficient: Decimal, min_stock: Decimal, item_ref: str) -> None:
        if coefficient is None or coefficient <= 0:
            logger.warning("item_invalid_coefficient", extra={
                "item_ref": item_ref,
                "coefficient": str(coefficient),
            })
            raise InvalidCoefficientError(str(coefficient), item_ref)
        if min_stock < 0:
            raise InvalidQuantityError(str(min_stock), "min_stock must be >= 0", item_ref)
