"""ORM models for the warehouse kernel."""

from warehouse_kernel.models.batch import BatchModel
from warehouse_kernel.models.fictitious_price import FictitiousPriceModel
from warehouse_kernel.models.item import ItemModel
from warehouse_kernel.models.movement import MovementLineModel, MovementModel

__all__ = [
    "ItemModel",
    "BatchModel",
    "MovementModel",
    "MovementLineModel",
    "FictitiousPriceModel",
]
