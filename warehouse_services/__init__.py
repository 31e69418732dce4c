"""
warehouse_services -- Package init and public API.

Responsibility:
    Stateful orchestration services that compose the pure calculation
    engines (warehouse_engines/) with database sessions.  This is the only
    layer that holds sessions or reads the wall clock.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

        warehouse_services/ -> warehouse_engines/  (allowed)
        warehouse_services/ -> warehouse_kernel/   (allowed)
        warehouse_engines/  -> warehouse_services/ (FORBIDDEN)
        warehouse_kernel/   -> warehouse_services/ (FORBIDDEN)

Audit relevance:
    InventoryEngine is the canonical import surface for the application.
"""

from warehouse_services.batch_ledger import BatchLedger
from warehouse_services.fictitious_prices import FictitiousPriceMap
from warehouse_services.inventory_engine import InventoryEngine, purchase_movement_id
from warehouse_services.item_catalog import ItemCatalog
from warehouse_services.job_costing import JobCostAggregator
from warehouse_services.movement_recorder import MovementRecorder
from warehouse_services.stock_projector import StockProjector

__all__ = [
    "BatchLedger",
    "FictitiousPriceMap",
    "InventoryEngine",
    "ItemCatalog",
    "JobCostAggregator",
    "MovementRecorder",
    "StockProjector",
    "purchase_movement_id",
]
