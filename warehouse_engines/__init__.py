"""
Warehouse Engines - pure calculation, zero I/O.

- conversion:  pieces <-> base quantity through the item coefficient
- depletion:   batch remainder arithmetic and line replacement planning
- projection:  on_hand replay, stock status, job site balances
- costing:     line price resolution and job material cost
"""

from warehouse_engines.conversion import DEFAULT_QUANTITY_TOLERANCE, UnitConversionRule
from warehouse_engines.costing import (
    PriceResolution,
    aggregate_material_cost,
    resolve_batch_line_price,
    resolve_fictitious_price,
    resolve_receipt_price,
)
from warehouse_engines.depletion import (
    BatchAdjustment,
    BatchBalance,
    BatchEffect,
    NetBatchDelta,
    plan_depletion,
    plan_line_replacement,
    plan_restock,
)
from warehouse_engines.projection import (
    classify_stock,
    job_batch_balances,
    line_stock_delta,
    project_item_on_hand,
    project_on_hand,
)

__all__ = [
    "DEFAULT_QUANTITY_TOLERANCE",
    "UnitConversionRule",
    "PriceResolution",
    "aggregate_material_cost",
    "resolve_batch_line_price",
    "resolve_fictitious_price",
    "resolve_receipt_price",
    "BatchAdjustment",
    "BatchBalance",
    "BatchEffect",
    "NetBatchDelta",
    "plan_depletion",
    "plan_line_replacement",
    "plan_restock",
    "classify_stock",
    "job_batch_balances",
    "line_stock_delta",
    "project_item_on_hand",
    "project_on_hand",
]
