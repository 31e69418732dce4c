"""Pure domain layer: value objects, DTOs and the clock."""

from warehouse_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from warehouse_kernel.domain.dtos import (
    AppliedLine,
    BatchRecord,
    ItemCost,
    ItemRecord,
    JobBatchBalance,
    JobMaterialCost,
    LedgerLine,
    MovementRecord,
    MovementResult,
    RecordingStatus,
    StockDiscrepancy,
    StockHistoryEntry,
    StockLevel,
    StockStatus,
)
from warehouse_kernel.domain.lines import (
    FictitiousLine,
    LineEffect,
    MovementHeader,
    MovementKind,
    MovementLine,
    MovementStatus,
    PriceSource,
    PurchaseLine,
    RealLine,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "AppliedLine",
    "BatchRecord",
    "ItemCost",
    "ItemRecord",
    "JobBatchBalance",
    "JobMaterialCost",
    "LedgerLine",
    "MovementRecord",
    "MovementResult",
    "RecordingStatus",
    "StockDiscrepancy",
    "StockHistoryEntry",
    "StockLevel",
    "StockStatus",
    "FictitiousLine",
    "LineEffect",
    "MovementHeader",
    "MovementKind",
    "MovementLine",
    "MovementStatus",
    "PriceSource",
    "PurchaseLine",
    "RealLine",
]
