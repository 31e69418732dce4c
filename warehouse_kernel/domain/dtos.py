"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable read-side structures returned by the services and
    the InventoryEngine facade: ItemRecord, BatchRecord, AppliedLine,
    MovementRecord, MovementResult, StockLevel, StockDiscrepancy,
    JobBatchBalance, JobMaterialCost and StockHistoryEntry.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods exist as boundary converters but are only
    invoked from the service and selector layers.

Invariants enforced:
    - Services accept and return DTOs, never ORM entities.  Callers can keep
      a result after the session closes.

Data flow:
    RealLine / FictitiousLine -> MovementRecorder -> AppliedLine -> MovementRecord
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from warehouse_kernel.domain.lines import (
    LineEffect,
    MovementHeader,
    MovementKind,
    MovementStatus,
    PriceSource,
)

if TYPE_CHECKING:
    from warehouse_kernel.models.batch import BatchModel
    from warehouse_kernel.models.item import ItemModel
    from warehouse_kernel.models.movement import MovementLineModel, MovementModel


class RecordingStatus(str, Enum):
    """
    Outcome of a recording call.

    Contract:
        RECORDED and REPLACED mean stock effects were applied in this call.
        ALREADY_RECORDED means the movement id was seen before with the same
        payload and nothing was applied.
    """

    RECORDED = "recorded"
    ALREADY_RECORDED = "already_recorded"
    REPLACED = "replaced"


class StockStatus(str, Enum):
    """Stock classification of an item against its min_stock."""

    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


@dataclass(frozen=True, slots=True)
class ItemRecord:
    """Item master data snapshot."""

    id: UUID
    code: str
    name: str
    unit: str
    coefficient: Decimal
    min_stock: Decimal
    on_hand: Decimal

    @classmethod
    def from_model(cls, model: ItemModel) -> ItemRecord:
        return cls(
            id=model.id,
            code=model.code,
            name=model.name,
            unit=model.unit,
            coefficient=model.coefficient,
            min_stock=model.min_stock,
            on_hand=model.on_hand,
        )


@dataclass(frozen=True, slots=True)
class BatchRecord:
    """
    Batch snapshot.

    Guarantees:
        - original_pieces and remaining_pieces are both None for batches that
          are not piece-tracked.
    """

    id: UUID
    item_id: UUID
    original_quantity: Decimal
    original_pieces: Decimal | None
    remaining_quantity: Decimal
    remaining_pieces: Decimal | None
    unit_price: Decimal
    received_at: datetime
    source_reference: str | None
    version: int

    @property
    def is_piece_tracked(self) -> bool:
        return self.original_pieces is not None

    @property
    def consumed_quantity(self) -> Decimal:
        return self.original_quantity - self.remaining_quantity

    @classmethod
    def from_model(cls, model: BatchModel) -> BatchRecord:
        return cls(
            id=model.id,
            item_id=model.item_id,
            original_quantity=model.original_quantity,
            original_pieces=model.original_pieces,
            remaining_quantity=model.remaining_quantity,
            remaining_pieces=model.remaining_pieces,
            unit_price=model.unit_price,
            received_at=model.received_at,
            source_reference=model.source_reference,
            version=model.version,
        )


@dataclass(frozen=True, slots=True)
class AppliedLine:
    """A persisted movement line with the price fixed at recording time."""

    line_no: int
    item_id: UUID
    quantity: Decimal
    pieces: Decimal | None
    batch_id: UUID | None
    is_fictitious: bool
    unit_price_at_movement: Decimal
    price_source: PriceSource
    needs_price_review: bool
    effect: LineEffect

    @property
    def line_value(self) -> Decimal:
        return self.quantity * self.unit_price_at_movement

    @classmethod
    def from_model(cls, model: MovementLineModel) -> AppliedLine:
        return cls(
            line_no=model.line_no,
            item_id=model.item_id,
            quantity=model.quantity,
            pieces=model.pieces,
            batch_id=model.batch_id,
            is_fictitious=model.is_fictitious,
            unit_price_at_movement=model.unit_price_at_movement,
            price_source=PriceSource(model.price_source),
            needs_price_review=model.needs_price_review,
            effect=LineEffect(model.effect),
        )


@dataclass(frozen=True, slots=True)
class MovementRecord:
    """A committed movement: header plus lines in document order."""

    movement_id: UUID
    kind: MovementKind
    status: MovementStatus
    job_id: UUID | None
    header: MovementHeader
    lines: tuple[AppliedLine, ...]
    payload_hash: str
    committed_at: datetime

    @property
    def lines_needing_review(self) -> tuple[AppliedLine, ...]:
        return tuple(line for line in self.lines if line.needs_price_review)

    @classmethod
    def from_model(cls, model: MovementModel) -> MovementRecord:
        header = MovementHeader(
            document_number=model.document_number,
            movement_date=model.movement_date,
            causal=model.causal,
            pickup_location=model.pickup_location,
            delivery_location=model.delivery_location,
            transport_mean=model.transport_mean,
            transport_time=model.transport_time,
            appearance=model.appearance,
            packages_count=model.packages_count,
            notes=model.notes,
        )
        return cls(
            movement_id=model.id,
            kind=MovementKind(model.kind),
            status=MovementStatus(model.status),
            job_id=model.job_id,
            header=header,
            lines=tuple(
                AppliedLine.from_model(line)
                for line in sorted(model.lines, key=lambda ln: ln.line_no)
            ),
            payload_hash=model.payload_hash,
            committed_at=model.committed_at,
        )


@dataclass(frozen=True, slots=True)
class MovementResult:
    """
    Result of record / replace.

    Contract:
        movement is always populated: for ALREADY_RECORDED it is the record
        persisted by the first call.
    """

    status: RecordingStatus
    movement: MovementRecord

    @property
    def is_success(self) -> bool:
        return self.status in (
            RecordingStatus.RECORDED,
            RecordingStatus.ALREADY_RECORDED,
            RecordingStatus.REPLACED,
        )

    @property
    def was_applied(self) -> bool:
        """True if this call changed stock."""
        return self.status != RecordingStatus.ALREADY_RECORDED


@dataclass(frozen=True, slots=True)
class StockLevel:
    item_id: UUID
    on_hand: Decimal
    min_stock: Decimal
    status: StockStatus


@dataclass(frozen=True, slots=True)
class StockDiscrepancy:
    """
    Disagreement between the on-hand cache, the ledger replay and the sum of
    batch remainders for one item.

    The batch sum is informational: stock moved before batch tracking (or by
    fictitious receipts) can make it differ legitimately.
    """

    item_id: UUID
    item_code: str
    cached_on_hand: Decimal
    replayed_on_hand: Decimal
    batch_remaining_total: Decimal

    @property
    def cache_drift(self) -> Decimal:
        return self.cached_on_hand - self.replayed_on_hand

    @property
    def batch_drift(self) -> Decimal:
        return self.batch_remaining_total - self.replayed_on_hand


@dataclass(frozen=True, slots=True)
class JobBatchBalance:
    """Material from one batch currently on one job site."""

    job_id: UUID
    item_id: UUID
    batch_id: UUID
    issued: Decimal
    returned: Decimal

    @property
    def on_site(self) -> Decimal:
        return self.issued - self.returned


@dataclass(frozen=True, slots=True)
class ItemCost:
    """Material cost of one item on one job."""

    item_id: UUID
    quantity: Decimal
    total_cost: Decimal
    line_count: int
    lines_needing_review: int


@dataclass(frozen=True, slots=True)
class JobMaterialCost:
    """Per-item material cost of a job plus the raw total."""

    job_id: UUID
    total: Decimal
    items: tuple[ItemCost, ...]

    @property
    def lines_needing_review(self) -> int:
        return sum(item.lines_needing_review for item in self.items)


@dataclass(frozen=True, slots=True)
class StockHistoryEntry:
    """
    One movement line as seen from an item's stock history.

    signed_quantity is positive for stock brought in, negative for stock
    taken out, and zero for fictitious lines.
    """

    movement_id: UUID
    kind: MovementKind
    committed_at: datetime
    movement_date: date | None
    document_number: str | None
    job_id: UUID | None
    line_no: int
    quantity: Decimal
    signed_quantity: Decimal
    batch_id: UUID | None
    is_fictitious: bool
    unit_price_at_movement: Decimal


@dataclass(frozen=True, slots=True)
class LedgerLine:
    """A persisted line together with the movement fields it is read with."""

    movement_id: UUID
    kind: MovementKind
    job_id: UUID | None
    committed_at: datetime
    movement_date: date | None
    document_number: str | None
    line: AppliedLine
