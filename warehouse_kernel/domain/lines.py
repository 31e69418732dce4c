"""
Movement lines -- the request-side value objects of a movement.

Responsibility:
    Defines what a caller hands to the movement recorder: the movement kind,
    the header of the delivery note, and the lines.  Lines are a closed
    tagged union of RealLine and FictitiousLine; the recorder dispatches on
    the type, never on a boolean flag.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Value objects are frozen.  Quantities and prices are Decimal.
    - Positivity of quantities is NOT checked here.  The recorder validates
      every line and reports InvalidQuantityError with the item id.

Audit relevance:
    to_payload() renders each object for the movement payload hash, so the
    same logical request always hashes to the same value.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class MovementKind(str, Enum):
    """
    Direction of a movement.

    Contract:
        ENTRY brings stock in (fresh receipt or return to lot).
        EXIT and SALE take stock out of a batch.
    """

    ENTRY = "entry"
    EXIT = "exit"
    SALE = "sale"

    @property
    def is_outbound(self) -> bool:
        return self in (MovementKind.EXIT, MovementKind.SALE)


class MovementStatus(str, Enum):
    """Persisted movement status.  Draft lives only in memory."""

    COMMITTED = "committed"


class LineEffect(str, Enum):
    """What a persisted line did to stock."""

    DEPLETE = "deplete"
    RESTOCK = "restock"
    RECEIPT = "receipt"
    NONE = "none"


class PriceSource(str, Enum):
    """Where a line's unit_price_at_movement came from."""

    BATCH = "batch"
    OVERRIDE = "override"
    RECEIPT = "receipt"
    MISSING = "missing"


@dataclass(frozen=True, slots=True)
class RealLine:
    """
    A line that moves physical stock.

    Contract:
        - Exit/sale: batch_id names the lot to draw from (required).
        - Entry with batch_id: material returned to that lot.
        - Entry without batch_id: fresh receipt; a new batch is created,
          priced from unit_price (zero when absent).
        - pieces, when given, is the authoritative measure for piece-tracked
          batches; quantity is derived from it through the item coefficient.
    """

    item_id: UUID
    quantity: Decimal
    pieces: Decimal | None = None
    batch_id: UUID | None = None
    unit_price: Decimal | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": "real",
            "item_id": self.item_id,
            "quantity": self.quantity,
            "pieces": self.pieces,
            "batch_id": self.batch_id,
            "unit_price": self.unit_price,
        }


@dataclass(frozen=True, slots=True)
class FictitiousLine:
    """
    A line that records consumption for costing only.

    Contract:
        Never touches a batch or on-hand stock.  Priced from the job's
        fictitious price override for the item, or zero.
    """

    item_id: UUID
    quantity: Decimal
    pieces: Decimal | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": "fictitious",
            "item_id": self.item_id,
            "quantity": self.quantity,
            "pieces": self.pieces,
        }


MovementLine = RealLine | FictitiousLine


@dataclass(frozen=True, slots=True)
class MovementHeader:
    """Delivery note header fields.  All optional; none affect stock."""

    document_number: str | None = None
    movement_date: date | None = None
    causal: str | None = None
    pickup_location: str | None = None
    delivery_location: str | None = None
    transport_mean: str | None = None
    transport_time: str | None = None
    appearance: str | None = None
    packages_count: int | None = None
    notes: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "document_number": self.document_number,
            "movement_date": self.movement_date,
            "causal": self.causal,
            "pickup_location": self.pickup_location,
            "delivery_location": self.delivery_location,
            "transport_mean": self.transport_mean,
            "transport_time": self.transport_time,
            "appearance": self.appearance,
            "packages_count": self.packages_count,
            "notes": self.notes,
        }


@dataclass(frozen=True, slots=True)
class PurchaseLine:
    """One line of a purchase document.  Each line becomes one batch."""

    item_id: UUID
    quantity: Decimal
    unit_price: Decimal = Decimal("0")
    pieces: Decimal | None = None


def movement_payload(
    kind: MovementKind,
    lines: tuple[MovementLine, ...] | list[MovementLine],
    job_id: UUID | None,
    header: MovementHeader,
) -> dict[str, Any]:
    """Canonical request payload of a movement, used for the idempotency hash."""
    return {
        "kind": kind.value,
        "job_id": job_id,
        "header": header.to_payload(),
        "lines": [line.to_payload() for line in lines],
    }
