"""
Module: warehouse_kernel.models.batch
Responsibility: ORM persistence for batches (lots): one purchased or received
    quantity of one item at one unit price, with its running remainder.
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - 0 <= remaining_quantity <= original_quantity, and the same for pieces
      when the batch is piece-tracked (checked by BatchLedger before flush).
    - original_quantity, original_pieces, unit_price, item_id, received_at
      and source_reference are frozen after creation (db/immutability.py).
    - Batches are never deleted, exhausted ones included
      (db/immutability.py blocks DELETE).
    - version is a SQLAlchemy version_id_col.  A concurrent writer that read
      a stale version gets StaleDataError at flush, surfaced by the ledger as
      OptimisticLockError.
    - (item_id, received_at) index supports the oldest-first suggestion list.

Failure modes:
    - StaleDataError on concurrent modification (mapped to OptimisticLockError).
    - ImmutabilityViolationError on UPDATE of frozen fields or DELETE.

Audit relevance:
    unit_price is the default price fixed onto exit and sale lines at
    recording time; freezing it keeps past job costs reproducible.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from warehouse_kernel.db.base import TrackedBase, UUIDString


class BatchModel(TrackedBase):
    """
    Persistent storage for batches.

    Contract:
        remaining_* start equal to original_* and move only through
        BatchLedger.deplete() / BatchLedger.restock().

    Guarantees:
        - original_pieces is NULL for batches that are not piece-tracked;
          remaining_pieces is then NULL too.
        - source_movement_id is set when the batch was created by a fresh
          receipt line of an entry movement.

    Non-goals:
        - Does NOT choose which batch to draw from; the caller does.
    """

    __tablename__ = "batches"

    __table_args__ = (
        # Query: available batches for an item, oldest first
        Index("idx_batch_item_received", "item_id", "received_at"),
        # Query: batches of one purchase document
        Index("idx_batch_source_reference", "source_reference"),
        Index("idx_batch_source_movement", "source_movement_id"),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id"),
        nullable=False,
    )

    # Frozen after creation
    original_quantity: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    original_pieces: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )

    remaining_quantity: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    remaining_pieces: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )

    # Frozen after creation
    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # Purchase document number or entry document number
    source_reference: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    # Entry movement whose fresh-receipt line created this batch
    source_movement_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_piece_tracked(self) -> bool:
        return self.original_pieces is not None

    def __repr__(self) -> str:
        return (
            f"<Batch {self.id}: item={self.item_id} "
            f"remaining={self.remaining_quantity}/{self.original_quantity}>"
        )
