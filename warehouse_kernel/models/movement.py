"""
Module: warehouse_kernel.models.movement
Responsibility: ORM persistence for movements (delivery notes: entries,
    exits, sales) and their lines.
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - The movement id is supplied by the caller and doubles as the
      idempotency key (primary key uniqueness).
    - payload_hash is the SHA-256 of the canonical request; a retry with the
      same id and a different hash is rejected by MovementRecorder.
    - A header is persisted only together with its lines (single flush inside
      the recorder's transaction).
    - Each line fixes unit_price_at_movement at recording time.  Later batch
      or override changes do not reprice it.
    - batch_id is NULL only for fictitious lines and for lines whose batch
      is created by the line itself (fresh receipt; then batch_id points to
      the new batch once flushed).

Failure modes:
    - IntegrityError on a duplicate movement id that bypassed the recorder.

Audit relevance:
    Movement lines are the ledger.  on_hand, job material cost and job site
    balances are all pure functions of these rows.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from warehouse_kernel.db.base import Base, TrackedBase, UUIDString


class MovementModel(TrackedBase):
    """
    Movement header.

    Contract:
        kind is one of "entry", "exit", "sale".  status is "committed": there
        is no persisted draft state.

    Guarantees:
        - lines are loaded in document order (line_no).
        - Deleting the header deletes its lines (cascade).
    """

    __tablename__ = "movements"

    __table_args__ = (
        Index("idx_movement_job", "job_id"),
        Index("idx_movement_kind_date", "kind", "movement_date"),
        Index("idx_movement_committed_at", "committed_at"),
    )

    kind: Mapped[str] = mapped_column(String(10), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False)

    document_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    movement_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    job_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Delivery note header fields
    causal: Mapped[str | None] = mapped_column(String(200), nullable=True)
    pickup_location: Mapped[str | None] = mapped_column(String(300), nullable=True)
    delivery_location: Mapped[str | None] = mapped_column(String(300), nullable=True)
    transport_mean: Mapped[str | None] = mapped_column(String(100), nullable=True)
    transport_time: Mapped[str | None] = mapped_column(String(50), nullable=True)
    appearance: Mapped[str | None] = mapped_column(String(100), nullable=True)
    packages_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    committed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    lines: Mapped[list["MovementLineModel"]] = relationship(
        back_populates="movement",
        cascade="all, delete-orphan",
        order_by="MovementLineModel.line_no",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Movement {self.id} kind={self.kind} lines={len(self.lines)}>"


class MovementLineModel(Base):
    """
    One line of a movement.

    Contract:
        quantity is always positive; direction comes from the movement kind
        and the effect column.

    Guarantees:
        - effect records what the line did to stock: "deplete", "restock",
          "receipt" or "none" (fictitious).
        - price_source records where unit_price_at_movement came from:
          "batch", "override", "receipt" or "missing".
    """

    __tablename__ = "movement_lines"

    __table_args__ = (
        UniqueConstraint("movement_id", "line_no", name="uq_movement_line_no"),
        Index("idx_movement_line_item", "item_id"),
        Index("idx_movement_line_batch", "batch_id"),
    )

    movement_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("movements.id"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(BigInteger, nullable=False)

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    pieces: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    batch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("batches.id"),
        nullable=True,
    )

    is_fictitious: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    unit_price_at_movement: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    price_source: Mapped[str] = mapped_column(String(20), nullable=False)

    needs_price_review: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    effect: Mapped[str] = mapped_column(String(20), nullable=False)

    movement: Mapped["MovementModel"] = relationship(back_populates="lines")

    @property
    def line_value(self) -> Decimal:
        """quantity x unit_price_at_movement."""
        return self.quantity * self.unit_price_at_movement

    def __repr__(self) -> str:
        return (
            f"<MovementLine {self.movement_id}#{self.line_no} "
            f"item={self.item_id} qty={self.quantity} effect={self.effect}>"
        )
