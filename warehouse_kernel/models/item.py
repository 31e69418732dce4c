"""
Module: warehouse_kernel.models.item
Responsibility: ORM persistence for item master data (the stocked articles:
    extinguishers, hoses, valves, cable by the meter ...).
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - code is unique across the catalog.
    - coefficient > 0 (checked by the item catalog service before flush).
    - on_hand is a CACHE of the movement ledger sum.  It is updated in the
      same transaction as the movement that changes it and can always be
      rebuilt from the ledger; it is never ground truth.

Failure modes:
    - IntegrityError on duplicate code if the catalog check is bypassed.

Audit relevance:
    coefficient drives every pieces <-> base quantity conversion.  Changing it
    does not rewrite history: movement lines store both quantity and pieces
    as recorded.
"""

from decimal import Decimal

from sqlalchemy import Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from warehouse_kernel.db.base import TrackedBase


class ItemModel(TrackedBase):
    """
    Item master data row plus the on-hand cache.

    Contract:
        One row per stocked article.  Batches and movement lines reference
        items by id.

    Non-goals:
        - Does NOT hold per-batch remainders; see BatchModel.
        - Does NOT validate coefficient at the ORM level.
    """

    __tablename__ = "items"

    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Stock unit symbol: "pz", "m", "kg" ...
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="pz")

    # Base quantity per piece (package)
    coefficient: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("1"),
    )

    min_stock: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    # Cache of the ledger sum, rebuilt by StockProjector.rebuild_cache()
    on_hand: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<Item {self.code}: on_hand={self.on_hand} {self.unit}>"
