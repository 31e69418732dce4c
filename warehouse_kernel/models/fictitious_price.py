"""
Module: warehouse_kernel.models.fictitious_price
Responsibility: ORM persistence for per-(job, item) negotiated prices.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - At most one override per (job_id, item_id) (unique constraint).
    - price >= 0 (checked by FictitiousPriceMap before flush).

Audit relevance:
    An override is read at recording time and copied onto the line; editing
    or removing it later does not change lines already recorded.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from warehouse_kernel.db.base import TrackedBase, UUIDString


class FictitiousPriceModel(TrackedBase):
    """Negotiated price of one item on one job."""

    __tablename__ = "fictitious_item_prices"

    __table_args__ = (
        UniqueConstraint("job_id", "item_id", name="uq_fictitious_price_job_item"),
    )

    job_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id"),
        nullable=False,
    )

    price: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    def __repr__(self) -> str:
        return f"<FictitiousPrice job={self.job_id} item={self.item_id} {self.price}>"
