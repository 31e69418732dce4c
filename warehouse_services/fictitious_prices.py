"""
warehouse_services.fictitious_prices -- Per-(job, item) negotiated prices.

Responsibility:
    Maintains the override map consulted when a line is priced: for
    fictitious lines it is the only price source, for real exit and sale
    lines it wins over the batch price.

Architecture position:
    Services -- Session injected; flushes but never commits.

Invariants enforced:
    - At most one override per (job, item); set_override upserts.
    - price >= 0.
    - Removing an override that does not exist is not an error.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from warehouse_kernel.exceptions import InvalidPriceError, ItemNotFoundError
from warehouse_kernel.logging_config import get_logger
from warehouse_kernel.models.fictitious_price import FictitiousPriceModel
from warehouse_kernel.models.item import ItemModel

logger = get_logger("services.fictitious_prices")


class FictitiousPriceMap:
    """Override map keyed by (job_id, item_id)."""

    def __init__(self, session: Session, actor_id: UUID | None = None):
        self.session = session
        self.actor_id = actor_id

    def set_override(self, job_id: UUID, item_id: UUID, price: Decimal) -> Decimal:
        """
        Insert or update the negotiated price of an item on a job.

        Raises:
            InvalidPriceError: price < 0.
            ItemNotFoundError: unknown item.
        """
        if price is None or price < 0:
            raise InvalidPriceError(str(price), "override price must be >= 0")
        if self.session.get(ItemModel, item_id) is None:
            raise ItemNotFoundError(str(item_id))

        model = self._find(job_id, item_id)
        if model is None:
            model = FictitiousPriceModel(
                job_id=job_id,
                item_id=item_id,
                price=price,
                created_by_id=self.actor_id,
            )
            self.session.add(model)
            previous = None
        else:
            previous = model.price
            model.price = price
            model.updated_by_id = self.actor_id
        self.session.flush()

        logger.info("fictitious_price_set", extra={
            "job_id": str(job_id),
            "item_id": str(item_id),
            "price": str(price),
            "previous_price": str(previous) if previous is not None else None,
        })
        return price

    def remove_override(self, job_id: UUID, item_id: UUID) -> bool:
        """Remove an override.  Returns False when there was none."""
        model = self._find(job_id, item_id)
        if model is None:
            return False
        self.session.delete(model)
        self.session.flush()
        logger.info("fictitious_price_removed", extra={
            "job_id": str(job_id),
            "item_id": str(item_id),
        })
        return True

    def resolve(self, job_id: UUID | None, item_id: UUID) -> Decimal | None:
        if job_id is None:
            return None
        model = self._find(job_id, item_id)
        return model.price if model is not None else None

    def overrides_for_job(self, job_id: UUID) -> dict[UUID, Decimal]:
        rows = self.session.execute(
            select(FictitiousPriceModel.item_id, FictitiousPriceModel.price)
            .where(FictitiousPriceModel.job_id == job_id)
        )
        return {item_id: price for item_id, price in rows}

    def _find(self, job_id: UUID, item_id: UUID) -> FictitiousPriceModel | None:
        return self.session.execute(
            select(FictitiousPriceModel).where(
                FictitiousPriceModel.job_id == job_id,
                FictitiousPriceModel.item_id == item_id,
            )
        ).scalar_one_or_none()
