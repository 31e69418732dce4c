"""
warehouse_services.batch_ledger -- Per-lot remaining quantity tracking.

Responsibility:
    Creates batches and moves their remainders: depletion for exits, sales
    and receipt reversals; restock for returns to lot.  Lists the batches an
    operator can draw from, oldest first.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    The arithmetic lives in warehouse_engines.depletion; this service reads
    the batch under lock, asks the engine for the new remainders and writes
    them.  Session injected; flushes but never commits.

Invariants enforced:
    - 0 <= remaining <= original for quantity and pieces.
    - Overdraws are rejected, never clamped.
    - Every change locks the batch row first (SELECT ... FOR UPDATE with
      populate_existing) and bumps the version counter.  A writer holding a
      stale version fails at flush with OptimisticLockError.
    - Batches are never deleted (ORM listener), exhausted ones included.

Failure modes:
    - BatchNotFoundError, ItemNotFoundError on unknown ids.
    - InvalidQuantityError, InvalidPriceError on bad creation input.
    - InsufficientBatchQuantityError, ExceedsOriginalError from the engine.
    - OptimisticLockError on a concurrent modification.

Audit relevance:
    Every depletion and restock is logged with the batch id and the before
    and after remainders of both measures.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Sequence
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from warehouse_engines.conversion import DEFAULT_QUANTITY_TOLERANCE, UnitConversionRule
from warehouse_engines.depletion import (
    BatchAdjustment,
    BatchBalance,
    NetBatchDelta,
    plan_depletion,
    plan_restock,
)
from warehouse_kernel.domain.clock import Clock, SystemClock
from warehouse_kernel.domain.dtos import BatchRecord
from warehouse_kernel.exceptions import (
    BatchNotFoundError,
    InvalidPriceError,
    InvalidQuantityError,
    ItemNotFoundError,
    OptimisticLockError,
)
from warehouse_kernel.logging_config import get_logger
from warehouse_kernel.models.batch import BatchModel
from warehouse_kernel.models.item import ItemModel

logger = get_logger("services.batch_ledger")


class BatchLedger:
    """
    Batch (lot) ledger.

    Contract:
        Receives Session and Clock via constructor injection.
    Guarantees:
        - ``create_batch`` persists a batch with remaining == original.
        - ``deplete`` / ``restock`` change one batch atomically under a row
          lock, or raise without changing it.
        - ``apply_net_deltas`` validates every batch before changing any.
    Non-goals:
        - Does not pick batches automatically; callers name the batch.
        - Does not touch the item on_hand cache (StockProjector does).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        tolerance: Decimal = DEFAULT_QUANTITY_TOLERANCE,
        actor_id: UUID | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.tolerance = tolerance
        self.actor_id = actor_id

    # =========================================================================
    # Creation
    # =========================================================================

    def create_batch(
        self,
        item_id: UUID,
        original_quantity: Decimal,
        unit_price: Decimal = Decimal("0"),
        original_pieces: Decimal | None = None,
        received_at: datetime | None = None,
        source_reference: str | None = None,
        source_movement_id: UUID | None = None,
    ) -> BatchRecord:
        """
        Create a batch with remaining == original.

        When original_pieces is given the batch is piece-tracked, and the
        quantity must agree with pieces x coefficient within tolerance.

        Raises:
            ItemNotFoundError: Unknown item.
            InvalidQuantityError: quantity or pieces <= 0, or they disagree.
            InvalidPriceError: unit_price < 0.
        """
        item = self.session.get(ItemModel, item_id)
        if item is None:
            raise ItemNotFoundError(str(item_id))
        if original_quantity is None or original_quantity <= 0:
            raise InvalidQuantityError(
                str(original_quantity), "batch quantity must be greater than zero", str(item_id)
            )
        if original_pieces is not None:
            if original_pieces <= 0:
                raise InvalidQuantityError(
                    str(original_pieces), "batch pieces must be greater than zero", str(item_id)
                )
            rule = self._rule(item)
            if not rule.within_tolerance(rule.to_base(original_pieces), original_quantity):
                raise InvalidQuantityError(
                    str(original_quantity),
                    f"does not match {original_pieces} pieces x {item.coefficient}",
                    str(item_id),
                )
        if unit_price is None or unit_price < 0:
            raise InvalidPriceError(str(unit_price))

        model = BatchModel(
            item_id=item_id,
            original_quantity=original_quantity,
            original_pieces=original_pieces,
            remaining_quantity=original_quantity,
            remaining_pieces=original_pieces,
            unit_price=unit_price,
            received_at=received_at or self.clock.now(),
            source_reference=source_reference,
            source_movement_id=source_movement_id,
            created_by_id=self.actor_id,
        )
        self.session.add(model)
        self._flush()

        logger.info("batch_created", extra={
            "batch_id": str(model.id),
            "item_id": str(item_id),
            "original_quantity": str(original_quantity),
            "original_pieces": str(original_pieces) if original_pieces is not None else None,
            "unit_price": str(unit_price),
            "source_reference": source_reference,
        })
        return BatchRecord.from_model(model)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_batch(self, batch_id: UUID) -> BatchRecord:
        model = self.session.get(BatchModel, batch_id)
        if model is None:
            raise BatchNotFoundError(str(batch_id))
        return BatchRecord.from_model(model)

    def list_available_batches(self, item_id: UUID) -> list[BatchRecord]:
        """
        Batches of an item with stock left, oldest received first.

        The order is a suggestion for the operator, not an allocation rule.
        """
        stmt = (
            select(BatchModel)
            .where(
                BatchModel.item_id == item_id,
                BatchModel.remaining_quantity > self.tolerance,
                or_(
                    BatchModel.original_pieces.is_(None),
                    BatchModel.remaining_pieces > self.tolerance,
                ),
            )
            .order_by(BatchModel.received_at, BatchModel.created_at)
        )
        return [BatchRecord.from_model(m) for m in self.session.scalars(stmt)]

    def batches_by_reference(self, source_reference: str) -> list[BatchRecord]:
        """All batches created from one purchase or entry document."""
        stmt = (
            select(BatchModel)
            .where(BatchModel.source_reference == source_reference)
            .order_by(BatchModel.received_at, BatchModel.created_at)
        )
        return [BatchRecord.from_model(m) for m in self.session.scalars(stmt)]

    def batches_for_movement(self, movement_id: UUID) -> list[BatchRecord]:
        """Batches created by the fresh-receipt lines of one entry movement."""
        stmt = (
            select(BatchModel)
            .where(BatchModel.source_movement_id == movement_id)
            .order_by(BatchModel.received_at, BatchModel.created_at)
        )
        return [BatchRecord.from_model(m) for m in self.session.scalars(stmt)]

    # =========================================================================
    # Remainder changes
    # =========================================================================

    def deplete(
        self,
        batch_id: UUID,
        quantity: Decimal | None = None,
        pieces: Decimal | None = None,
    ) -> BatchAdjustment:
        """
        Take stock out of a batch.

        Raises:
            BatchNotFoundError, InvalidQuantityError,
            InsufficientBatchQuantityError, OptimisticLockError.
        """
        model = self._lock(batch_id)
        plan = plan_depletion(self._balance(model), self._rule_for(model), quantity, pieces)
        self._apply(model, plan)
        self._flush()
        logger.info("batch_depleted", extra=self._log_fields(plan))
        return plan

    def restock(
        self,
        batch_id: UUID,
        quantity: Decimal | None = None,
        pieces: Decimal | None = None,
    ) -> BatchAdjustment:
        """
        Put stock back into a batch.

        Raises:
            BatchNotFoundError, InvalidQuantityError,
            ExceedsOriginalError, OptimisticLockError.
        """
        model = self._lock(batch_id)
        plan = plan_restock(self._balance(model), self._rule_for(model), quantity, pieces)
        self._apply(model, plan)
        self._flush()
        logger.info("batch_restocked", extra=self._log_fields(plan))
        return plan

    def lock_batches(self, batch_ids: Iterable[UUID]) -> None:
        """Lock batch rows in id order, the order apply_net_deltas uses too."""
        for batch_id in sorted(set(batch_ids), key=str):
            self._lock(batch_id)

    def apply_net_deltas(self, deltas: Sequence[NetBatchDelta]) -> list[BatchAdjustment]:
        """
        Apply planned net changes to several batches.

        All batches are locked (in the given order) and every change is
        planned before any remainder is written, so a failure on one batch
        leaves all of them untouched.
        """
        t0 = time.monotonic()
        locked = [(delta, self._lock(delta.batch_id)) for delta in deltas]

        plans: list[tuple[BatchModel, BatchAdjustment]] = []
        for delta, model in locked:
            rule = self._rule_for(model)
            pieces = abs(delta.pieces) if delta.pieces is not None else None
            quantity = abs(delta.quantity)
            if pieces is not None and model.is_piece_tracked and pieces > 0:
                amounts = {"pieces": pieces}
            else:
                amounts = {"quantity": quantity}
            if delta.is_restock:
                plan = plan_restock(self._balance(model), rule, **amounts)
            else:
                plan = plan_depletion(self._balance(model), rule, **amounts)
            plans.append((model, plan))

        for model, plan in plans:
            self._apply(model, plan)
        self._flush()

        logger.info("batch_net_deltas_applied", extra={
            "batch_count": len(plans),
            "batch_ids": [str(plan.batch_id) for _, plan in plans],
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return [plan for _, plan in plans]

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _lock(self, batch_id: UUID) -> BatchModel:
        # Pending changes go out first so the locked read sees them
        self._flush()
        model = self.session.execute(
            select(BatchModel)
            .where(BatchModel.id == batch_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise BatchNotFoundError(str(batch_id))
        return model

    def _flush(self) -> None:
        pending = [str(obj.id) for obj in self.session.dirty if isinstance(obj, BatchModel)]
        try:
            self.session.flush()
        except StaleDataError as exc:
            entity_id = ",".join(pending) or "unknown"
            logger.warning("batch_optimistic_lock_conflict", extra={"batch_ids": pending})
            raise OptimisticLockError("Batch", entity_id) from exc

    def _apply(self, model: BatchModel, plan: BatchAdjustment) -> None:
        model.remaining_quantity = plan.quantity_after
        if model.is_piece_tracked:
            model.remaining_pieces = plan.pieces_after
        model.updated_by_id = self.actor_id

    def _rule_for(self, model: BatchModel) -> UnitConversionRule:
        item = self.session.get(ItemModel, model.item_id)
        if item is None:
            raise ItemNotFoundError(str(model.item_id))
        return self._rule(item)

    def _rule(self, item: ItemModel) -> UnitConversionRule:
        return UnitConversionRule(coefficient=item.coefficient, tolerance=self.tolerance)

    @staticmethod
    def _balance(model: BatchModel) -> BatchBalance:
        return BatchBalance(
            batch_id=model.id,
            original_quantity=model.original_quantity,
            original_pieces=model.original_pieces,
            remaining_quantity=model.remaining_quantity,
            remaining_pieces=model.remaining_pieces,
        )

    @staticmethod
    def _log_fields(plan: BatchAdjustment) -> dict:
        return {
            "batch_id": str(plan.batch_id),
            "quantity_before": str(plan.quantity_before),
            "quantity_after": str(plan.quantity_after),
            "pieces_before": str(plan.pieces_before) if plan.pieces_before is not None else None,
            "pieces_after": str(plan.pieces_after) if plan.pieces_after is not None else None,
        }

