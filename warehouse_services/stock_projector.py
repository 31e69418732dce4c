"""
warehouse_services.stock_projector -- On-hand cache, replay and stock status.

Responsibility:
    Keeps the per-item on_hand counter in step with the movement ledger,
    recomputes it from scratch on demand, classifies stock against min_stock,
    and reconciles the cache, the replay and the batch remainders.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Replay and classification are pure functions in
    warehouse_engines.projection; ledger reads go through MovementSelector.

Invariants enforced:
    - The cache is updated in the same transaction as the movement that
      changes it, with a single relative UPDATE (on_hand = on_hand + delta)
      so concurrent movements on the same item cannot lose an update.
    - After any sequence of committed movements, on_hand(item) equals the
      replay of the ledger for that item.

Failure modes:
    - ItemNotFoundError on an unknown item.

Audit relevance:
    reconcile() reports every item whose cache or batch total drifted from
    the ledger; rebuild_cache() rewrites the cache from the replay.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from warehouse_engines.conversion import DEFAULT_QUANTITY_TOLERANCE
from warehouse_engines.projection import (
    classify_stock,
    line_stock_delta,
    project_item_on_hand,
    project_on_hand,
)
from warehouse_kernel.domain.dtos import (
    StockDiscrepancy,
    StockHistoryEntry,
    StockLevel,
    StockStatus,
)
from warehouse_kernel.exceptions import ItemNotFoundError
from warehouse_kernel.logging_config import get_logger
from warehouse_kernel.models.item import ItemModel
from warehouse_kernel.selectors.movement_selector import MovementSelector

logger = get_logger("services.stock_projector")

_ZERO = Decimal("0")


class StockProjector:
    """
    On-hand projection service.

    Contract:
        Receives a Session via constructor injection.
    Guarantees:
        - ``on_hand`` reads the cache; ``recompute_on_hand`` replays the ledger.
        - ``apply_deltas`` is the only writer of the cache during recording.
    """

    def __init__(
        self,
        session: Session,
        tolerance: Decimal = DEFAULT_QUANTITY_TOLERANCE,
    ):
        self.session = session
        self.tolerance = tolerance
        self.selector = MovementSelector(session)

    # =========================================================================
    # Cache maintenance
    # =========================================================================

    def apply_deltas(self, deltas: Mapping[UUID, Decimal]) -> None:
        """Add signed deltas to the cached on_hand of each item."""
        for item_id in sorted(deltas, key=str):
            delta = deltas[item_id]
            if delta == _ZERO:
                continue
            self.session.execute(
                update(ItemModel)
                .where(ItemModel.id == item_id)
                .values(on_hand=ItemModel.on_hand + delta)
                .execution_options(synchronize_session="fetch")
            )
            logger.debug("on_hand_cache_updated", extra={
                "item_id": str(item_id),
                "delta": str(delta),
            })

    # =========================================================================
    # Queries
    # =========================================================================

    def on_hand(self, item_id: UUID) -> Decimal:
        return self._load(item_id).on_hand

    def recompute_on_hand(self, item_id: UUID) -> Decimal:
        """Full replay: real entries minus real exits and sales."""
        self._load(item_id)
        return project_item_on_hand(item_id, self.selector.ledger_lines(item_id))

    def classify(self, item_id: UUID) -> StockStatus:
        item = self._load(item_id)
        return classify_stock(item.on_hand, item.min_stock)

    def stock_level(self, item_id: UUID) -> StockLevel:
        item = self._load(item_id)
        return StockLevel(
            item_id=item.id,
            on_hand=item.on_hand,
            min_stock=item.min_stock,
            status=classify_stock(item.on_hand, item.min_stock),
        )

    def item_history(self, item_id: UUID) -> list[StockHistoryEntry]:
        """Chronological list of every line that mentions the item."""
        self._load(item_id)
        return [
            StockHistoryEntry(
                movement_id=entry.movement_id,
                kind=entry.kind,
                committed_at=entry.committed_at,
                movement_date=entry.movement_date,
                document_number=entry.document_number,
                job_id=entry.job_id,
                line_no=entry.line.line_no,
                quantity=entry.line.quantity,
                signed_quantity=line_stock_delta(
                    entry.kind, entry.line.is_fictitious, entry.line.quantity
                ),
                batch_id=entry.line.batch_id,
                is_fictitious=entry.line.is_fictitious,
                unit_price_at_movement=entry.line.unit_price_at_movement,
            )
            for entry in self.selector.ledger_lines(item_id)
        ]

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def reconcile(self) -> list[StockDiscrepancy]:
        """
        Compare cache, replay and batch remainders for every item.

        Returns only the items that disagree: cache != replay, or batch
        total further than the tolerance from the replay.
        """
        replayed = project_on_hand(self.selector.ledger_lines())
        batch_totals: dict[UUID, Decimal] = {}
        for item_id, remaining in self.selector.batch_remainders():
            batch_totals[item_id] = batch_totals.get(item_id, _ZERO) + remaining

        discrepancies: list[StockDiscrepancy] = []
        for item in self.session.scalars(select(ItemModel).order_by(ItemModel.code)):
            discrepancy = StockDiscrepancy(
                item_id=item.id,
                item_code=item.code,
                cached_on_hand=item.on_hand,
                replayed_on_hand=replayed.get(item.id, _ZERO),
                batch_remaining_total=batch_totals.get(item.id, _ZERO),
            )
            if discrepancy.cache_drift != _ZERO or abs(discrepancy.batch_drift) > self.tolerance:
                logger.warning("stock_discrepancy_detected", extra={
                    "item_id": str(item.id),
                    "item_code": item.code,
                    "cached_on_hand": str(discrepancy.cached_on_hand),
                    "replayed_on_hand": str(discrepancy.replayed_on_hand),
                    "batch_remaining_total": str(discrepancy.batch_remaining_total),
                })
                discrepancies.append(discrepancy)

        logger.info("stock_reconciliation_completed", extra={
            "discrepancy_count": len(discrepancies),
        })
        return discrepancies

    def rebuild_cache(self) -> int:
        """Rewrite every item's cache from the replay.  Returns items changed."""
        replayed = project_on_hand(self.selector.ledger_lines())
        changed = 0
        for item in self.session.scalars(
            select(ItemModel).with_for_update().execution_options(populate_existing=True)
        ):
            value = replayed.get(item.id, _ZERO)
            if item.on_hand != value:
                logger.warning("on_hand_cache_rebuilt", extra={
                    "item_id": str(item.id),
                    "old_on_hand": str(item.on_hand),
                    "new_on_hand": str(value),
                })
                item.on_hand = value
                changed += 1
        self.session.flush()
        return changed

    def _load(self, item_id: UUID) -> ItemModel:
        item = self.session.get(ItemModel, item_id)
        if item is None:
            raise ItemNotFoundError(str(item_id))
        return item
