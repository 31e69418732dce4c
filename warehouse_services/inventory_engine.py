"""
warehouse_services.inventory_engine -- Public facade over the stock ledger.

Responsibility:
    The single entry point the surrounding application calls.  Each public
    method is one unit of work: it opens a session from the injected factory,
    runs the services inside ``session_scope`` (commit on success, rollback
    and re-raise on failure) and returns DTOs.

Architecture position:
    Services -- outermost layer of the package.  Owns the transaction
    boundary; the services it composes only flush.

Invariants enforced:
    - One transaction per call.  A movement is committed with all of its
      batch effects, or nothing is.
    - Only OptimisticLockError (and a stale flush at commit) is retried, up
      to ``ledger.max_lock_retries`` times, each attempt in a fresh session.
      Business errors propagate on the first occurrence.
    - Two concurrent requests with the same movement id: the loser's insert
      fails on the primary key and is resolved against the stored row, so
      the caller still sees ALREADY_RECORDED or MovementPayloadMismatchError.

Failure modes:
    - Every typed WarehouseKernelError raised by the services.
    - OptimisticLockError once the retry budget is spent.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from datetime import datetime
from decimal import Decimal
from typing import TypeVar
from uuid import NAMESPACE_URL, UUID, uuid4, uuid5

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from warehouse_config import get_active_config
from warehouse_config.schema import WarehouseConfig
from warehouse_kernel.db.engine import (
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from warehouse_kernel.db.immutability import register_immutability_listeners
from warehouse_kernel.domain.clock import Clock, SystemClock
from warehouse_kernel.domain.dtos import (
    BatchRecord,
    ItemRecord,
    JobBatchBalance,
    JobMaterialCost,
    MovementRecord,
    MovementResult,
    StockDiscrepancy,
    StockHistoryEntry,
    StockLevel,
    StockStatus,
)
from warehouse_kernel.domain.lines import (
    MovementHeader,
    MovementKind,
    MovementLine,
    PurchaseLine,
    RealLine,
)
from warehouse_kernel.exceptions import OptimisticLockError
from warehouse_kernel.logging_config import LogContext, configure_logging, get_logger
from warehouse_kernel.models.movement import MovementModel
from warehouse_services.movement_recorder import MovementRecorder

logger = get_logger("services.inventory_engine")

T = TypeVar("T")

_PURCHASE_NAMESPACE = uuid5(NAMESPACE_URL, "urn:warehouse:purchase")


def purchase_movement_id(source_reference: str) -> UUID:
    """Deterministic movement id of a purchase receipt, so re-sending it is a no-op."""
    return uuid5(_PURCHASE_NAMESPACE, f"purchase:{source_reference}")


class InventoryEngine:
    """
    Transactional facade: movements, batches, stock levels and job costs.

    Usage:
        engine = InventoryEngine(session_factory, config=get_active_config())
        result = engine.record_movement(
            MovementKind.EXIT,
            [RealLine(item_id=cable, quantity=Decimal("25"), batch_id=lot)],
            job_id=job,
        )
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: WarehouseConfig | None = None,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
    ):
        self._session_factory = session_factory
        self.config = config or WarehouseConfig()
        self.settings = self.config.ledger
        self.clock = clock or SystemClock()
        self.actor_id = actor_id
        register_immutability_listeners()

    @classmethod
    def from_config(
        cls,
        config: WarehouseConfig | None = None,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
    ) -> InventoryEngine:
        """Build the engine from the active configuration set."""
        config = config or get_active_config()
        configure_logging(level=config.logging.level.upper())
        init_engine_from_url(
            config.database.url,
            echo=config.database.echo,
            pool_size=config.database.pool_size,
            max_overflow=config.database.max_overflow,
        )
        return cls(get_session_factory(), config=config, clock=clock, actor_id=actor_id)

    # =========================================================================
    # Movements
    # =========================================================================

    def record_movement(
        self,
        kind: MovementKind,
        lines: Sequence[MovementLine],
        job_id: UUID | None = None,
        movement_id: UUID | None = None,
        header: MovementHeader | None = None,
        received_at: datetime | None = None,
    ) -> MovementResult:
        """
        Record a movement (delivery note) atomically.

        movement_id is the idempotency key; a fresh one is generated when the
        caller does not supply it.
        """
        movement_id = movement_id or uuid4()
        lines = tuple(lines)

        with LogContext.bind(movement_id=movement_id, job_id=job_id, actor_id=self.actor_id):
            def record(recorder: MovementRecorder) -> MovementResult:
                return recorder.record(
                    movement_id, kind, lines,
                    job_id=job_id, header=header, received_at=received_at,
                )

            try:
                return self._run("record_movement", record)
            except IntegrityError:
                if not self._read(lambda s: s.get(MovementModel, movement_id) is not None):
                    raise
                # Lost an insert race on the movement id
                logger.info("movement_duplicate_insert_resolved", extra={
                    "movement_id": str(movement_id),
                })
                return self._run("record_movement", record)

    def replace_movement_lines(
        self,
        movement_id: UUID,
        lines: Sequence[MovementLine],
    ) -> MovementResult:
        lines = tuple(lines)
        with LogContext.bind(movement_id=movement_id, actor_id=self.actor_id):
            return self._run(
                "replace_movement_lines",
                lambda recorder: recorder.replace_lines(movement_id, lines),
            )

    def delete_movement(self, movement_id: UUID) -> MovementRecord:
        with LogContext.bind(movement_id=movement_id, actor_id=self.actor_id):
            return self._run(
                "delete_movement",
                lambda recorder: recorder.delete_movement(movement_id),
            )

    def get_movement(self, movement_id: UUID) -> MovementRecord:
        return self._read(lambda s: self._recorder(s).get_movement(movement_id))

    # =========================================================================
    # Purchases and batches
    # =========================================================================

    def receive_purchase(
        self,
        source_reference: str,
        lines: Sequence[PurchaseLine],
        received_at: datetime | None = None,
    ) -> list[BatchRecord]:
        """
        Receive a purchase document: one entry movement, one batch per line.

        The movement id derives from source_reference, so receiving the same
        document twice creates nothing the second time.
        """
        movement_id = purchase_movement_id(source_reference)
        entry_lines = [
            RealLine(
                item_id=line.item_id,
                quantity=line.quantity,
                pieces=line.pieces,
                unit_price=line.unit_price,
            )
            for line in lines
        ]
        self.record_movement(
            MovementKind.ENTRY,
            entry_lines,
            movement_id=movement_id,
            header=MovementHeader(document_number=source_reference, causal="purchase"),
            received_at=received_at,
        )
        return self._read(
            lambda s: self._recorder(s).ledger.batches_for_movement(movement_id)
        )

    def purchase_batch_availability(self, source_reference: str) -> list[BatchRecord]:
        """Batches received under one document, with what is left of each."""
        return self._read(
            lambda s: self._recorder(s).ledger.batches_by_reference(source_reference)
        )

    def list_available_batches(self, item_id: UUID) -> list[BatchRecord]:
        return self._read(lambda s: self._recorder(s).ledger.list_available_batches(item_id))

    def get_batch(self, batch_id: UUID) -> BatchRecord:
        return self._read(lambda s: self._recorder(s).ledger.get_batch(batch_id))

    # =========================================================================
    # Stock levels
    # =========================================================================

    def on_hand(self, item_id: UUID) -> Decimal:
        return self._read(lambda s: self._recorder(s).projector.on_hand(item_id))

    def recompute_on_hand(self, item_id: UUID) -> Decimal:
        return self._read(lambda s: self._recorder(s).projector.recompute_on_hand(item_id))

    def classify(self, item_id: UUID) -> StockStatus:
        return self._read(lambda s: self._recorder(s).projector.classify(item_id))

    def stock_level(self, item_id: UUID) -> StockLevel:
        return self._read(lambda s: self._recorder(s).projector.stock_level(item_id))

    def item_history(self, item_id: UUID) -> list[StockHistoryEntry]:
        return self._read(lambda s: self._recorder(s).projector.item_history(item_id))

    def reconcile(self) -> list[StockDiscrepancy]:
        return self._read(lambda s: self._recorder(s).projector.reconcile())

    def rebuild_cache(self) -> int:
        return self._run("rebuild_cache", lambda recorder: recorder.projector.rebuild_cache())

    # =========================================================================
    # Job costing
    # =========================================================================

    def material_cost(self, job_id: UUID) -> Decimal:
        return self._read(lambda s: self._recorder(s).job_costing.material_cost(job_id))

    def material_cost_breakdown(self, job_id: UUID) -> JobMaterialCost:
        return self._read(
            lambda s: self._recorder(s).job_costing.material_cost_breakdown(job_id)
        )

    def job_batch_balance(self, job_id: UUID) -> list[JobBatchBalance]:
        return self._read(lambda s: self._recorder(s).job_costing.job_batch_balance(job_id))

    # =========================================================================
    # Fictitious price overrides
    # =========================================================================

    def set_fictitious_price(self, job_id: UUID, item_id: UUID, price: Decimal) -> Decimal:
        def set_override(recorder: MovementRecorder) -> Decimal:
            return recorder.prices.set_override(job_id, item_id, price)

        with LogContext.bind(job_id=job_id, actor_id=self.actor_id):
            try:
                return self._run("set_fictitious_price", set_override)
            except IntegrityError:
                if self.resolve_fictitious_price(job_id, item_id) is None:
                    raise
                # Another session inserted the (job, item) override first
                logger.info("fictitious_price_duplicate_insert_resolved", extra={
                    "job_id": str(job_id),
                    "item_id": str(item_id),
                })
                return self._run("set_fictitious_price", set_override)

    def remove_fictitious_price(self, job_id: UUID, item_id: UUID) -> bool:
        with LogContext.bind(job_id=job_id, actor_id=self.actor_id):
            return self._run(
                "remove_fictitious_price",
                lambda recorder: recorder.prices.remove_override(job_id, item_id),
            )

    def resolve_fictitious_price(self, job_id: UUID, item_id: UUID) -> Decimal | None:
        return self._read(lambda s: self._recorder(s).prices.resolve(job_id, item_id))

    def overrides_for_job(self, job_id: UUID) -> dict[UUID, Decimal]:
        return self._read(lambda s: self._recorder(s).prices.overrides_for_job(job_id))

    # =========================================================================
    # Items
    # =========================================================================

    def register_item(
        self,
        code: str,
        name: str,
        unit: str | None = None,
        coefficient: Decimal = Decimal("1"),
        min_stock: Decimal = Decimal("0"),
        description: str | None = None,
    ) -> ItemRecord:
        return self._run(
            "register_item",
            lambda recorder: recorder.catalog.register_item(
                code,
                name,
                unit=unit or self.settings.default_unit,
                coefficient=coefficient,
                min_stock=min_stock,
                description=description,
            ),
        )

    def update_item(self, item_id: UUID, **changes) -> ItemRecord:
        return self._run(
            "update_item",
            lambda recorder: recorder.catalog.update_item(item_id, **changes),
        )

    def get_item(self, item_id: UUID) -> ItemRecord:
        return self._read(lambda s: self._recorder(s).catalog.get_item(item_id))

    # =========================================================================
    # Unit of work
    # =========================================================================

    def _recorder(self, session: Session) -> MovementRecorder:
        return MovementRecorder(session, self.clock, self.settings, self.actor_id)

    def _read(self, fn: Callable[[Session], T]) -> T:
        with session_scope(self._session_factory) as session:
            return fn(session)

    def _run(self, operation: str, fn: Callable[[MovementRecorder], T]) -> T:
        """Run fn in its own transaction, retrying optimistic lock conflicts."""
        max_attempts = self.settings.max_lock_retries + 1
        t0 = time.monotonic()
        attempt = 0
        while True:
            attempt += 1
            try:
                with session_scope(self._session_factory) as session:
                    return fn(self._recorder(session))
            except (OptimisticLockError, StaleDataError) as exc:
                if attempt >= max_attempts:
                    logger.error("unit_of_work_lock_retries_exhausted", extra={
                        "operation": operation,
                        "attempts": attempt,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    })
                    if isinstance(exc, OptimisticLockError):
                        raise
                    raise OptimisticLockError("Batch", "unknown") from exc
                logger.warning("unit_of_work_lock_retry", extra={
                    "operation": operation,
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "exc_type": type(exc).__name__,
                })
