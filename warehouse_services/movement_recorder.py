"""
warehouse_services.movement_recorder -- Atomic, idempotent movement recording.

Responsibility:
    Validates a movement (entry, exit or sale) and persists its header and
    lines together, applying each line's stock effect:

        Line                              | Effect
        ----------------------------------|---------------------------------
        FictitiousLine                    | none (costing only)
        RealLine, exit / sale             | deplete the named batch
        RealLine, entry with batch_id     | restock the batch (return to lot)
        RealLine, entry without batch_id  | create a new batch (fresh receipt)

    Also replaces the line set of a recorded movement and deletes movements,
    reversing their effects.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Composes ItemCatalog, BatchLedger, FictitiousPriceMap, StockProjector and
    JobCostAggregator over one Session.  Flushes but never commits; the
    InventoryEngine facade owns the transaction.

Invariants enforced:
    - A movement is Draft only in memory; what is persisted is Committed,
      header and lines together, with the on-hand cache updated in the same
      transaction.  Any failure leaves nothing behind once rolled back.
    - At most once per movement id: a repeat with the same payload returns
      the stored result and applies nothing; a repeat with a different
      payload is rejected.
    - Prices are fixed on the line at recording time.
    - replace_lines nets old and new effects per batch, validates every
      affected batch, then applies each net change once.
    - Batch rows are locked in batch id order, on record as on replace, so
      two movements touching the same batches cannot deadlock.

Failure modes:
    - InvalidQuantityError: empty line list, zero/negative quantity or pieces.
    - MissingBatchError: real exit/sale line without batch_id.
    - BatchItemMismatchError: line item differs from batch item.
    - InsufficientBatchQuantityError / ExceedsOriginalError from the ledger.
    - ReturnExceedsJobBalanceError: return larger than the job holds, or an
      issue to a job shrunk or deleted below what the job already returned.
    - MovementPayloadMismatchError: same id, different payload.
    - MovementNotFoundError: replace/delete/get of an unknown movement.

Audit relevance:
    Every line records its price source and whether it needs price review.
    Lines priced at zero are logged as movement_line_price_missing.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from warehouse_config.schema import LedgerSettings
from warehouse_engines.conversion import UnitConversionRule
from warehouse_engines.costing import (
    PriceResolution,
    resolve_batch_line_price,
    resolve_fictitious_price,
    resolve_receipt_price,
)
from warehouse_engines.depletion import BatchEffect, plan_line_replacement
from warehouse_engines.projection import line_stock_delta
from warehouse_kernel.domain.clock import Clock, SystemClock
from warehouse_kernel.domain.dtos import (
    BatchRecord,
    MovementRecord,
    MovementResult,
    RecordingStatus,
)
from warehouse_kernel.domain.lines import (
    FictitiousLine,
    LineEffect,
    MovementHeader,
    MovementKind,
    MovementLine,
    MovementStatus,
    RealLine,
    movement_payload,
)
from warehouse_kernel.exceptions import (
    BatchItemMismatchError,
    InvalidPriceError,
    InvalidQuantityError,
    MissingBatchError,
    MovementNotFoundError,
    MovementPayloadMismatchError,
    ReturnExceedsJobBalanceError,
)
from warehouse_kernel.logging_config import get_logger
from warehouse_kernel.models.movement import MovementLineModel, MovementModel
from warehouse_kernel.selectors.movement_selector import MovementSelector
from warehouse_kernel.utils.hashing import hash_payload
from warehouse_services.batch_ledger import BatchLedger
from warehouse_services.fictitious_prices import FictitiousPriceMap
from warehouse_services.item_catalog import ItemCatalog
from warehouse_services.job_costing import JobCostAggregator
from warehouse_services.stock_projector import StockProjector

logger = get_logger("services.movement_recorder")

_ZERO = Decimal("0")


@dataclass(frozen=True, slots=True)
class _PreparedLine:
    """A validated, priced line whose stock effect has not been applied yet."""

    line_no: int
    item_id: UUID
    quantity: Decimal
    pieces: Decimal | None
    batch_id: UUID | None
    is_fictitious: bool
    effect: LineEffect
    price: PriceResolution

    def batch_effect(self) -> BatchEffect | None:
        if self.effect == LineEffect.DEPLETE:
            return BatchEffect(
                self.batch_id,
                -self.quantity,
                -self.pieces if self.pieces is not None else None,
            )
        if self.effect == LineEffect.RESTOCK:
            return BatchEffect(self.batch_id, self.quantity, self.pieces)
        return None


class MovementRecorder:
    """
    Records movements and their stock effects.

    Contract:
        Receives Session, Clock and LedgerSettings via constructor injection.
    Guarantees:
        - ``record`` is idempotent per movement id.
        - ``replace_lines`` and ``delete_movement`` reverse the old effects
          exactly, fresh receipts included.
    Non-goals:
        - Does not choose batches; a real exit line must name one.
        - Does not commit.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
        actor_id: UUID | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.settings = settings or LedgerSettings()
        self.actor_id = actor_id

        tolerance = self.settings.quantity_tolerance
        self.catalog = ItemCatalog(session, tolerance, actor_id)
        self.ledger = BatchLedger(session, self.clock, tolerance, actor_id)
        self.prices = FictitiousPriceMap(session, actor_id)
        self.projector = StockProjector(session, tolerance)
        self.job_costing = JobCostAggregator(session)
        self.selector = MovementSelector(session)

    # =========================================================================
    # Record
    # =========================================================================

    def record(
        self,
        movement_id: UUID,
        kind: MovementKind,
        lines: Sequence[MovementLine],
        job_id: UUID | None = None,
        header: MovementHeader | None = None,
        received_at: datetime | None = None,
    ) -> MovementResult:
        """
        Validate and persist a movement with all of its stock effects.

        Args:
            movement_id: Caller-supplied id; also the idempotency key.
            kind: entry, exit or sale.
            lines: RealLine / FictitiousLine values in document order.
            job_id: Job the movement belongs to, if any.
            header: Delivery note header fields.
            received_at: Receipt time for batches created by fresh-receipt
                lines.  Defaults to the commit time.
        """
        t0 = time.monotonic()
        header = header or MovementHeader()
        lines = tuple(lines)
        payload_hash = hash_payload(movement_payload(kind, lines, job_id, header))

        logger.info("movement_recording_started", extra={
            "movement_id": str(movement_id),
            "kind": kind.value,
            "job_id": str(job_id) if job_id else None,
            "line_count": len(lines),
            "payload_hash": payload_hash,
        })

        existing = self.session.get(MovementModel, movement_id)
        if existing is not None:
            return self._existing_result(existing, payload_hash)

        if not lines:
            raise InvalidQuantityError("0", "a movement needs at least one line")

        prepared = self._prepare_all(kind, job_id, lines)

        movement = MovementModel(
            id=movement_id,
            kind=kind.value,
            status=MovementStatus.COMMITTED.value,
            job_id=job_id,
            payload_hash=payload_hash,
            committed_at=self.clock.now(),
            created_by_id=self.actor_id,
            **self._header_columns(header),
        )
        self.session.add(movement)
        # Claim the id before touching any batch
        self.session.flush()
        self.ledger.lock_batches(
            line.batch_id for line in prepared
            if line.effect in (LineEffect.DEPLETE, LineEffect.RESTOCK)
        )

        stock_deltas: dict[UUID, Decimal] = {}
        for line in prepared:
            batch_id = line.batch_id
            if line.effect == LineEffect.DEPLETE:
                self.ledger.deplete(batch_id, quantity=line.quantity, pieces=line.pieces)
            elif line.effect == LineEffect.RESTOCK:
                self.ledger.restock(batch_id, quantity=line.quantity, pieces=line.pieces)
            elif line.effect == LineEffect.RECEIPT:
                batch_id = self._receive(movement, line, received_at).id
            movement.lines.append(self._line_model(line, batch_id))
            stock_deltas[line.item_id] = stock_deltas.get(line.item_id, _ZERO) + (
                line_stock_delta(kind, line.is_fictitious, line.quantity)
            )

        self.projector.apply_deltas(stock_deltas)
        self.session.flush()

        record = MovementRecord.from_model(movement)
        logger.info("movement_recorded", extra={
            "movement_id": str(movement_id),
            "kind": kind.value,
            "line_count": len(record.lines),
            "lines_needing_review": len(record.lines_needing_review),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return MovementResult(status=RecordingStatus.RECORDED, movement=record)

    # =========================================================================
    # Replace / delete
    # =========================================================================

    def replace_lines(
        self,
        movement_id: UUID,
        new_lines: Sequence[MovementLine],
    ) -> MovementResult:
        """
        Replace the full line set of a recorded movement.

        The header, kind and job stay as recorded.  Submitting the line set
        the movement already has is a no-op reported as ALREADY_RECORDED.
        """
        t0 = time.monotonic()
        movement = self._load_for_update(movement_id)
        kind = MovementKind(movement.kind)
        new_lines = tuple(new_lines)
        if not new_lines:
            raise InvalidQuantityError("0", "a movement needs at least one line")

        header = MovementRecord.from_model(movement).header
        new_hash = hash_payload(movement_payload(kind, new_lines, movement.job_id, header))
        if new_hash == movement.payload_hash:
            logger.info("movement_replace_unchanged", extra={"movement_id": str(movement_id)})
            return MovementResult(
                status=RecordingStatus.ALREADY_RECORDED,
                movement=MovementRecord.from_model(movement),
            )

        prepared = self._prepare_all(
            kind, movement.job_id, new_lines, exclude_movement_id=movement.id
        )
        old_count = len(movement.lines)
        self._rewrite(movement, kind, prepared)
        movement.payload_hash = new_hash
        movement.updated_by_id = self.actor_id
        self.session.flush()

        record = MovementRecord.from_model(movement)
        logger.info("movement_lines_replaced", extra={
            "movement_id": str(movement_id),
            "old_line_count": old_count,
            "new_line_count": len(record.lines),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return MovementResult(status=RecordingStatus.REPLACED, movement=record)

    def delete_movement(self, movement_id: UUID) -> MovementRecord:
        """
        Reverse every effect of a movement and remove it.

        Batches created by its fresh-receipt lines are depleted back to zero
        and kept; they fail the delete if that stock was already issued.
        """
        movement = self._load_for_update(movement_id)
        record = MovementRecord.from_model(movement)
        self._rewrite(movement, MovementKind(movement.kind), [])
        self.session.delete(movement)
        self.session.flush()

        logger.info("movement_deleted", extra={
            "movement_id": str(movement_id),
            "kind": record.kind.value,
            "line_count": len(record.lines),
        })
        return record

    def get_movement(self, movement_id: UUID) -> MovementRecord:
        record = self.selector.get(movement_id)
        if record is None:
            raise MovementNotFoundError(str(movement_id))
        return record

    # =========================================================================
    # Line preparation
    # =========================================================================

    def _prepare_all(
        self,
        kind: MovementKind,
        job_id: UUID | None,
        lines: Sequence[MovementLine],
        exclude_movement_id: UUID | None = None,
    ) -> list[_PreparedLine]:
        returned: dict[UUID, Decimal] = {}
        return [
            self._prepare(kind, job_id, line_no, line, exclude_movement_id, returned)
            for line_no, line in enumerate(lines, start=1)
        ]

    def _prepare(
        self,
        kind: MovementKind,
        job_id: UUID | None,
        line_no: int,
        line: MovementLine,
        exclude_movement_id: UUID | None,
        returned: dict[UUID, Decimal],
    ) -> _PreparedLine:
        match line:
            case FictitiousLine():
                quantity, pieces = self._normalize(line)
                return _PreparedLine(
                    line_no=line_no,
                    item_id=line.item_id,
                    quantity=quantity,
                    pieces=pieces,
                    batch_id=None,
                    is_fictitious=True,
                    effect=LineEffect.NONE,
                    price=resolve_fictitious_price(self.prices.resolve(job_id, line.item_id)),
                )
            case RealLine():
                quantity, pieces = self._normalize(line)
                if kind.is_outbound:
                    if line.batch_id is None:
                        raise MissingBatchError(str(line.item_id), kind.value)
                    batch = self._batch_for(line)
                    override = self.prices.resolve(job_id, line.item_id)
                    price = resolve_batch_line_price(kind, batch.unit_price, override)
                    effect = LineEffect.DEPLETE
                elif line.batch_id is not None:
                    batch = self._batch_for(line)
                    if job_id is not None and self.settings.enforce_job_return_balance:
                        self._check_job_return(
                            job_id, batch.id, quantity, exclude_movement_id, returned
                        )
                    price = resolve_batch_line_price(kind, batch.unit_price, None)
                    effect = LineEffect.RESTOCK
                else:
                    if line.unit_price is not None and line.unit_price < 0:
                        raise InvalidPriceError(str(line.unit_price))
                    price = resolve_receipt_price(line.unit_price)
                    effect = LineEffect.RECEIPT
                return _PreparedLine(
                    line_no=line_no,
                    item_id=line.item_id,
                    quantity=quantity,
                    pieces=pieces,
                    batch_id=line.batch_id,
                    is_fictitious=False,
                    effect=effect,
                    price=price,
                )
            case _:
                raise TypeError(f"Unsupported movement line type: {type(line).__name__}")

    def _normalize(self, line: MovementLine) -> tuple[Decimal, Decimal | None]:
        """
        Validate the line measures and derive quantity from pieces.

        Pieces, when given, are authoritative: quantity becomes
        pieces x coefficient.
        """
        item_ref = str(line.item_id)
        if line.quantity is None or line.quantity <= 0:
            raise InvalidQuantityError(
                str(line.quantity), "line quantity must be greater than zero", item_ref
            )
        rule: UnitConversionRule = self.catalog.conversion_rule(line.item_id)
        if line.pieces is None:
            return line.quantity, None
        if line.pieces <= 0:
            raise InvalidQuantityError(
                str(line.pieces), "line pieces must be greater than zero", item_ref
            )
        derived = rule.to_base(line.pieces)
        if not rule.within_tolerance(derived, line.quantity):
            logger.warning("movement_line_quantity_recomputed", extra={
                "item_id": item_ref,
                "pieces": str(line.pieces),
                "supplied_quantity": str(line.quantity),
                "derived_quantity": str(derived),
            })
        return derived, line.pieces

    def _batch_for(self, line: RealLine) -> BatchRecord:
        batch = self.ledger.get_batch(line.batch_id)
        if batch.item_id != line.item_id:
            raise BatchItemMismatchError(
                str(batch.id), str(batch.item_id), str(line.item_id)
            )
        return batch

    def _check_job_return(
        self,
        job_id: UUID,
        batch_id: UUID,
        quantity: Decimal,
        exclude_movement_id: UUID | None,
        returned: dict[UUID, Decimal],
    ) -> None:
        already = returned.get(batch_id, _ZERO)
        on_site = (
            self.job_costing.on_site_quantity(job_id, batch_id, exclude_movement_id)
            - already
        )
        if quantity > on_site:
            logger.warning("job_return_exceeds_balance", extra={
                "job_id": str(job_id),
                "batch_id": str(batch_id),
                "requested": str(quantity),
                "on_site": str(on_site),
            })
            raise ReturnExceedsJobBalanceError(
                str(job_id), str(batch_id), str(quantity), str(on_site)
            )
        returned[batch_id] = already + quantity

    def _check_issue_covers_returns(
        self,
        movement: MovementModel,
        kind: MovementKind,
        old_lines: Sequence[MovementLineModel],
        prepared: Sequence[_PreparedLine],
    ) -> None:
        """
        Shrinking or deleting an issue to a job may not leave that job
        having returned more of a batch than it was issued.
        """
        job_id = movement.job_id
        if not kind.is_outbound or job_id is None or not self.settings.enforce_job_return_balance:
            return
        new_issued: dict[UUID, Decimal] = {}
        for line in prepared:
            if line.effect == LineEffect.DEPLETE:
                new_issued[line.batch_id] = new_issued.get(line.batch_id, _ZERO) + line.quantity
        old_batches = {
            line.batch_id for line in old_lines
            if line.effect == LineEffect.DEPLETE.value and line.batch_id is not None
        }
        for batch_id in sorted(old_batches, key=str):
            issued, returned = self.job_costing.batch_site_totals(job_id, batch_id, movement.id)
            held = issued + new_issued.get(batch_id, _ZERO)
            if returned > held:
                logger.warning("job_issue_below_returns", extra={
                    "job_id": str(job_id),
                    "batch_id": str(batch_id),
                    "returned": str(returned),
                    "issued": str(held),
                })
                raise ReturnExceedsJobBalanceError(
                    str(job_id), str(batch_id), str(returned), str(held)
                )

    # =========================================================================
    # Persistence helpers
    # =========================================================================

    def _rewrite(
        self,
        movement: MovementModel,
        kind: MovementKind,
        prepared: Sequence[_PreparedLine],
    ) -> None:
        """Swap a movement's lines, applying only the net batch changes."""
        old_lines = list(movement.lines)
        self._check_issue_covers_returns(movement, kind, old_lines, prepared)
        old_effects = [
            effect for effect in (self._stored_effect(line) for line in old_lines)
            if effect is not None
        ]
        new_effects = [
            effect for effect in (line.batch_effect() for line in prepared)
            if effect is not None
        ]
        self.ledger.apply_net_deltas(plan_line_replacement(old_effects, new_effects))

        stock_deltas: dict[UUID, Decimal] = {}
        for line in old_lines:
            stock_deltas[line.item_id] = stock_deltas.get(line.item_id, _ZERO) - (
                line_stock_delta(kind, line.is_fictitious, line.quantity)
            )

        movement.lines.clear()
        # Old rows must be gone before new rows reuse their line numbers
        self.session.flush()

        for line in prepared:
            batch_id = line.batch_id
            if line.effect == LineEffect.RECEIPT:
                batch_id = self._receive(movement, line, None).id
            movement.lines.append(self._line_model(line, batch_id))
            stock_deltas[line.item_id] = stock_deltas.get(line.item_id, _ZERO) + (
                line_stock_delta(kind, line.is_fictitious, line.quantity)
            )

        self.projector.apply_deltas(stock_deltas)

    @staticmethod
    def _stored_effect(line: MovementLineModel) -> BatchEffect | None:
        """What a persisted line did to its batch, as a signed effect."""
        if line.batch_id is None:
            return None
        if line.effect == LineEffect.DEPLETE.value:
            return BatchEffect(
                line.batch_id,
                -line.quantity,
                -line.pieces if line.pieces is not None else None,
            )
        if line.effect in (LineEffect.RESTOCK.value, LineEffect.RECEIPT.value):
            return BatchEffect(line.batch_id, line.quantity, line.pieces)
        return None

    def _receive(
        self,
        movement: MovementModel,
        line: _PreparedLine,
        received_at: datetime | None,
    ) -> BatchRecord:
        return self.ledger.create_batch(
            item_id=line.item_id,
            original_quantity=line.quantity,
            unit_price=line.price.price,
            original_pieces=line.pieces,
            received_at=received_at or movement.committed_at,
            source_reference=movement.document_number,
            source_movement_id=movement.id,
        )

    def _line_model(self, line: _PreparedLine, batch_id: UUID | None) -> MovementLineModel:
        if line.price.needs_review:
            logger.warning("movement_line_price_missing", extra={
                "line_no": line.line_no,
                "item_id": str(line.item_id),
                "price_source": line.price.source.value,
                "is_fictitious": line.is_fictitious,
            })
        return MovementLineModel(
            line_no=line.line_no,
            item_id=line.item_id,
            quantity=line.quantity,
            pieces=line.pieces,
            batch_id=batch_id,
            is_fictitious=line.is_fictitious,
            unit_price_at_movement=line.price.price,
            price_source=line.price.source.value,
            needs_price_review=line.price.needs_review,
            effect=line.effect.value,
        )

    def _existing_result(self, existing: MovementModel, payload_hash: str) -> MovementResult:
        if existing.payload_hash != payload_hash:
            logger.warning("movement_payload_mismatch", extra={
                "movement_id": str(existing.id),
                "expected_hash": existing.payload_hash,
                "received_hash": payload_hash,
            })
            raise MovementPayloadMismatchError(
                str(existing.id), existing.payload_hash, payload_hash
            )
        logger.info("movement_already_recorded", extra={"movement_id": str(existing.id)})
        return MovementResult(
            status=RecordingStatus.ALREADY_RECORDED,
            movement=MovementRecord.from_model(existing),
        )

    def _load_for_update(self, movement_id: UUID) -> MovementModel:
        movement = self.session.execute(
            select(MovementModel)
            .where(MovementModel.id == movement_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if movement is None:
            raise MovementNotFoundError(str(movement_id))
        return movement

    @staticmethod
    def _header_columns(header: MovementHeader) -> dict:
        return {
            "document_number": header.document_number,
            "movement_date": header.movement_date,
            "causal": header.causal,
            "pickup_location": header.pickup_location,
            "delivery_location": header.delivery_location,
            "transport_mean": header.transport_mean,
            "transport_time": header.transport_time,
            "appearance": header.appearance,
            "packages_count": header.packages_count,
            "notes": header.notes,
        }
