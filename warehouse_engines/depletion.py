"""
warehouse_engines.depletion -- Batch remainder arithmetic.

Responsibility:
    Computes what a depletion (exit, sale, receipt reversal) or a restock
    (return to lot) does to a batch's two remainders, quantity and pieces,
    and plans the net per-batch changes when a movement's lines are replaced.
    Nothing here touches the database: BatchLedger locks the row, calls these
    functions and writes the result.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - 0 <= remaining <= original for both measures after every plan.
    - The measure the caller supplied is checked strictly.  An overdraw is
      rejected, never clamped.
    - The other measure is derived through the item coefficient.  It may
      overshoot its bound only by the quantity tolerance, and then snaps to
      the bound.  Likewise, when the supplied measure lands exactly on a
      bound, a derived measure within tolerance of that bound snaps to it.
    - When both measures are supplied, pieces drive the change.
    - Batches that are not piece-tracked ignore the pieces measure.

Failure modes:
    - InvalidQuantityError: neither measure supplied, or a non-positive one.
    - InsufficientBatchQuantityError: depletion beyond the remainder.
    - ExceedsOriginalError: restock beyond the original receipt.

Audit relevance:
    plan_line_replacement() nets old and new line effects per batch so a
    replaced movement applies each batch change once, after every affected
    batch has been validated.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from warehouse_engines.conversion import UnitConversionRule
from warehouse_kernel.exceptions import (
    ExceedsOriginalError,
    InsufficientBatchQuantityError,
    InvalidQuantityError,
)
from warehouse_kernel.logging_config import get_logger

logger = get_logger("engines.depletion")

_ZERO = Decimal("0")


@dataclass(frozen=True, slots=True)
class BatchBalance:
    """The remainders of one batch as read under lock."""

    batch_id: UUID
    original_quantity: Decimal
    original_pieces: Decimal | None
    remaining_quantity: Decimal
    remaining_pieces: Decimal | None

    @property
    def is_piece_tracked(self) -> bool:
        return self.original_pieces is not None


@dataclass(frozen=True, slots=True)
class BatchAdjustment:
    """Planned new remainders of one batch."""

    batch_id: UUID
    quantity_before: Decimal
    quantity_after: Decimal
    pieces_before: Decimal | None
    pieces_after: Decimal | None

    @property
    def quantity_delta(self) -> Decimal:
        return self.quantity_after - self.quantity_before

    @property
    def pieces_delta(self) -> Decimal | None:
        if self.pieces_before is None or self.pieces_after is None:
            return None
        return self.pieces_after - self.pieces_before


def _require_amounts(
    quantity: Decimal | None,
    pieces: Decimal | None,
) -> None:
    if quantity is None and pieces is None:
        raise InvalidQuantityError("None", "quantity or pieces is required")
    if quantity is not None and quantity <= 0:
        raise InvalidQuantityError(str(quantity), "must be greater than zero")
    if pieces is not None and pieces <= 0:
        raise InvalidQuantityError(str(pieces), "pieces must be greater than zero")


def plan_depletion(
    balance: BatchBalance,
    rule: UnitConversionRule,
    quantity: Decimal | None = None,
    pieces: Decimal | None = None,
) -> BatchAdjustment:
    """
    Plan taking stock out of a batch.

    Raises:
        InvalidQuantityError: Nothing (or a non-positive amount) requested.
        InsufficientBatchQuantityError: The request exceeds the remainder.
    """
    _require_amounts(quantity, pieces)
    tol = rule.tolerance
    batch_ref = str(balance.batch_id)

    if balance.is_piece_tracked and pieces is not None:
        # Pieces drive; quantity follows through the coefficient
        if pieces > balance.remaining_pieces:
            raise InsufficientBatchQuantityError(
                batch_ref, str(pieces), str(balance.remaining_pieces), "pieces"
            )
        new_pieces = balance.remaining_pieces - pieces
        new_quantity = balance.remaining_quantity - rule.to_base(pieces)
        if new_quantity < _ZERO:
            if -new_quantity > tol:
                raise InsufficientBatchQuantityError(
                    batch_ref,
                    str(rule.to_base(pieces)),
                    str(balance.remaining_quantity),
                    "quantity",
                )
            new_quantity = _ZERO
        if new_pieces == _ZERO and new_quantity <= tol:
            new_quantity = _ZERO
    else:
        requested = quantity if quantity is not None else rule.to_base(pieces)
        if requested > balance.remaining_quantity:
            raise InsufficientBatchQuantityError(
                batch_ref, str(requested), str(balance.remaining_quantity), "quantity"
            )
        new_quantity = balance.remaining_quantity - requested
        new_pieces = None
        if balance.is_piece_tracked:
            new_pieces = balance.remaining_pieces - rule.to_pieces(requested)
            if new_pieces < _ZERO:
                if -new_pieces > tol:
                    raise InsufficientBatchQuantityError(
                        batch_ref,
                        str(rule.to_pieces(requested)),
                        str(balance.remaining_pieces),
                        "pieces",
                    )
                new_pieces = _ZERO
            if new_quantity == _ZERO and new_pieces <= tol:
                new_pieces = _ZERO

    return BatchAdjustment(
        batch_id=balance.batch_id,
        quantity_before=balance.remaining_quantity,
        quantity_after=new_quantity,
        pieces_before=balance.remaining_pieces,
        pieces_after=new_pieces,
    )


def plan_restock(
    balance: BatchBalance,
    rule: UnitConversionRule,
    quantity: Decimal | None = None,
    pieces: Decimal | None = None,
) -> BatchAdjustment:
    """
    Plan putting stock back into a batch.

    Raises:
        InvalidQuantityError: Nothing (or a non-positive amount) supplied.
        ExceedsOriginalError: The result would exceed the original receipt.
    """
    _require_amounts(quantity, pieces)
    tol = rule.tolerance
    batch_ref = str(balance.batch_id)

    if balance.is_piece_tracked and pieces is not None:
        new_pieces = balance.remaining_pieces + pieces
        if new_pieces > balance.original_pieces:
            raise ExceedsOriginalError(
                batch_ref, str(new_pieces), str(balance.original_pieces), "pieces"
            )
        new_quantity = balance.remaining_quantity + rule.to_base(pieces)
        if new_quantity > balance.original_quantity:
            if new_quantity - balance.original_quantity > tol:
                raise ExceedsOriginalError(
                    batch_ref,
                    str(new_quantity),
                    str(balance.original_quantity),
                    "quantity",
                )
            new_quantity = balance.original_quantity
        if (
            new_pieces == balance.original_pieces
            and balance.original_quantity - new_quantity <= tol
        ):
            new_quantity = balance.original_quantity
    else:
        added = quantity if quantity is not None else rule.to_base(pieces)
        new_quantity = balance.remaining_quantity + added
        if new_quantity > balance.original_quantity:
            raise ExceedsOriginalError(
                batch_ref, str(new_quantity), str(balance.original_quantity), "quantity"
            )
        new_pieces = None
        if balance.is_piece_tracked:
            new_pieces = balance.remaining_pieces + rule.to_pieces(added)
            if new_pieces > balance.original_pieces:
                if new_pieces - balance.original_pieces > tol:
                    raise ExceedsOriginalError(
                        batch_ref,
                        str(new_pieces),
                        str(balance.original_pieces),
                        "pieces",
                    )
                new_pieces = balance.original_pieces
            if (
                new_quantity == balance.original_quantity
                and balance.original_pieces - new_pieces <= tol
            ):
                new_pieces = balance.original_pieces

    return BatchAdjustment(
        batch_id=balance.batch_id,
        quantity_before=balance.remaining_quantity,
        quantity_after=new_quantity,
        pieces_before=balance.remaining_pieces,
        pieces_after=new_pieces,
    )


@dataclass(frozen=True, slots=True)
class BatchEffect:
    """
    Signed effect of one line on one batch.

    Positive amounts put stock back (restock), negative ones take it out.
    pieces is None when the line did not carry a piece count.
    """

    batch_id: UUID
    quantity: Decimal
    pieces: Decimal | None = None

    def reversed(self) -> BatchEffect:
        return BatchEffect(
            batch_id=self.batch_id,
            quantity=-self.quantity,
            pieces=None if self.pieces is None else -self.pieces,
        )


@dataclass(frozen=True, slots=True)
class NetBatchDelta:
    """
    Net change to apply to one batch during a line replacement.

    pieces is set only when every contributing line carried pieces; the
    ledger then drives the change by pieces, otherwise by quantity.
    """

    batch_id: UUID
    quantity: Decimal
    pieces: Decimal | None

    @property
    def is_noop(self) -> bool:
        if self.pieces is not None:
            return self.pieces == _ZERO and self.quantity == _ZERO
        return self.quantity == _ZERO

    @property
    def is_restock(self) -> bool:
        if self.pieces is not None and self.pieces != _ZERO:
            return self.pieces > _ZERO
        return self.quantity > _ZERO


def plan_line_replacement(
    old_effects: Iterable[BatchEffect],
    new_effects: Iterable[BatchEffect],
) -> list[NetBatchDelta]:
    """
    Net the reversal of the old line effects against the new ones.

    Returns:
        One NetBatchDelta per affected batch with a non-zero net change,
        sorted by batch id so that rows are always locked in the same order.
    """
    quantity_by_batch: dict[UUID, Decimal] = {}
    pieces_by_batch: dict[UUID, Decimal | None] = {}

    contributions = [effect.reversed() for effect in old_effects]
    contributions.extend(new_effects)

    for effect in contributions:
        quantity_by_batch[effect.batch_id] = (
            quantity_by_batch.get(effect.batch_id, _ZERO) + effect.quantity
        )
        if effect.batch_id not in pieces_by_batch:
            pieces_by_batch[effect.batch_id] = effect.pieces
        elif pieces_by_batch[effect.batch_id] is not None and effect.pieces is not None:
            pieces_by_batch[effect.batch_id] += effect.pieces
        else:
            pieces_by_batch[effect.batch_id] = None

    deltas = [
        NetBatchDelta(
            batch_id=batch_id,
            quantity=quantity_by_batch[batch_id],
            pieces=pieces_by_batch[batch_id],
        )
        for batch_id in sorted(quantity_by_batch, key=str)
    ]
    planned = [delta for delta in deltas if not delta.is_noop]

    logger.debug(
        "line_replacement_planned",
        extra={
            "affected_batches": len(deltas),
            "changed_batches": len(planned),
        },
    )
    return planned
