"""
ORM guards that keep batch history untouchable.

A batch records what arrived and what it cost.  Exit lines priced from it
and every remainder computed against its original only stay meaningful if
those facts never change, so once a batch row exists:

    Field / operation                              | Allowed
    -----------------------------------------------|---------------------------
    item_id, original_quantity, original_pieces,   | no (ImmutabilityViolation)
    unit_price, received_at, source_reference,     |
    source_movement_id                             |
    remaining_quantity, remaining_pieces           | yes, via BatchLedger
    version, created/updated metadata              | yes
    DELETE (exhausted batches included)            | no

The checks run in ``before_update`` / ``before_delete`` mapper events, i.e.
inside ``session.flush()`` and before any SQL is sent.  The error propagates
out of the flush and the unit of work rolls back.

InventoryEngine registers the listeners on construction; tests that need to
break the rules on purpose call ``unregister_immutability_listeners()``.
"""

from sqlalchemy import event, inspect

from warehouse_kernel.exceptions import ImmutabilityViolationError
from warehouse_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

BATCH_FROZEN_FIELDS = frozenset({
    "item_id",
    "original_quantity",
    "original_pieces",
    "unit_price",
    "received_at",
    "source_reference",
    "source_movement_id",
})


def _changed_frozen_field(target) -> str | None:
    """First frozen field whose value really changed, or None."""
    state = inspect(target)
    for key in sorted(BATCH_FROZEN_FIELDS):
        history = state.attrs[key].history
        if not history.has_changes():
            continue
        # Assigning the value a field already holds is not a change
        if history.deleted and history.added and history.deleted[0] == history.added[0]:
            continue
        return key
    return None


def _block(target, operation: str, reason: str, **fields) -> None:
    logger.error("immutability_violation_blocked", extra={
        "entity_type": "Batch",
        "entity_id": str(target.id),
        "operation": operation,
        **fields,
    })
    raise ImmutabilityViolationError("Batch", str(target.id), reason)


def _guard_batch_update(mapper, connection, target):
    field = _changed_frozen_field(target)
    if field is not None:
        _block(
            target, "UPDATE",
            f"Field '{field}' is frozen after the batch is created",
            field=field,
        )


def _guard_batch_delete(mapper, connection, target):
    _block(target, "DELETE", "Batches are retained for audit and cannot be deleted")


_LISTENERS = (
    ("before_update", _guard_batch_update),
    ("before_delete", _guard_batch_delete),
)


def register_immutability_listeners():
    """Install the batch guards.  Idempotent."""
    from warehouse_kernel.models.batch import BatchModel

    for name, fn in _LISTENERS:
        if not event.contains(BatchModel, name, fn):
            event.listen(BatchModel, name, fn)


def unregister_immutability_listeners():
    """Remove the batch guards.  Tests only."""
    from warehouse_kernel.models.batch import BatchModel

    for name, fn in _LISTENERS:
        if event.contains(BatchModel, name, fn):
            event.remove(BatchModel, name, fn)
