"""
Typed Exception Hierarchy for the Warehouse Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Stock errors reach the request handlers of the surrounding application, which
must turn them into form messages ("quantità eccessiva per il lotto
selezionato") without parsing strings. Every error therefore has:

  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (batch id, requested, available, ...)

Example:
    try:
        engine.record_movement(kind=MovementKind.EXIT, lines=lines, job_id=job)
    except InsufficientBatchQuantityError as e:
        return {"error": e.code, "batch": e.batch_id, "available": e.available}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    WarehouseKernelError (base)
    |
    +-- QuantityError
    |   +-- InvalidQuantityError
    |   +-- InvalidCoefficientError
    |
    +-- BatchError
    |   +-- BatchNotFoundError
    |   +-- InsufficientBatchQuantityError
    |   +-- ExceedsOriginalError
    |   +-- BatchItemMismatchError
    |   +-- MissingBatchError
    |
    +-- PriceError
    |   +-- InvalidPriceError
    |
    +-- MovementError
    |   +-- MovementNotFoundError
    |   +-- MovementPayloadMismatchError
    |   +-- ReturnExceedsJobBalanceError
    |
    +-- ItemError
    |   +-- ItemNotFoundError
    |   +-- DuplicateItemCodeError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                         | When Raised
-------------|------------------------------|-----------------------------------------
Quantity     | INVALID_QUANTITY             | Zero/negative line quantity, empty movement
             | INVALID_COEFFICIENT          | Item coefficient <= 0
-------------|------------------------------|-----------------------------------------
Batch        | BATCH_NOT_FOUND              | Batch id does not exist
             | INSUFFICIENT_BATCH_QUANTITY  | Overdraw of a lot (never clamped)
             | EXCEEDS_ORIGINAL             | Restock beyond the original receipt
             | BATCH_ITEM_MISMATCH          | Line item differs from batch item
             | MISSING_BATCH                | Real exit/sale line without a batch
-------------|------------------------------|-----------------------------------------
Price        | INVALID_PRICE                | Negative override or unit price
-------------|------------------------------|-----------------------------------------
Movement     | MOVEMENT_NOT_FOUND           | Movement id does not exist
             | MOVEMENT_PAYLOAD_MISMATCH    | Same movement id, different content
             | RETURN_EXCEEDS_JOB_BALANCE   | Return larger than what the job holds
-------------|------------------------------|-----------------------------------------
Item         | ITEM_NOT_FOUND               | Item id/code does not exist
             | DUPLICATE_ITEM_CODE          | Item code already registered
-------------|------------------------------|-----------------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT     | Batch row changed by another transaction
-------------|------------------------------|-----------------------------------------
Immutability | IMMUTABILITY_VIOLATION       | Batch original fields changed or deleted

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Business errors (quantity, batch, price, movement) are surfaced to the
   caller synchronously and are never retried: an overdraw is a decision for
   the user, not a transient fault.

2. OptimisticLockError is the only retryable error. InventoryEngine retries
   the whole unit of work in a fresh transaction.

3. A missing price is NOT an error. The line is recorded with
   needs_price_review=True.
"""


class WarehouseKernelError(Exception):
    """
    Base exception for all warehouse kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "WAREHOUSE_KERNEL_ERROR"


# Quantity-related exceptions


class QuantityError(WarehouseKernelError):
    """Base exception for quantity and unit errors."""

    code: str = "QUANTITY_ERROR"


class InvalidQuantityError(QuantityError):
    """A line or batch quantity is zero, negative or otherwise unusable."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: str, reason: str, item_id: str | None = None):
        self.quantity = quantity
        self.reason = reason
        self.item_id = item_id
        target = f" for item {item_id}" if item_id else ""
        super().__init__(f"Invalid quantity {quantity}{target}: {reason}")


class InvalidCoefficientError(QuantityError):
    """Item coefficient must be strictly positive."""

    code: str = "INVALID_COEFFICIENT"

    def __init__(self, coefficient: str, item_id: str | None = None):
        self.coefficient = coefficient
        self.item_id = item_id
        target = f" on item {item_id}" if item_id else ""
        super().__init__(
            f"Invalid coefficient {coefficient}{target}: must be greater than zero"
        )


# Batch-related exceptions


class BatchError(WarehouseKernelError):
    """Base exception for batch (lot) errors."""

    code: str = "BATCH_ERROR"


class BatchNotFoundError(BatchError):
    """Batch with the given id does not exist."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch not found: {batch_id}")


class InsufficientBatchQuantityError(BatchError):
    """The requested amount exceeds what is left in the batch."""

    code: str = "INSUFFICIENT_BATCH_QUANTITY"

    def __init__(
        self,
        batch_id: str,
        requested: str,
        available: str,
        dimension: str = "quantity",
    ):
        self.batch_id = batch_id
        self.requested = requested
        self.available = available
        self.dimension = dimension
        super().__init__(
            f"Insufficient {dimension} in batch {batch_id}: "
            f"requested {requested}, available {available}"
        )


class ExceedsOriginalError(BatchError):
    """A restock would push the remaining amount above the original receipt."""

    code: str = "EXCEEDS_ORIGINAL"

    def __init__(
        self,
        batch_id: str,
        resulting: str,
        original: str,
        dimension: str = "quantity",
    ):
        self.batch_id = batch_id
        self.resulting = resulting
        self.original = original
        self.dimension = dimension
        super().__init__(
            f"Restock of batch {batch_id} would leave {dimension} {resulting}, "
            f"above the original {original}"
        )


class BatchItemMismatchError(BatchError):
    """A line references a batch that belongs to a different item."""

    code: str = "BATCH_ITEM_MISMATCH"

    def __init__(self, batch_id: str, batch_item_id: str, line_item_id: str):
        self.batch_id = batch_id
        self.batch_item_id = batch_item_id
        self.line_item_id = line_item_id
        super().__init__(
            f"Batch {batch_id} belongs to item {batch_item_id}, "
            f"not to item {line_item_id}"
        )


class MissingBatchError(BatchError):
    """A real (non-fictitious) exit or sale line did not name a batch."""

    code: str = "MISSING_BATCH"

    def __init__(self, item_id: str, kind: str):
        self.item_id = item_id
        self.kind = kind
        super().__init__(
            f"A batch is required for a real {kind} line of item {item_id}"
        )


# Price-related exceptions


class PriceError(WarehouseKernelError):
    """Base exception for price errors."""

    code: str = "PRICE_ERROR"


class InvalidPriceError(PriceError):
    """Price must be zero or positive."""

    code: str = "INVALID_PRICE"

    def __init__(self, price: str, reason: str = "price must be >= 0"):
        self.price = price
        self.reason = reason
        super().__init__(f"Invalid price {price}: {reason}")


# Movement-related exceptions


class MovementError(WarehouseKernelError):
    """Base exception for movement (delivery note) errors."""

    code: str = "MOVEMENT_ERROR"


class MovementNotFoundError(MovementError):
    """Movement with the given id does not exist."""

    code: str = "MOVEMENT_NOT_FOUND"

    def __init__(self, movement_id: str):
        self.movement_id = movement_id
        super().__init__(f"Movement not found: {movement_id}")


class MovementPayloadMismatchError(MovementError):
    """Same movement id was submitted again with different content."""

    code: str = "MOVEMENT_PAYLOAD_MISMATCH"

    def __init__(self, movement_id: str, expected_hash: str, received_hash: str):
        self.movement_id = movement_id
        self.expected_hash = expected_hash
        self.received_hash = received_hash
        super().__init__(
            f"Movement {movement_id} already recorded with a different payload "
            f"(expected hash {expected_hash[:16]}..., got {received_hash[:16]}...)"
        )


class ReturnExceedsJobBalanceError(MovementError):
    """A return to lot is larger than what the job site holds from that lot."""

    code: str = "RETURN_EXCEEDS_JOB_BALANCE"

    def __init__(self, job_id: str, batch_id: str, requested: str, on_site: str):
        self.job_id = job_id
        self.batch_id = batch_id
        self.requested = requested
        self.on_site = on_site
        super().__init__(
            f"Return of {requested} to batch {batch_id} exceeds the {on_site} "
            f"held by job {job_id}"
        )


# Item-related exceptions


class ItemError(WarehouseKernelError):
    """Base exception for item master data errors."""

    code: str = "ITEM_ERROR"


class ItemNotFoundError(ItemError):
    """Item with the given id or code does not exist."""

    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_ref: str):
        self.item_ref = item_ref
        super().__init__(f"Item not found: {item_ref}")


class DuplicateItemCodeError(ItemError):
    """Item code is already registered."""

    code: str = "DUPLICATE_ITEM_CODE"

    def __init__(self, item_code: str):
        self.item_code = item_code
        super().__init__(f"Item code already exists: {item_code}")


# Concurrency-related exceptions


class ConcurrencyError(WarehouseKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability-related exceptions


class ImmutabilityError(WarehouseKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an audit-retained record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )
