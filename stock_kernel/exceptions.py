"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Stock correctness failures must be handled precisely. Callers such as the
order fulfillment workflow need to tell "not enough stock" apart from "the
database is down" without parsing message strings.

Every exception therefore:
  1. Has its own class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (not just a message string)

Example:
    try:
        ledger.append(new_movement)
    except InvariantViolationError as e:
        log.error("chain broken", extra={"variant_id": e.variant_id})

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidQuantityError
    |   +-- InvalidMovementTypeError
    |   +-- InvalidLotError
    |   +-- InvalidTransferError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |   +-- VariantNotFoundError
    |   +-- VariantAlreadyRegisteredError
    |
    +-- LotError
    |   +-- LotOverdrawError
    |   +-- LotNotFoundError
    |   +-- DuplicateLotNumberError
    |
    +-- InvariantViolationError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- StoreUnavailableError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                        | When Raised
-------------|-----------------------------|--------------------------------------
Validation   | INVALID_QUANTITY            | Quantity not a positive integer
             | INVALID_MOVEMENT_TYPE       | Unknown movement type
             | INVALID_LOT                 | Lot fields invalid at creation
             | INVALID_TRANSFER            | Transfer to same variant / other org
-------------|-----------------------------|--------------------------------------
Stock        | INSUFFICIENT_STOCK          | out/transfer would go below zero
             | VARIANT_NOT_FOUND           | No stock state for variant
             | VARIANT_ALREADY_REGISTERED  | Stock state already exists
-------------|-----------------------------|--------------------------------------
Lot          | LOT_OVERDRAW                | Consumption exceeds lot remainder
             | LOT_NOT_FOUND               | Lot number unknown in organization
             | DUPLICATE_LOT_NUMBER        | Lot number reused in organization
-------------|-----------------------------|--------------------------------------
Ledger       | INVARIANT_VIOLATION         | Ledger/counter check failed (a bug)
-------------|-----------------------------|--------------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT    | Counter changed under a writer
-------------|-----------------------------|--------------------------------------
Immutability | IMMUTABILITY_VIOLATION      | Update/delete of a movement row
-------------|-----------------------------|--------------------------------------
Store        | STORE_UNAVAILABLE           | Transient infrastructure failure

===============================================================================
HANDLING PATTERNS
===============================================================================

Flush-only services (MovementLedger, StockStateService, LotRegistry) raise
these exceptions.  AdjustmentService is the boundary: it catches them,
rolls back, and returns an AdjustmentResult carrying the code.  Nothing
below crosses that boundary as an exception.

    InvalidQuantityError / InsufficientStockError / LotOverdrawError
        -> user-correctable, clear message
    InvariantViolationError
        -> logged with full context, reported generically
    StoreUnavailableError
        -> safe to retry, nothing was written
===============================================================================
"""


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_KERNEL_ERROR"


# Validation exceptions


class ValidationError(StockKernelError):
    """Base exception for request validation errors."""

    code: str = "VALIDATION_ERROR"


class InvalidQuantityError(ValidationError):
    """Quantity is not a positive integer."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, value: object, field: str = "quantity"):
        self.value = value
        self.field = field
        super().__init__(f"{field} must be a positive integer, got {value!r}")


class InvalidMovementTypeError(ValidationError):
    """Movement type is not one of in/out/adjustment/transfer."""

    code: str = "INVALID_MOVEMENT_TYPE"

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Unknown movement type: {value!r}")


class InvalidLotError(ValidationError):
    """Lot fields are invalid at creation."""

    code: str = "INVALID_LOT"

    def __init__(self, lot_number: str, reason: str):
        self.lot_number = lot_number
        self.reason = reason
        super().__init__(f"Invalid lot {lot_number!r}: {reason}")


class InvalidTransferError(ValidationError):
    """Transfer request is structurally invalid."""

    code: str = "INVALID_TRANSFER"

    def __init__(self, source_variant_id: str, destination_variant_id: str, reason: str):
        self.source_variant_id = source_variant_id
        self.destination_variant_id = destination_variant_id
        self.reason = reason
        super().__init__(
            f"Invalid transfer {source_variant_id} -> {destination_variant_id}: {reason}"
        )


# Stock exceptions


class StockError(StockKernelError):
    """Base exception for variant stock errors."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """An outbound movement would drive current stock below zero."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, variant_id: str, current_stock: int, requested: int):
        self.variant_id = variant_id
        self.current_stock = current_stock
        self.requested = requested
        super().__init__(
            f"Insufficient stock for variant {variant_id}: "
            f"current={current_stock}, requested={requested}"
        )


class VariantNotFoundError(StockError):
    """No stock state row exists for the variant."""

    code: str = "VARIANT_NOT_FOUND"

    def __init__(self, variant_id: str):
        self.variant_id = variant_id
        super().__init__(f"Variant not found: {variant_id}")


class VariantAlreadyRegisteredError(StockError):
    """A stock state row already exists for the variant."""

    code: str = "VARIANT_ALREADY_REGISTERED"

    def __init__(self, variant_id: str):
        self.variant_id = variant_id
        super().__init__(f"Variant already registered: {variant_id}")


# Lot exceptions


class LotError(StockKernelError):
    """Base exception for lot errors."""

    code: str = "LOT_ERROR"


class LotOverdrawError(LotError):
    """Consumption exceeds the lot's remaining quantity."""

    code: str = "LOT_OVERDRAW"

    def __init__(self, lot_number: str, current_quantity: int, requested: int):
        self.lot_number = lot_number
        self.current_quantity = current_quantity
        self.requested = requested
        super().__init__(
            f"Lot {lot_number} overdrawn: remaining={current_quantity}, "
            f"requested={requested}"
        )


class LotNotFoundError(LotError):
    """Lot number does not exist in the organization."""

    code: str = "LOT_NOT_FOUND"

    def __init__(self, lot_number: str, organization_id: str | None = None):
        self.lot_number = lot_number
        self.organization_id = organization_id
        super().__init__(f"Lot not found: {lot_number}")


class DuplicateLotNumberError(LotError):
    """Lot number already used in the organization."""

    code: str = "DUPLICATE_LOT_NUMBER"

    def __init__(self, lot_number: str, organization_id: str):
        self.lot_number = lot_number
        self.organization_id = organization_id
        super().__init__(
            f"Lot number {lot_number} already exists in organization {organization_id}"
        )


# Ledger invariant


class InvariantViolationError(StockKernelError):
    """
    A ledger-level check failed.

    Never expected in normal operation; indicates a bug upstream.  Logged with
    full movement context and reported generically to callers.
    """

    code: str = "INVARIANT_VIOLATION"

    def __init__(self, variant_id: str, reason: str, context: dict | None = None):
        self.variant_id = variant_id
        self.reason = reason
        self.context = context or {}
        super().__init__(f"Invariant violation on variant {variant_id}: {reason}")


# Concurrency exceptions


class ConcurrencyError(StockKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Counter row was modified by another transaction."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability exceptions


class ImmutabilityError(StockKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Infrastructure


class StoreUnavailableError(StockKernelError):
    """
    Transient store failure (connection loss, statement timeout, pool
    exhaustion, exhausted lock retries).  Safe to retry: no partial write.
    """

    code: str = "STORE_UNAVAILABLE"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Store unavailable during {operation}: {reason}")
