"""
Movement -- Movement types and the stock arithmetic they imply.

Responsibility:
    Owns the one rule that turns a (type, quantity) pair into a stock delta,
    and the validation of the raw inputs a caller hands to the adjustment
    boundary.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - quantity is a positive integer (bool is rejected even though it is an
      int subclass).
    - signed_delta is negative only for OUT.

Failure modes:
    - InvalidQuantityError for zero, negative, fractional or non-numeric
      quantities.
    - InvalidMovementTypeError for unknown type strings.
"""

from enum import Enum

from stock_kernel.exceptions import InvalidMovementTypeError, InvalidQuantityError


class MovementType(str, Enum):
    """
    Kind of stock change.

    Contract:
        IN          receipt, purchase, customer return (adds stock)
        OUT         shipment, sale, write-off (removes stock)
        ADJUSTMENT  manual correction recorded as a non-negative delta
        TRANSFER    stock arriving from another variant (destination leg)
    """

    IN = "in"
    OUT = "out"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"


# Lot-tagged movements of these types draw the named lot down.
LOT_CONSUMING_TYPES = frozenset({MovementType.OUT, MovementType.ADJUSTMENT})


def parse_movement_type(value: object) -> MovementType:
    """Coerce a string or MovementType into MovementType."""
    if isinstance(value, MovementType):
        return value
    if isinstance(value, str):
        try:
            return MovementType(value.strip().lower())
        except ValueError:
            pass
    raise InvalidMovementTypeError(value)


def _is_whole_number(value: object) -> bool:
    # bool is an int subclass; floats are rejected even when integral.
    return isinstance(value, int) and not isinstance(value, bool)


def validate_quantity(value: object, field: str = "quantity") -> int:
    """
    Return ``value`` if it is a positive int.

    ``0``, ``-1``, ``3.0``, ``3.5``, ``True`` and strings are rejected.
    """
    if not _is_whole_number(value) or value <= 0:
        raise InvalidQuantityError(value, field)
    return value


def validate_non_negative(value: object, field: str) -> int:
    """Like validate_quantity but admits zero (reservations, thresholds)."""
    if not _is_whole_number(value) or value < 0:
        raise InvalidQuantityError(value, field)
    return value


def signed_delta(movement_type: MovementType, quantity: int) -> int:
    """The change in stock a movement of this type and quantity implies."""
    if movement_type is MovementType.OUT:
        return -quantity
    return quantity


def apply_movement(previous_stock: int, movement_type: MovementType, quantity: int) -> int:
    """Stock after applying the movement.  May be negative; callers check."""
    return previous_stock + signed_delta(movement_type, quantity)
