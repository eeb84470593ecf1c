"""
ORM-level immutability enforcement for the stock ledger.

===============================================================================
LAYERS
===============================================================================

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications made through SQLAlchemy sessions
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/sql/*.sql (PostgreSQL triggers, installed by db/triggers.py)
    - Catches raw SQL and bulk UPDATE/DELETE statements
    - Not available on SQLite; the ORM layer is the only guard there

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | What is frozen                                    | When
----------------|---------------------------------------------------|--------
StockMovement   | Every column; deletes are rejected                | Always
Lot             | lot_number, organization_id, product_id,          | After insert
                | variant_id, initial_quantity                      |

Lot.current_quantity, expiry_date, supplier and notes stay mutable.
Lot rows may not be deleted through the ORM; a depleted lot is kept for
traceability.

===============================================================================
USAGE
===============================================================================

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that need to plant corrupt rows may unregister temporarily:

    unregister_immutability_listeners()
    ...
    register_immutability_listeners()
"""

from sqlalchemy import event, inspect

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

LOT_FROZEN_FIELDS = frozenset({
    "lot_number",
    "organization_id",
    "product_id",
    "variant_id",
    "initial_quantity",
})


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


# =============================================================================
# StockMovement: append-only
# =============================================================================


def _check_stock_movement_immutability(mapper, connection, target):
    """Stock movements are never updated; corrections are new movements."""
    _blocked(
        "StockMovement",
        str(target.id),
        "UPDATE",
        "Stock movements are immutable; record a compensating movement instead",
    )


def _check_stock_movement_delete(mapper, connection, target):
    """Stock movements are never deleted."""
    _blocked(
        "StockMovement",
        str(target.id),
        "DELETE",
        "Stock movements cannot be deleted",
    )


# =============================================================================
# Lot: identity and initial quantity frozen
# =============================================================================


def _check_lot_immutability(mapper, connection, target):
    """Block changes to a lot's identity fields and initial quantity."""
    state = inspect(target)
    changed = sorted(
        field for field in LOT_FROZEN_FIELDS
        if state.attrs[field].history.has_changes()
    )
    if not changed:
        return

    _blocked(
        "Lot",
        str(target.id),
        "UPDATE",
        f"Lot fields are immutable after creation: {', '.join(changed)}",
    )


def _check_lot_delete(mapper, connection, target):
    """Lots are retained after depletion."""
    _blocked(
        "Lot",
        str(target.id),
        "DELETE",
        f"Lot {target.lot_number} cannot be deleted",
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already registered are not added twice.
    """
    from stock_kernel.models.lot import Lot
    from stock_kernel.models.stock_movement import StockMovement

    for target, event_name, listener_fn in _listeners(StockMovement, Lot):
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _listeners(stock_movement_cls, lot_cls):
    return (
        (stock_movement_cls, "before_update", _check_stock_movement_immutability),
        (stock_movement_cls, "before_delete", _check_stock_movement_delete),
        (lot_cls, "before_update", _check_lot_immutability),
        (lot_cls, "before_delete", _check_lot_delete),
    )


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that plant corrupt data on purpose.
    """
    from stock_kernel.models.lot import Lot
    from stock_kernel.models.stock_movement import StockMovement

    for target, event_name, listener_fn in _listeners(StockMovement, Lot):
        _safe_remove_listener(target, event_name, listener_fn)
