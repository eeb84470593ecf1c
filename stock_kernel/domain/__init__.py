"""Pure domain core: movement arithmetic, availability and lot expiry rules."""

from stock_kernel.domain.availability import (
    AvailabilitySnapshot,
    InventoryStats,
    StockLevel,
    classify_stock_level,
    compute,
    summarize,
)
from stock_kernel.domain.clock import Clock, DeterministicClock, SystemClock, as_utc
from stock_kernel.domain.lot_expiry import (
    LotClassification,
    LotStatus,
    classify,
    days_until_expiry,
)
from stock_kernel.domain.movement import MovementType, signed_delta, validate_quantity

__all__ = [
    "AvailabilitySnapshot",
    "Clock",
    "DeterministicClock",
    "InventoryStats",
    "LotClassification",
    "LotStatus",
    "MovementType",
    "StockLevel",
    "SystemClock",
    "as_utc",
    "classify",
    "classify_stock_level",
    "compute",
    "days_until_expiry",
    "signed_delta",
    "summarize",
    "validate_quantity",
]
