"""Read-only query selectors."""

from stock_kernel.selectors.inventory_selector import InventoryRow, InventorySelector, StockFilter
from stock_kernel.selectors.lot_selector import LotSelector, LotStats, LotView
from stock_kernel.selectors.movement_selector import (
    ChainVerification,
    MovementSelector,
    MovementStats,
)

__all__ = [
    "ChainVerification",
    "InventoryRow",
    "InventorySelector",
    "LotSelector",
    "LotStats",
    "LotView",
    "MovementSelector",
    "MovementStats",
    "StockFilter",
]
