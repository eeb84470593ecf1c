"""Persistent models for the stock kernel."""

from stock_kernel.models.lot import Lot
from stock_kernel.models.stock_movement import MOVEMENT_TYPE_VALUES, StockMovement
from stock_kernel.models.variant_stock import VariantStockState

__all__ = [
    "Lot",
    "MOVEMENT_TYPE_VALUES",
    "StockMovement",
    "VariantStockState",
]
