"""Kernel services: flush-only writers and the AdjustmentService boundary."""

from stock_kernel.services.adjustment_service import (
    AdjustmentResult,
    AdjustmentService,
    AdjustmentStatus,
)
from stock_kernel.services.lot_registry import LotRegistry
from stock_kernel.services.movement_ledger import MovementLedger
from stock_kernel.services.stock_state_service import StockStateService
from stock_kernel.services.variant_guard import VariantGuard

__all__ = [
    "AdjustmentResult",
    "AdjustmentService",
    "AdjustmentStatus",
    "LotRegistry",
    "MovementLedger",
    "StockStateService",
    "VariantGuard",
]
