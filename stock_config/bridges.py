"""
Config -> Kernel bridges.

Turn an InventoryConfig into configured kernel objects.  They live here
because the kernel must never import stock_config.

Usage:
    config = get_active_config(organization_id)
    service = build_adjustment_service(config, get_session_factory())
    rows = build_inventory_selector(config, session).summary(organization_id)
"""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from stock_config.schema import InventoryConfig
from stock_kernel.domain.clock import Clock
from stock_kernel.selectors.inventory_selector import InventorySelector
from stock_kernel.selectors.lot_selector import LotSelector
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.services.adjustment_service import AdjustmentService
from stock_kernel.services.variant_guard import VariantGuard


def build_adjustment_service(
    config: InventoryConfig,
    session_factory: sessionmaker[Session],
    clock: Clock | None = None,
    guard: VariantGuard | None = None,
) -> AdjustmentService:
    return AdjustmentService(
        session_factory,
        clock=clock,
        guard=guard,
        default_low_stock_threshold=config.default_low_stock_threshold,
        max_conflict_retries=config.concurrency.max_conflict_retries,
    )


def build_inventory_selector(config: InventoryConfig, session: Session) -> InventorySelector:
    return InventorySelector(
        session,
        default_low_stock_threshold=config.default_low_stock_threshold,
    )


def build_movement_selector(config: InventoryConfig, session: Session) -> MovementSelector:
    return MovementSelector(
        session,
        default_page_size=config.listing.default_page_size,
        max_page_size=config.listing.max_page_size,
    )


def build_lot_selector(config: InventoryConfig, session: Session) -> LotSelector:
    return LotSelector(
        session,
        horizon_days=config.lot_expiry.horizon_days,
        urgent_days=config.lot_expiry.urgent_days,
    )
