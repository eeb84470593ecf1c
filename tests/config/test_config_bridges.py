"""Tests that configured values reach the kernel objects built from them."""

from datetime import datetime, timedelta, timezone

import yaml

from stock_config import get_active_config
from stock_config.bridges import (
    build_adjustment_service,
    build_inventory_selector,
    build_lot_selector,
    build_movement_selector,
)
from stock_kernel.domain.dtos import AdjustmentRequest, NewLot
from stock_kernel.domain.lot_expiry import LotStatus
from stock_kernel.services.variant_guard import VariantGuard

TEST_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _config(tmp_path):
    path = tmp_path / "inventory.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "config_id": "bridge-test",
                "default_low_stock_threshold": 5,
                "lot_expiry": {"horizon_days": 14, "urgent_days": 3},
                "listing": {"default_page_size": 2, "max_page_size": 3},
                "organizations": {"org-test": {"default_low_stock_threshold": 25}},
            }
        )
    )
    return get_active_config("org-test", config_path=path)


class TestBridges:

    def test_adjustment_service_uses_org_threshold(
        self, tmp_path, session_factory, clock, create_variant
    ):
        service = build_adjustment_service(
            _config(tmp_path), session_factory, clock=clock, guard=VariantGuard()
        )
        variant_id = create_variant()
        result = service.adjust(AdjustmentRequest(variant_id, "in", 20))
        assert result.availability.low_stock_threshold == 25
        assert result.availability.is_low_stock is True

    def test_inventory_selector(self, tmp_path, session, create_variant):
        create_variant("v1", current_stock=20)
        selector = build_inventory_selector(_config(tmp_path), session)
        assert selector.availability("v1").is_low_stock is True

    def test_movement_selector_page_sizes(self, tmp_path, session, adjustment_service, create_variant):
        variant_id = create_variant()
        for _ in range(4):
            adjustment_service.adjust(AdjustmentRequest(variant_id, "in", 1))
        selector = build_movement_selector(_config(tmp_path), session)
        assert len(selector.list(variant_id=variant_id).items) == 2
        assert selector.list(variant_id=variant_id, limit=50).limit == 3

    def test_lot_selector_horizon(self, tmp_path, session, adjustment_service, create_variant):
        variant_id = create_variant()
        adjustment_service.create_lot(
            NewLot("org-test", "L-1", variant_id, 10, expiry_date=TEST_NOW + timedelta(days=20))
        )
        selector = build_lot_selector(_config(tmp_path), session)
        assert selector.list("org-test", TEST_NOW)[0].status is LotStatus.ACTIVE
