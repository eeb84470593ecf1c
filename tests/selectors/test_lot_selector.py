"""Tests for lot listing with derived status, stats and expiry alerts."""

from datetime import datetime, timedelta, timezone

import pytest

from stock_kernel.domain.dtos import NewLot
from stock_kernel.domain.lot_expiry import LotStatus
from stock_kernel.selectors.lot_selector import LotSelector

TEST_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def lots(adjustment_service, create_variant):
    create_variant("milk", product_name="Milk", sku="MILK-1L", current_stock=100)
    create_variant("cheese", product_name="Cheese", sku="CHZ", current_stock=100)

    def lot(number, variant_id, quantity, days=None):
        result = adjustment_service.create_lot(
            NewLot(
                organization_id="org-test",
                lot_number=number,
                variant_id=variant_id,
                initial_quantity=quantity,
                expiry_date=TEST_NOW + timedelta(days=days) if days is not None else None,
            )
        )
        assert result.is_success, result

    lot("M-20", "milk", 50, days=20)
    lot("M-45", "milk", 10, days=45)
    lot("C-200", "cheese", 10, days=200)
    lot("C-NONE", "cheese", 10)
    lot("M-DONE", "milk", 5, days=10)
    assert adjustment_service.consume_lot("org-test", "M-DONE", 5).is_success


@pytest.fixture
def selector(session):
    return LotSelector(session)


class TestList:

    def test_ordered_by_expiry_then_undated(self, selector, lots):
        views = selector.list("org-test", TEST_NOW)
        assert [v.lot.lot_number for v in views] == ["M-DONE", "M-20", "M-45", "C-200", "C-NONE"]

    def test_statuses(self, selector, lots):
        views = {v.lot.lot_number: v for v in selector.list("org-test", TEST_NOW)}
        assert views["M-20"].status is LotStatus.EXPIRING
        assert views["M-20"].classification.days_until_expiry == 20
        assert views["M-20"].classification.is_urgent is True
        assert views["M-45"].classification.is_urgent is False
        assert views["C-200"].status is LotStatus.ACTIVE
        assert views["C-NONE"].status is LotStatus.ACTIVE
        assert views["M-DONE"].status is LotStatus.DEPLETED

    def test_status_filter(self, selector, lots):
        assert [v.lot.lot_number for v in selector.list("org-test", TEST_NOW, status="expiring")] == [
            "M-20",
            "M-45",
        ]
        assert [v.lot.lot_number for v in selector.list("org-test", TEST_NOW, status=LotStatus.DEPLETED)] == [
            "M-DONE"
        ]

    def test_joined_variant_labels(self, selector, lots):
        record = selector.get("org-test", "M-20")
        assert record.sku == "MILK-1L"
        assert record.product_name == "Milk"
        assert selector.get("org-test", "nope") is None

    def test_search(self, selector, lots):
        assert {v.lot.lot_number for v in selector.list("org-test", TEST_NOW, search="chz")} == {
            "C-200",
            "C-NONE",
        }

    def test_variant_filter(self, selector, lots):
        assert len(selector.list("org-test", TEST_NOW, variant_id="cheese")) == 2

    def test_consuming_everything_depletes_regardless_of_expiry(self, selector, lots, adjustment_service):
        assert adjustment_service.consume_lot("org-test", "M-20", 50).is_success
        record = selector.get("org-test", "M-20")
        views = {v.lot.lot_number: v for v in selector.list("org-test", TEST_NOW)}
        assert record.current_quantity == 0
        assert views["M-20"].status is LotStatus.DEPLETED


class TestStatsAndAlerts:

    def test_stats(self, selector, lots):
        stats = selector.stats("org-test", TEST_NOW)
        assert (stats.total, stats.active, stats.expiring, stats.depleted) == (5, 2, 2, 1)

    def test_stats_move_with_now(self, selector, lots):
        later = TEST_NOW + timedelta(days=120)
        stats = selector.stats("org-test", later)
        assert stats.expiring == 3

    def test_expiry_alerts_sorted(self, selector, lots):
        alerts = selector.expiry_alerts("org-test", TEST_NOW)
        assert [a.lot.lot_number for a in alerts] == ["M-20", "M-45"]

    def test_custom_horizon(self, session, lots):
        selector = LotSelector(session, horizon_days=30, urgent_days=7)
        alerts = selector.expiry_alerts("org-test", TEST_NOW)
        assert [a.lot.lot_number for a in alerts] == ["M-20"]
        assert alerts[0].classification.is_urgent is False
