"""
Tests for the availability calculator.

available = max(0, current - reserved); low <=> available <= threshold,
with the variant threshold winning over the organization default.
"""

from dataclasses import dataclass

import pytest
from hypothesis import given
from hypothesis import strategies as st

from stock_kernel.domain.availability import (
    AvailabilitySnapshot,
    StockLevel,
    classify_stock_level,
    compute,
    effective_threshold,
    summarize,
)


@dataclass
class Counters:
    variant_id: str = "var-1"
    current_stock: int = 0
    reserved_stock: int = 0
    low_stock_threshold: int | None = None


class TestCompute:

    def test_reserved_reduces_available(self):
        snap = compute(Counters(current_stock=50, reserved_stock=10, low_stock_threshold=5), 5)
        assert snap.available_stock == 40
        assert snap.is_low_stock is False
        assert snap.stock_level is StockLevel.OK

    def test_after_outbound_movement(self):
        snap = compute(Counters(current_stock=14, reserved_stock=10, low_stock_threshold=5), 5)
        assert snap.available_stock == 4
        assert snap.is_low_stock is True
        assert snap.stock_level is StockLevel.LOW

    def test_over_reserved_clamps_to_zero(self):
        snap = compute(Counters(current_stock=3, reserved_stock=8), 5)
        assert snap.available_stock == 0
        assert snap.stock_level is StockLevel.OUT

    def test_threshold_boundary_is_low(self):
        snap = compute(Counters(current_stock=5), 5)
        assert snap.is_low_stock is True

    def test_variant_threshold_wins(self):
        snap = compute(Counters(current_stock=8, low_stock_threshold=10), 5)
        assert snap.low_stock_threshold == 10
        assert snap.is_low_stock is True

    def test_zero_variant_threshold_is_not_default(self):
        snap = compute(Counters(current_stock=3, low_stock_threshold=0), 5)
        assert snap.low_stock_threshold == 0
        assert snap.is_low_stock is False

    def test_default_threshold_used_when_unset(self):
        assert effective_threshold(None, 7) == 7
        assert effective_threshold(2, 7) == 2

    def test_snapshot_is_frozen(self):
        snap = compute(Counters(current_stock=1), 5)
        with pytest.raises(AttributeError):
            snap.available_stock = 99

    @given(
        current=st.integers(min_value=0, max_value=10**9),
        reserved=st.integers(min_value=0, max_value=10**9),
        threshold=st.one_of(st.none(), st.integers(min_value=0, max_value=1000)),
        default=st.integers(min_value=0, max_value=1000),
    )
    def test_available_never_negative(self, current, reserved, threshold, default):
        snap = compute(Counters("v", current, reserved, threshold), default)
        assert snap.available_stock >= 0
        assert snap.available_stock <= current
        assert snap.is_low_stock == (
            snap.available_stock <= effective_threshold(threshold, default)
        )


class TestStockLevel:

    def _snap(self, available, low):
        return AvailabilitySnapshot(
            variant_id="v",
            current_stock=available,
            reserved_stock=0,
            available_stock=available,
            low_stock_threshold=5,
            is_low_stock=low,
        )

    def test_out_wins_over_low(self):
        assert classify_stock_level(self._snap(0, True)) is StockLevel.OUT

    def test_low(self):
        assert classify_stock_level(self._snap(3, True)) is StockLevel.LOW

    def test_ok(self):
        assert classify_stock_level(self._snap(30, False)) is StockLevel.OK


class TestSummarize:

    def test_levels_partition_items(self):
        snaps = [
            compute(Counters("a", current_stock=0), 5),
            compute(Counters("b", current_stock=4), 5),
            compute(Counters("c", current_stock=40), 5),
            compute(Counters("d", current_stock=6, reserved_stock=6), 5),
        ]
        stats = summarize(snaps)
        assert stats.total_items == 4
        assert stats.total_stock == 50
        assert stats.out_of_stock_items == 2
        assert stats.low_stock_items == 1
        assert stats.healthy_items == 1

    def test_empty(self):
        stats = summarize([])
        assert stats.total_items == 0
        assert stats.total_stock == 0
