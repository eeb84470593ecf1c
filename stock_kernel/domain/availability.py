"""
AvailabilityCalculator -- derived stock figures for a variant.

Responsibility:
    The single place where available stock, the low-stock flag and the
    out / low / ok level are computed.  The inventory summary, its filter
    tabs, the stats header and the dashboard low-stock widget all route
    through ``compute`` and ``classify_stock_level`` so they cannot disagree.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - available_stock = max(0, current_stock - reserved_stock)
    - is_low_stock <=> available_stock <= effective threshold
    - The per-variant threshold wins; the organization default applies only
      when the variant has none.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Protocol


class StockCounters(Protocol):
    """Anything carrying the stored counters (ORM row or VariantStock)."""

    variant_id: str
    current_stock: int
    reserved_stock: int
    low_stock_threshold: int | None


class StockLevel(str, Enum):
    OUT = "out"
    LOW = "low"
    OK = "ok"


@dataclass(frozen=True)
class AvailabilitySnapshot:
    variant_id: str
    current_stock: int
    reserved_stock: int
    available_stock: int
    low_stock_threshold: int
    is_low_stock: bool

    @property
    def stock_level(self) -> StockLevel:
        return classify_stock_level(self)


def effective_threshold(threshold: int | None, default_threshold: int) -> int:
    return default_threshold if threshold is None else threshold


def compute(state: StockCounters, default_threshold: int) -> AvailabilitySnapshot:
    """
    Derive the availability snapshot for one variant.

    Args:
        state: Stored counters.
        default_threshold: Organization-level low-stock threshold, used when
            the variant has no threshold of its own.
    """
    available = max(0, state.current_stock - state.reserved_stock)
    threshold = effective_threshold(state.low_stock_threshold, default_threshold)
    return AvailabilitySnapshot(
        variant_id=state.variant_id,
        current_stock=state.current_stock,
        reserved_stock=state.reserved_stock,
        available_stock=available,
        low_stock_threshold=threshold,
        is_low_stock=available <= threshold,
    )


def classify_stock_level(snapshot: AvailabilitySnapshot) -> StockLevel:
    """OUT when nothing is available, else LOW when flagged, else OK."""
    if snapshot.available_stock == 0:
        return StockLevel.OUT
    if snapshot.is_low_stock:
        return StockLevel.LOW
    return StockLevel.OK


@dataclass(frozen=True)
class InventoryStats:
    total_items: int = 0
    total_stock: int = 0
    low_stock_items: int = 0
    out_of_stock_items: int = 0
    healthy_items: int = 0


def summarize(snapshots: Iterable[AvailabilitySnapshot]) -> InventoryStats:
    """
    Aggregate header counts.

    low_stock_items excludes out-of-stock variants, so the three level counts
    partition total_items.
    """
    total_items = total_stock = low = out = ok = 0
    for snapshot in snapshots:
        total_items += 1
        total_stock += snapshot.current_stock
        level = classify_stock_level(snapshot)
        if level is StockLevel.OUT:
            out += 1
        elif level is StockLevel.LOW:
            low += 1
        else:
            ok += 1
    return InventoryStats(
        total_items=total_items,
        total_stock=total_stock,
        low_stock_items=low,
        out_of_stock_items=out,
        healthy_items=ok,
    )
