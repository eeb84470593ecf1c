"""
Module: stock_kernel.selectors.inventory_selector
Responsibility: Inventory summary rows, the out / low / ok filter tabs, the
    stats header and the dashboard low-stock widget.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Every row, count and filter is derived through
      domain.availability.compute and classify_stock_level, so the summary,
      the tab counts and the widget agree for the same snapshot.
    - Rows are ordered by product name, variant name, sku, then variant id.
"""

from dataclasses import dataclass
from enum import Enum

from sqlalchemy import func, or_, select

from stock_kernel.domain.availability import (
    AvailabilitySnapshot,
    InventoryStats,
    StockLevel,
    classify_stock_level,
    compute,
    summarize,
)
from stock_kernel.domain.dtos import VariantStock
from stock_kernel.exceptions import VariantNotFoundError
from stock_kernel.models.variant_stock import VariantStockState
from stock_kernel.selectors.base import BaseSelector, contains_ci

DEFAULT_LOW_STOCK_THRESHOLD = 5


class StockFilter(str, Enum):
    ALL = "all"
    OUT = "out"
    LOW = "low"
    OK = "ok"


@dataclass(frozen=True)
class InventoryRow:
    stock: VariantStock
    availability: AvailabilitySnapshot

    @property
    def stock_level(self) -> StockLevel:
        return classify_stock_level(self.availability)


class InventorySelector(BaseSelector[VariantStockState]):
    """Queries over variant_stock_states."""

    def __init__(self, session, default_low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD):
        super().__init__(session)
        self.default_low_stock_threshold = default_low_stock_threshold

    def availability(self, variant_id: str) -> AvailabilitySnapshot:
        state = self.session.execute(
            select(VariantStockState).where(VariantStockState.variant_id == variant_id)
        ).scalar_one_or_none()
        if state is None:
            raise VariantNotFoundError(variant_id)
        return compute(state, self.default_low_stock_threshold)

    def summary(
        self,
        organization_id: str,
        stock_filter: StockFilter | str = StockFilter.ALL,
        search: str | None = None,
    ) -> tuple[InventoryRow, ...]:
        stock_filter = StockFilter(stock_filter)
        rows = self._rows(organization_id, search)
        if stock_filter is StockFilter.ALL:
            return rows
        wanted = StockLevel(stock_filter.value)
        return tuple(row for row in rows if row.stock_level is wanted)

    def stats(self, organization_id: str) -> InventoryStats:
        return summarize(row.availability for row in self._rows(organization_id))

    def low_stock(self, organization_id: str, limit: int | None = None) -> tuple[InventoryRow, ...]:
        """
        Dashboard widget: every variant flagged low (out-of-stock included),
        least available first.
        """
        flagged = sorted(
            (row for row in self._rows(organization_id) if row.availability.is_low_stock),
            key=lambda row: row.availability.available_stock,
        )
        if limit is not None:
            flagged = flagged[:limit]
        return tuple(flagged)

    def _rows(self, organization_id: str, search: str | None = None) -> tuple[InventoryRow, ...]:
        stmt = select(VariantStockState).where(
            VariantStockState.organization_id == organization_id
        )
        term = (search or "").strip()
        if term:
            stmt = stmt.where(
                or_(
                    contains_ci(VariantStockState.product_name, term),
                    contains_ci(VariantStockState.variant_name, term),
                    contains_ci(VariantStockState.sku, term),
                )
            )
        stmt = stmt.order_by(
            func.coalesce(VariantStockState.product_name, ""),
            func.coalesce(VariantStockState.variant_name, ""),
            func.coalesce(VariantStockState.sku, ""),
            VariantStockState.variant_id,
        )

        threshold = self.default_low_stock_threshold
        return tuple(
            InventoryRow(stock=VariantStock.from_model(state), availability=compute(state, threshold))
            for state in self.session.execute(stmt).scalars()
        )
