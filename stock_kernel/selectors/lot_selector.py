"""
Module: stock_kernel.selectors.lot_selector
Responsibility: Lot listing with derived status, lot header statistics and
    expiry alerts.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Status is computed by domain.lot_expiry.classify against one ``now``
      per call, so the list, its status filter and the stats agree.
    - Ordered by expiry date (soonest first, undated last), then lot number.
"""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import case, or_, select

from stock_kernel.domain.dtos import LotRecord
from stock_kernel.domain.lot_expiry import (
    DEFAULT_HORIZON_DAYS,
    DEFAULT_URGENT_DAYS,
    LotClassification,
    LotStatus,
    classify,
)
from stock_kernel.models.lot import Lot
from stock_kernel.models.variant_stock import VariantStockState
from stock_kernel.selectors.base import BaseSelector, contains_ci

ALL_STATUSES = "all"


@dataclass(frozen=True)
class LotView:
    lot: LotRecord
    classification: LotClassification

    @property
    def status(self) -> LotStatus:
        return self.classification.status


@dataclass(frozen=True)
class LotStats:
    total: int = 0
    active: int = 0
    expiring: int = 0
    depleted: int = 0


class LotSelector(BaseSelector[Lot]):
    """Queries over lots, joined to the variant for sku and product name."""

    def __init__(
        self,
        session,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
        urgent_days: int = DEFAULT_URGENT_DAYS,
    ):
        super().__init__(session)
        self.horizon_days = horizon_days
        self.urgent_days = urgent_days

    def get(self, organization_id: str, lot_number: str) -> LotRecord | None:
        row = self.session.execute(
            self._base_query(organization_id).where(Lot.lot_number == lot_number)
        ).one_or_none()
        if row is None:
            return None
        lot, sku, product_name = row
        return LotRecord.from_model(lot, sku=sku, product_name=product_name)

    def list(
        self,
        organization_id: str,
        now: datetime,
        status: LotStatus | str = ALL_STATUSES,
        search: str | None = None,
        variant_id: str | None = None,
        product_id: str | None = None,
    ) -> tuple[LotView, ...]:
        views = self._views(organization_id, now, search, variant_id, product_id)
        if status == ALL_STATUSES:
            return views
        wanted = LotStatus(status)
        return tuple(view for view in views if view.status is wanted)

    def stats(self, organization_id: str, now: datetime) -> LotStats:
        views = self._views(organization_id, now)
        by_status = {s: 0 for s in LotStatus}
        for view in views:
            by_status[view.status] += 1
        return LotStats(
            total=len(views),
            active=by_status[LotStatus.ACTIVE],
            expiring=by_status[LotStatus.EXPIRING],
            depleted=by_status[LotStatus.DEPLETED],
        )

    def expiry_alerts(self, organization_id: str, now: datetime) -> tuple[LotView, ...]:
        """Expiring lots, fewest days left first."""
        expiring = self.list(organization_id, now, status=LotStatus.EXPIRING)
        return tuple(
            sorted(
                expiring,
                key=lambda view: (view.classification.days_until_expiry, view.lot.lot_number),
            )
        )

    def _base_query(self, organization_id: str):
        return (
            select(Lot, VariantStockState.sku, VariantStockState.product_name)
            .outerjoin(VariantStockState, VariantStockState.variant_id == Lot.variant_id)
            .where(Lot.organization_id == organization_id)
        )

    def _views(
        self,
        organization_id: str,
        now: datetime,
        search: str | None = None,
        variant_id: str | None = None,
        product_id: str | None = None,
    ) -> tuple[LotView, ...]:
        stmt = self._base_query(organization_id)
        if variant_id is not None:
            stmt = stmt.where(Lot.variant_id == variant_id)
        if product_id is not None:
            stmt = stmt.where(Lot.product_id == product_id)
        term = (search or "").strip()
        if term:
            stmt = stmt.where(
                or_(
                    contains_ci(Lot.lot_number, term),
                    contains_ci(VariantStockState.product_name, term),
                    contains_ci(VariantStockState.sku, term),
                )
            )
        stmt = stmt.order_by(
            case((Lot.expiry_date.is_(None), 1), else_=0),
            Lot.expiry_date,
            Lot.lot_number,
        )

        views = []
        for lot, sku, product_name in self.session.execute(stmt).all():
            record = LotRecord.from_model(lot, sku=sku, product_name=product_name)
            views.append(
                LotView(
                    lot=record,
                    classification=classify(
                        record,
                        now,
                        horizon_days=self.horizon_days,
                        urgent_days=self.urgent_days,
                    ),
                )
            )
        return tuple(views)
