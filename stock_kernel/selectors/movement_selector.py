"""
Module: stock_kernel.selectors.movement_selector
Responsibility: Read access to the stock movement ledger: paginated history
    with filters, header statistics, and the per-variant chain used to
    check ledger/cache agreement.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Newest first, ordered by (created_at DESC, seq DESC, id DESC).  The
      id tiebreak makes the order total, so repeated calls against an
      unchanged ledger return identical sequences.
    - date_from is inclusive, date_to exclusive.

Failure modes:
    - InvalidMovementTypeError for an unknown type filter.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, or_, select

from stock_kernel.domain.clock import as_utc
from stock_kernel.domain.dtos import MovementFilter, MovementPage, MovementRecord
from stock_kernel.domain.movement import MovementType, parse_movement_type, signed_delta
from stock_kernel.models.stock_movement import StockMovement
from stock_kernel.models.variant_stock import VariantStockState
from stock_kernel.selectors.base import BaseSelector, contains_ci

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


@dataclass(frozen=True)
class MovementStats:
    total_in: int = 0
    total_out: int = 0
    adjustments: int = 0
    transfers: int = 0
    today: int = 0


@dataclass(frozen=True)
class ChainVerification:
    """
    Result of walking one variant's ledger.

    is_valid is True when every row continues the previous one, seq has no
    gaps, and the tail agrees with the cached counter.
    """

    variant_id: str
    movement_count: int
    ledger_stock: int
    cached_stock: int | None
    problems: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.problems


class MovementSelector(BaseSelector[StockMovement]):
    """Queries over stock_movements."""

    def __init__(
        self,
        session,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
    ):
        super().__init__(session)
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    def list(
        self,
        organization_id: str | None = None,
        variant_id: str | None = None,
        product_id: str | None = None,
        filters: MovementFilter | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> MovementPage:
        """
        One page of movement history, newest first.

        At least one of organization_id, variant_id, product_id is required.
        limit defaults to the configured page size and is clamped to the
        maximum; a negative offset is treated as zero.
        """
        if organization_id is None and variant_id is None and product_id is None:
            raise ValueError("organization_id, variant_id or product_id is required")

        limit = self._clamp_limit(limit)
        offset = max(0, offset)

        conditions = self._conditions(organization_id, variant_id, product_id, filters)

        total = self.session.execute(
            select(func.count()).select_from(StockMovement).where(*conditions)
        ).scalar_one()

        rows = self.session.execute(
            select(StockMovement)
            .where(*conditions)
            .order_by(
                StockMovement.created_at.desc(),
                StockMovement.seq.desc(),
                StockMovement.id.desc(),
            )
            .limit(limit)
            .offset(offset)
        ).scalars().all()

        return MovementPage(
            items=tuple(MovementRecord.from_model(row) for row in rows),
            total=total,
            limit=limit,
            offset=offset,
        )

    def tail(self, variant_id: str) -> MovementRecord | None:
        """Most recent movement for the variant."""
        row = self.session.execute(
            select(StockMovement)
            .where(StockMovement.variant_id == variant_id)
            .order_by(StockMovement.seq.desc())
            .limit(1)
        ).scalar_one_or_none()
        return MovementRecord.from_model(row) if row is not None else None

    def chain(self, variant_id: str) -> tuple[MovementRecord, ...]:
        """Full history for one variant in ledger order (oldest first)."""
        rows = self.session.execute(
            select(StockMovement)
            .where(StockMovement.variant_id == variant_id)
            .order_by(StockMovement.seq.asc())
        ).scalars().all()
        return tuple(MovementRecord.from_model(row) for row in rows)

    def verify_chain(self, variant_id: str) -> ChainVerification:
        movements = self.chain(variant_id)
        problems: list[str] = []

        running = 0
        for expected_seq, movement in enumerate(movements, start=1):
            if movement.seq != expected_seq:
                problems.append(f"seq {movement.seq} found where {expected_seq} expected")
            if movement.previous_stock != running:
                problems.append(
                    f"seq {movement.seq}: previous_stock {movement.previous_stock} "
                    f"does not continue {running}"
                )
            if movement.new_stock != movement.previous_stock + signed_delta(
                movement.movement_type, movement.quantity
            ):
                problems.append(f"seq {movement.seq}: new_stock does not match quantity")
            if movement.new_stock < 0:
                problems.append(f"seq {movement.seq}: negative new_stock")
            running = movement.new_stock

        state = self.session.execute(
            select(VariantStockState).where(VariantStockState.variant_id == variant_id)
        ).scalar_one_or_none()
        cached = state.current_stock if state is not None else None

        if state is None:
            problems.append("no stock state row")
        else:
            if state.current_stock != running:
                problems.append(
                    f"cached current_stock {state.current_stock} != ledger {running}"
                )
            if state.last_movement_seq != len(movements):
                problems.append(
                    f"cached last_movement_seq {state.last_movement_seq} "
                    f"!= ledger length {len(movements)}"
                )

        return ChainVerification(
            variant_id=variant_id,
            movement_count=len(movements),
            ledger_stock=running,
            cached_stock=cached,
            problems=tuple(problems),
        )

    def stats(self, organization_id: str, now: datetime) -> MovementStats:
        """Counts per movement type plus movements recorded on now's UTC day."""
        counts = dict(
            self.session.execute(
                select(StockMovement.movement_type, func.count())
                .where(StockMovement.organization_id == organization_id)
                .group_by(StockMovement.movement_type)
            ).all()
        )

        start_of_day = as_utc(now).replace(hour=0, minute=0, second=0, microsecond=0)
        today = self.session.execute(
            select(func.count())
            .select_from(StockMovement)
            .where(
                StockMovement.organization_id == organization_id,
                StockMovement.created_at >= start_of_day,
                StockMovement.created_at < start_of_day + timedelta(days=1),
            )
        ).scalar_one()

        return MovementStats(
            total_in=counts.get(MovementType.IN.value, 0),
            total_out=counts.get(MovementType.OUT.value, 0),
            adjustments=counts.get(MovementType.ADJUSTMENT.value, 0),
            transfers=counts.get(MovementType.TRANSFER.value, 0),
            today=today,
        )

    def _clamp_limit(self, limit: int | None) -> int:
        if limit is None:
            return self.default_page_size
        return max(1, min(limit, self.max_page_size))

    @staticmethod
    def _conditions(organization_id, variant_id, product_id, filters):
        conditions = []
        if organization_id is not None:
            conditions.append(StockMovement.organization_id == organization_id)
        if variant_id is not None:
            conditions.append(StockMovement.variant_id == variant_id)
        if product_id is not None:
            conditions.append(StockMovement.product_id == product_id)

        if filters is None:
            return conditions

        if filters.movement_type is not None:
            conditions.append(
                StockMovement.movement_type == parse_movement_type(filters.movement_type).value
            )
        if filters.date_from is not None:
            conditions.append(StockMovement.created_at >= as_utc(filters.date_from))
        if filters.date_to is not None:
            conditions.append(StockMovement.created_at < as_utc(filters.date_to))
        if filters.search:
            term = filters.search.strip()
            if term:
                conditions.append(
                    or_(
                        contains_ci(StockMovement.product_name, term),
                        contains_ci(StockMovement.variant_name, term),
                        contains_ci(StockMovement.sku, term),
                        contains_ci(StockMovement.reason, term),
                        contains_ci(StockMovement.reference, term),
                    )
                )
        return conditions
