"""
LotRegistry -- creation, consumption and listing of traceable lots.

Responsibility:
    Registers received or manufactured batches against a variant and draws
    them down when lot-tagged movements consume them.

Architecture position:
    Kernel > Services -- flush-only.  Listing is delegated to LotSelector.

Invariants enforced:
    - lot_number is unique per organization.
    - initial_quantity > 0; current_quantity starts equal to it.
    - An expiry date, when given, is not in the past at creation.
    - consume never takes current_quantity below zero.

Failure modes:
    - InvalidLotError, InvalidQuantityError, DuplicateLotNumberError,
      VariantNotFoundError (create).
    - LotNotFoundError, LotOverdrawError, InvalidLotError when the lot
      belongs to another variant, OptimisticLockError (consume).
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from stock_kernel.domain.clock import as_utc
from stock_kernel.domain.dtos import NewLot
from stock_kernel.domain.lot_expiry import LotStatus
from stock_kernel.domain.movement import validate_quantity
from stock_kernel.exceptions import (
    DuplicateLotNumberError,
    InvalidLotError,
    LotNotFoundError,
    LotOverdrawError,
    OptimisticLockError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.lot import Lot
from stock_kernel.selectors.lot_selector import ALL_STATUSES, LotSelector, LotView
from stock_kernel.services.base import BaseService
from stock_kernel.services.stock_state_service import StockStateService

logger = get_logger("services.lot_registry")


class LotRegistry(BaseService[Lot]):
    """Writes to lots."""

    def create(self, new_lot: NewLot) -> Lot:
        lot_number = (new_lot.lot_number or "").strip()
        if not lot_number:
            raise InvalidLotError(new_lot.lot_number, "lot number is required")

        initial_quantity = validate_quantity(new_lot.initial_quantity, "initial_quantity")

        now = self.clock.now()
        expiry_date = as_utc(new_lot.expiry_date)
        manufactured_at = as_utc(new_lot.manufactured_at)
        if expiry_date is not None and expiry_date < now:
            raise InvalidLotError(lot_number, "expiry date is in the past")
        if (
            expiry_date is not None
            and manufactured_at is not None
            and manufactured_at > expiry_date
        ):
            raise InvalidLotError(lot_number, "manufactured after its expiry date")

        state = StockStateService(self.session, self.clock).get_state(new_lot.variant_id)
        if state.organization_id != new_lot.organization_id:
            raise InvalidLotError(lot_number, "variant belongs to another organization")

        if self._find(new_lot.organization_id, lot_number) is not None:
            raise DuplicateLotNumberError(lot_number, new_lot.organization_id)

        lot = Lot(
            organization_id=new_lot.organization_id,
            lot_number=lot_number,
            product_id=state.product_id,
            variant_id=state.variant_id,
            initial_quantity=initial_quantity,
            current_quantity=initial_quantity,
            manufactured_at=manufactured_at,
            expiry_date=expiry_date,
            supplier=new_lot.supplier,
            notes=new_lot.notes,
            created_by_id=new_lot.actor_id,
        )
        self.session.add(lot)
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise DuplicateLotNumberError(lot_number, new_lot.organization_id) from exc

        logger.info(
            "lot_created",
            extra={
                "lot_number": lot_number,
                "variant_id": lot.variant_id,
                "initial_quantity": initial_quantity,
                "expiry_date": expiry_date.isoformat() if expiry_date else None,
            },
        )
        return lot

    def consume(
        self,
        organization_id: str,
        lot_number: str,
        quantity: object,
        variant_id: str | None = None,
        actor_id: UUID | None = None,
    ) -> Lot:
        """
        Decrement a lot under a row lock.

        Args:
            variant_id: When given, the lot must belong to this variant.
        """
        requested = validate_quantity(quantity)

        lot = self.session.execute(
            select(Lot)
            .where(Lot.organization_id == organization_id, Lot.lot_number == lot_number)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if lot is None:
            raise LotNotFoundError(lot_number, organization_id)
        if variant_id is not None and lot.variant_id != variant_id:
            raise InvalidLotError(lot_number, f"lot belongs to variant {lot.variant_id}")
        if requested > lot.current_quantity:
            raise LotOverdrawError(lot_number, lot.current_quantity, requested)

        lot.current_quantity -= requested
        lot.updated_by_id = actor_id
        try:
            self.session.flush()
        except StaleDataError as exc:
            raise OptimisticLockError("Lot", lot_number) from exc

        logger.info(
            "lot_consumed",
            extra={
                "lot_number": lot_number,
                "variant_id": lot.variant_id,
                "quantity": requested,
                "remaining": lot.current_quantity,
            },
        )
        return lot

    def get(self, organization_id: str, lot_number: str) -> Lot:
        lot = self._find(organization_id, lot_number)
        if lot is None:
            raise LotNotFoundError(lot_number, organization_id)
        return lot

    def list(
        self,
        organization_id: str,
        now: datetime | None = None,
        status: LotStatus | str = ALL_STATUSES,
        search: str | None = None,
        variant_id: str | None = None,
        product_id: str | None = None,
        horizon_days: int | None = None,
        urgent_days: int | None = None,
    ) -> tuple[LotView, ...]:
        """Lots with derived status; see LotSelector.list."""
        selector = LotSelector(self.session)
        if horizon_days is not None:
            selector.horizon_days = horizon_days
        if urgent_days is not None:
            selector.urgent_days = urgent_days
        return selector.list(
            organization_id,
            now or self.clock.now(),
            status=status,
            search=search,
            variant_id=variant_id,
            product_id=product_id,
        )

    def _find(self, organization_id: str, lot_number: str) -> Lot | None:
        return self.session.execute(
            select(Lot).where(
                Lot.organization_id == organization_id,
                Lot.lot_number == lot_number,
            )
        ).scalar_one_or_none()
