"""
StockStateService -- lifecycle of the per-variant stock counters.

Responsibility:
    Creates the zeroed VariantStockState when a variant is registered, loads
    and row-locks it for the adjustment path, writes the new counter value
    after a ledger append, and maintains the reservation and threshold
    fields owned by collaborators.

Architecture position:
    Kernel > Services -- flush-only.

Invariants enforced:
    - current_stock and last_movement_seq are written only by
      ``record_movement``, which AdjustmentService calls once per appended
      movement.
    - Every counter write goes through the mapper version counter; a stale
      write raises OptimisticLockError.

Failure modes:
    - VariantNotFoundError, VariantAlreadyRegisteredError.
    - InvalidQuantityError for negative reservations or thresholds.
    - OptimisticLockError when another transaction won the race.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from stock_kernel.domain.movement import validate_non_negative
from stock_kernel.exceptions import (
    OptimisticLockError,
    VariantAlreadyRegisteredError,
    VariantNotFoundError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.variant_stock import VariantStockState
from stock_kernel.services.base import BaseService

logger = get_logger("services.stock_state")


class StockStateService(BaseService[VariantStockState]):
    """Writes to variant_stock_states."""

    def register_variant(
        self,
        organization_id: str,
        product_id: str,
        variant_id: str,
        sku: str | None = None,
        product_name: str | None = None,
        variant_name: str | None = None,
        low_stock_threshold: int | None = None,
        actor_id: UUID | None = None,
    ) -> VariantStockState:
        """
        Create the zeroed counters for a new variant.

        Raises:
            VariantAlreadyRegisteredError: A row already exists.
            InvalidQuantityError: low_stock_threshold is negative.
        """
        if low_stock_threshold is not None:
            validate_non_negative(low_stock_threshold, "low_stock_threshold")

        if self.find_state(variant_id) is not None:
            raise VariantAlreadyRegisteredError(variant_id)

        state = VariantStockState(
            organization_id=organization_id,
            product_id=product_id,
            variant_id=variant_id,
            sku=sku,
            product_name=product_name,
            variant_name=variant_name,
            current_stock=0,
            reserved_stock=0,
            low_stock_threshold=low_stock_threshold,
            last_movement_seq=0,
            created_by_id=actor_id,
        )
        self.session.add(state)
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise VariantAlreadyRegisteredError(variant_id) from exc

        logger.info(
            "variant_registered",
            extra={
                "variant_id": variant_id,
                "product_id": product_id,
                "organization_id": organization_id,
            },
        )
        return state

    def find_state(self, variant_id: str) -> VariantStockState | None:
        return self.session.execute(
            select(VariantStockState).where(VariantStockState.variant_id == variant_id)
        ).scalar_one_or_none()

    def get_state(self, variant_id: str) -> VariantStockState:
        state = self.find_state(variant_id)
        if state is None:
            raise VariantNotFoundError(variant_id)
        return state

    def lock_state(self, variant_id: str) -> VariantStockState:
        """
        Load the counters with a row lock held until the transaction ends.

        populate_existing refreshes an instance already in the identity map
        so the caller never computes from a stale current_stock.
        """
        state = self.session.execute(
            select(VariantStockState)
            .where(VariantStockState.variant_id == variant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if state is None:
            raise VariantNotFoundError(variant_id)
        return state

    def record_movement(
        self,
        state: VariantStockState,
        new_stock: int,
        seq: int,
        actor_id: UUID | None = None,
    ) -> VariantStockState:
        """Point the cache at the movement just appended."""
        state.current_stock = new_stock
        state.last_movement_seq = seq
        state.updated_by_id = actor_id
        self._flush(state)
        return state

    def set_reserved_stock(
        self,
        variant_id: str,
        reserved_stock: int,
        actor_id: UUID | None = None,
    ) -> VariantStockState:
        """
        Replace the reservation count.

        Reservations are computed by the order workflow; they never write a
        movement and never change current_stock.
        """
        reserved = validate_non_negative(reserved_stock, "reserved_stock")
        state = self.lock_state(variant_id)
        state.reserved_stock = reserved
        state.updated_by_id = actor_id
        self._flush(state)
        logger.info(
            "reserved_stock_set",
            extra={"variant_id": variant_id, "reserved_stock": reserved},
        )
        return state

    def set_low_stock_threshold(
        self,
        variant_id: str,
        threshold: int | None,
        actor_id: UUID | None = None,
    ) -> VariantStockState:
        """Set the per-variant threshold; None falls back to the organization default."""
        if threshold is not None:
            validate_non_negative(threshold, "low_stock_threshold")
        state = self.lock_state(variant_id)
        state.low_stock_threshold = threshold
        state.updated_by_id = actor_id
        self._flush(state)
        return state

    def _flush(self, state: VariantStockState) -> None:
        # A failed flush expires the instance; read the id first.
        variant_id = state.variant_id
        try:
            self.session.flush()
        except StaleDataError as exc:
            raise OptimisticLockError("VariantStockState", variant_id) from exc
