"""
MovementLedger -- append-only store of stock movements.

Responsibility:
    Accepts fully computed movements from AdjustmentService, checks them
    against the ledger's own arithmetic and chain rules, and persists them.
    It never computes previous_stock or new_stock itself.

Architecture position:
    Kernel > Services -- flush-only.  Reads are delegated to
    MovementSelector.

Invariants enforced:
    - quantity > 0.
    - new_stock == previous_stock + signed_delta(type, quantity).
    - new_stock >= 0.
    - previous_stock equals the tail's new_stock (0 for the first row), and
      seq is the tail's seq + 1.
    Any failure is an InvariantViolationError: it means the caller computed
    from stale or wrong state, never a user error.

Failure modes:
    - InvariantViolationError as above.
    - VariantNotFoundError when the variant was never registered.
    - OptimisticLockError when the (variant_id, seq) unique constraint
      rejects the row because another writer appended first.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from stock_kernel.domain.dtos import MovementFilter, MovementPage, NewMovement
from stock_kernel.domain.movement import signed_delta
from stock_kernel.exceptions import InvariantViolationError, OptimisticLockError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.stock_movement import StockMovement
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.services.base import BaseService
from stock_kernel.services.stock_state_service import StockStateService

logger = get_logger("services.movement_ledger")


class MovementLedger(BaseService[StockMovement]):
    """Writes to stock_movements."""

    def append(self, movement: NewMovement) -> StockMovement:
        """
        Validate and persist one movement.

        Preconditions:
            - The caller holds exclusive access to movement.variant_id.

        Postconditions:
            - The row is flushed (not committed) with the next seq.

        Raises:
            InvariantViolationError: Arithmetic or chain check failed.
            VariantNotFoundError: No stock state row for the variant.
            OptimisticLockError: Another writer took this seq.
        """
        StockStateService(self.session, self.clock).get_state(movement.variant_id)

        tail = self.tail(movement.variant_id)
        expected_previous = tail.new_stock if tail is not None else 0
        seq = tail.seq + 1 if tail is not None else 1

        context = {
            "movement_type": movement.movement_type.value,
            "quantity": movement.quantity,
            "previous_stock": movement.previous_stock,
            "new_stock": movement.new_stock,
            "tail_seq": tail.seq if tail is not None else None,
            "tail_new_stock": expected_previous,
        }

        if not isinstance(movement.quantity, int) or movement.quantity <= 0:
            raise InvariantViolationError(
                movement.variant_id, "movement quantity must be positive", context
            )
        if movement.new_stock != movement.previous_stock + signed_delta(
            movement.movement_type, movement.quantity
        ):
            raise InvariantViolationError(
                movement.variant_id,
                "new_stock does not equal previous_stock plus the signed quantity",
                context,
            )
        if movement.new_stock < 0:
            raise InvariantViolationError(
                movement.variant_id, "new_stock would be negative", context
            )
        if movement.previous_stock != expected_previous:
            raise InvariantViolationError(
                movement.variant_id,
                "previous_stock does not continue the ledger chain",
                context,
            )

        row = StockMovement(
            organization_id=movement.organization_id,
            product_id=movement.product_id,
            variant_id=movement.variant_id,
            seq=seq,
            movement_type=movement.movement_type.value,
            quantity=movement.quantity,
            previous_stock=movement.previous_stock,
            new_stock=movement.new_stock,
            reason=movement.reason,
            reference=movement.reference,
            lot_number=movement.lot_number,
            sku=movement.sku,
            product_name=movement.product_name,
            variant_name=movement.variant_name,
            created_at=self.clock.now(),
            created_by_id=movement.created_by_id,
        )
        self.session.add(row)
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise OptimisticLockError("StockMovement", movement.variant_id) from exc

        logger.info(
            "movement_appended",
            extra={
                "movement_id": str(row.id),
                "variant_id": row.variant_id,
                "seq": seq,
                "movement_type": row.movement_type,
                "quantity": row.quantity,
                "previous_stock": row.previous_stock,
                "new_stock": row.new_stock,
            },
        )
        return row

    def tail(self, variant_id: str) -> StockMovement | None:
        """The variant's most recent movement, or None before the first."""
        return self.session.execute(
            select(StockMovement)
            .where(StockMovement.variant_id == variant_id)
            .order_by(StockMovement.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

    def list(
        self,
        organization_id: str | None = None,
        variant_id: str | None = None,
        product_id: str | None = None,
        filters: MovementFilter | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> MovementPage:
        """Newest-first history; see MovementSelector.list."""
        return MovementSelector(self.session).list(
            organization_id=organization_id,
            variant_id=variant_id,
            product_id=product_id,
            filters=filters,
            limit=limit,
            offset=offset,
        )
