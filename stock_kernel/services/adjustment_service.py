"""
AdjustmentService -- the transaction-owning boundary for stock changes.

Responsibility:
    Validates one stock-changing request, takes exclusive access to the
    affected variant(s), reads the current counters, computes the new stock
    value, appends the ledger movement(s), updates the counters and any lot,
    commits, and returns a typed result with the fresh availability.

Architecture position:
    Kernel > Services -- imperative shell, owns transaction boundaries.
    Delegates to the flush-only MovementLedger, StockStateService and
    LotRegistry; derives availability through domain.availability.

Adjustment flow:
    adjust(request)
      1. Parse type, validate quantity               (no I/O)
      2. Hold VariantGuard for the variant           (in-process)
      3. Open a session, SELECT ... FOR UPDATE state (cross-process)
      4. Check the cached counter against the ledger tail
      5. Compute new_stock; refuse if negative
      6. Consume the lot for lot-tagged OUT / ADJUSTMENT
      7. MovementLedger.append, StockStateService.record_movement
      8. Commit (version counter rejects a lost update)
      9. Release the guard; return AdjustmentResult

Invariants enforced:
    - Either the ledger append, the counter update and the lot update all
      commit, or nothing does.
    - A transfer's two legs commit together; both variants are guarded and
      row-locked in sorted id order before anything is read.
    - No domain exception crosses this boundary: expected conditions become
      an AdjustmentResult status.  Unexpected exceptions are logged and
      re-raised after rollback.

Failure modes (AdjustmentStatus):
    INVALID_QUANTITY, INVALID_TYPE, INVALID_TRANSFER, INVALID_LOT,
    DUPLICATE_LOT, VARIANT_NOT_FOUND, INSUFFICIENT_STOCK, LOT_NOT_FOUND,
    LOT_OVERDRAW -- user-correctable, nothing written.
    INVARIANT_VIOLATION -- logged at ERROR with movement context; reported
    with a generic message.
    STORE_UNAVAILABLE -- driver / pool failure or exhausted conflict
    retries; safe to retry, nothing written.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable
from uuid import UUID, uuid4

from sqlalchemy.exc import (
    DisconnectionError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from stock_kernel.domain.availability import AvailabilitySnapshot, compute
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    AdjustmentRequest,
    LotRecord,
    MovementRecord,
    NewLot,
    NewMovement,
    TransferRequest,
)
from stock_kernel.domain.movement import (
    LOT_CONSUMING_TYPES,
    MovementType,
    apply_movement,
    parse_movement_type,
    validate_quantity,
)
from stock_kernel.exceptions import (
    DuplicateLotNumberError,
    ImmutabilityError,
    InsufficientStockError,
    InvalidLotError,
    InvalidMovementTypeError,
    InvalidQuantityError,
    InvalidTransferError,
    InvariantViolationError,
    LotNotFoundError,
    LotOverdrawError,
    OptimisticLockError,
    StockKernelError,
    StoreUnavailableError,
    ValidationError,
    VariantNotFoundError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.variant_stock import VariantStockState
from stock_kernel.services.lot_registry import LotRegistry
from stock_kernel.services.movement_ledger import MovementLedger
from stock_kernel.services.stock_state_service import StockStateService
from stock_kernel.services.variant_guard import VariantGuard, default_guard

logger = get_logger("services.adjustment")

DEFAULT_LOW_STOCK_THRESHOLD = 5
DEFAULT_MAX_CONFLICT_RETRIES = 3

INVARIANT_VIOLATION_MESSAGE = (
    "Stock could not be updated because of an internal consistency error. "
    "The problem has been logged."
)


class AdjustmentStatus(str, Enum):
    """Outcome of a boundary operation."""

    APPLIED = "applied"
    INVALID_QUANTITY = "invalid_quantity"
    INVALID_TYPE = "invalid_type"
    INVALID_TRANSFER = "invalid_transfer"
    INVALID_LOT = "invalid_lot"
    DUPLICATE_LOT = "duplicate_lot"
    VARIANT_NOT_FOUND = "variant_not_found"
    INSUFFICIENT_STOCK = "insufficient_stock"
    LOT_NOT_FOUND = "lot_not_found"
    LOT_OVERDRAW = "lot_overdraw"
    INVARIANT_VIOLATION = "invariant_violation"
    STORE_UNAVAILABLE = "store_unavailable"


_STATUS_BY_ERROR: tuple[tuple[type[StockKernelError], AdjustmentStatus], ...] = (
    (InvalidQuantityError, AdjustmentStatus.INVALID_QUANTITY),
    (InvalidMovementTypeError, AdjustmentStatus.INVALID_TYPE),
    (InvalidTransferError, AdjustmentStatus.INVALID_TRANSFER),
    (InvalidLotError, AdjustmentStatus.INVALID_LOT),
    (DuplicateLotNumberError, AdjustmentStatus.DUPLICATE_LOT),
    (VariantNotFoundError, AdjustmentStatus.VARIANT_NOT_FOUND),
    (InsufficientStockError, AdjustmentStatus.INSUFFICIENT_STOCK),
    (LotNotFoundError, AdjustmentStatus.LOT_NOT_FOUND),
    (LotOverdrawError, AdjustmentStatus.LOT_OVERDRAW),
    (StoreUnavailableError, AdjustmentStatus.STORE_UNAVAILABLE),
)

_STORE_ERRORS = (OperationalError, DisconnectionError, PoolTimeoutError)


@dataclass(frozen=True)
class AdjustmentResult:
    """
    Typed result of adjust / transfer / create_lot / consume_lot.

    ``movements`` holds one record for an adjustment, two for a transfer
    (source leg first) and none for lot operations.  ``availability`` is
    the source variant's snapshot after commit.
    """

    status: AdjustmentStatus
    movements: tuple[MovementRecord, ...] = ()
    availability: AvailabilitySnapshot | None = None
    destination_availability: AvailabilitySnapshot | None = None
    lot: LotRecord | None = None
    error_code: str | None = None
    message: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status is AdjustmentStatus.APPLIED

    @property
    def movement(self) -> MovementRecord | None:
        return self.movements[0] if self.movements else None


class AdjustmentService:
    """
    Commits stock changes one unit of work at a time.

    Contract:
        Each public method opens its own session from ``session_factory``,
        commits on success, rolls back on failure and always closes it.

    Guarantees:
        - Same-variant operations in this process are serialized by the
          VariantGuard for the whole unit of work, commit included.
        - OptimisticLockError is retried up to ``max_conflict_retries``
          times before STORE_UNAVAILABLE is returned.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        guard: VariantGuard | None = None,
        default_low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD,
        max_conflict_retries: int = DEFAULT_MAX_CONFLICT_RETRIES,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._guard = guard or default_guard
        self._default_threshold = default_low_stock_threshold
        self._max_conflict_retries = max_conflict_retries

    # =========================================================================
    # Public operations
    # =========================================================================

    def adjust(self, request: AdjustmentRequest) -> AdjustmentResult:
        """
        Apply one in / out / adjustment movement to a variant.

        ``transfer`` is rejected with INVALID_TRANSFER; transfers always go
        through ``transfer()`` so both legs are written together.

        Postconditions:
            - APPLIED: exactly one movement row, one counter update and at
              most one lot update are committed.
            - Any other status: nothing was written.
        """
        with LogContext.bind(
            correlation_id=str(uuid4()),
            operation="adjust",
            variant_id=request.variant_id,
            reference=request.reference,
            lot_number=request.lot_number,
            actor_id=_str_or_none(request.actor_id),
        ):
            logger.info(
                "stock_adjustment_started",
                extra={
                    "movement_type": str(getattr(request.movement_type, "value", request.movement_type)),
                    "requested_quantity": repr(request.quantity),
                },
            )
            t0 = time.monotonic()

            try:
                movement_type = parse_movement_type(request.movement_type)
                if movement_type is MovementType.TRANSFER:
                    # A lone destination leg would break the pairing.
                    raise InvalidTransferError(
                        request.variant_id, "", "transfers need a destination; use transfer()"
                    )
                quantity = validate_quantity(request.quantity)
            except ValidationError as exc:
                return self._finish("adjust", self._rejected(exc), t0)

            return self._run(
                "adjust",
                (request.variant_id,),
                lambda session: self._apply_adjustment(session, request, movement_type, quantity),
                t0,
            )

    def transfer(self, request: TransferRequest) -> AdjustmentResult:
        """
        Move stock between two variants of the same organization.

        Written as an OUT leg on the source and a TRANSFER leg on the
        destination sharing one reference.  Both legs commit or neither does.
        """
        with LogContext.bind(
            correlation_id=str(uuid4()),
            operation="transfer",
            variant_id=request.source_variant_id,
            reference=request.reference,
            lot_number=request.lot_number,
            actor_id=_str_or_none(request.actor_id),
        ):
            logger.info(
                "stock_adjustment_started",
                extra={
                    "destination_variant_id": request.destination_variant_id,
                    "requested_quantity": repr(request.quantity),
                },
            )
            t0 = time.monotonic()

            try:
                quantity = validate_quantity(request.quantity)
                if not request.source_variant_id or not request.destination_variant_id:
                    raise InvalidTransferError(
                        request.source_variant_id,
                        request.destination_variant_id,
                        "source and destination are required",
                    )
                if request.source_variant_id == request.destination_variant_id:
                    raise InvalidTransferError(
                        request.source_variant_id,
                        request.destination_variant_id,
                        "source and destination must differ",
                    )
            except ValidationError as exc:
                return self._finish("transfer", self._rejected(exc), t0)

            return self._run(
                "transfer",
                (request.source_variant_id, request.destination_variant_id),
                lambda session: self._apply_transfer(session, request, quantity),
                t0,
            )

    def create_lot(self, new_lot: NewLot) -> AdjustmentResult:
        """Register a lot.  No movement is written; receipts are separate."""
        with LogContext.bind(
            correlation_id=str(uuid4()),
            operation="create_lot",
            organization_id=new_lot.organization_id,
            lot_number=new_lot.lot_number,
            variant_id=new_lot.variant_id,
            actor_id=_str_or_none(new_lot.actor_id),
        ):
            t0 = time.monotonic()

            def work(session: Session) -> AdjustmentResult:
                lot = LotRegistry(session, self._clock).create(new_lot)
                return AdjustmentResult(
                    status=AdjustmentStatus.APPLIED,
                    lot=LotRecord.from_model(lot),
                )

            return self._run("create_lot", (new_lot.variant_id,), work, t0)

    def consume_lot(
        self,
        organization_id: str,
        lot_number: str,
        quantity: object,
        actor_id: UUID | None = None,
    ) -> AdjustmentResult:
        """
        Draw a lot down without writing a movement (e.g. lot re-attribution).

        Serialized on the lot's variant like every other mutation.
        """
        with LogContext.bind(
            correlation_id=str(uuid4()),
            operation="consume_lot",
            organization_id=organization_id,
            lot_number=lot_number,
            actor_id=_str_or_none(actor_id),
        ):
            t0 = time.monotonic()
            try:
                validate_quantity(quantity)
                variant_id = self._lot_variant(organization_id, lot_number)
            except (ValidationError, LotNotFoundError) as exc:
                return self._finish("consume_lot", self._rejected(exc), t0)
            except _STORE_ERRORS:
                return self._finish("consume_lot", self._store_unavailable("consume_lot"), t0)

            def work(session: Session) -> AdjustmentResult:
                lot = LotRegistry(session, self._clock).consume(
                    organization_id,
                    lot_number,
                    quantity,
                    variant_id=variant_id,
                    actor_id=actor_id,
                )
                return AdjustmentResult(
                    status=AdjustmentStatus.APPLIED,
                    lot=LotRecord.from_model(lot),
                )

            return self._run("consume_lot", (variant_id,), work, t0)

    # =========================================================================
    # Units of work (run inside an open session, under the guard)
    # =========================================================================

    def _apply_adjustment(
        self,
        session: Session,
        request: AdjustmentRequest,
        movement_type: MovementType,
        quantity: int,
    ) -> AdjustmentResult:
        states = StockStateService(session, self._clock)
        ledger = MovementLedger(session, self._clock)

        state = states.lock_state(request.variant_id)
        self._check_tail(ledger, state)

        new_stock = apply_movement(state.current_stock, movement_type, quantity)
        if new_stock < 0:
            raise InsufficientStockError(state.variant_id, state.current_stock, quantity)

        lot_number = _clean(request.lot_number)
        if lot_number is not None and movement_type in LOT_CONSUMING_TYPES:
            LotRegistry(session, self._clock).consume(
                state.organization_id,
                lot_number,
                quantity,
                variant_id=state.variant_id,
                actor_id=request.actor_id,
            )

        row = ledger.append(
            _new_movement(
                state,
                movement_type,
                quantity,
                new_stock,
                reason=request.reason,
                reference=request.reference,
                lot_number=lot_number,
                actor_id=request.actor_id,
            )
        )
        states.record_movement(state, new_stock, row.seq, request.actor_id)

        return AdjustmentResult(
            status=AdjustmentStatus.APPLIED,
            movements=(MovementRecord.from_model(row),),
            availability=compute(state, self._default_threshold),
        )

    def _apply_transfer(
        self,
        session: Session,
        request: TransferRequest,
        quantity: int,
    ) -> AdjustmentResult:
        states = StockStateService(session, self._clock)
        ledger = MovementLedger(session, self._clock)

        # Row locks in the same order as the guard.
        locked = {
            variant_id: states.lock_state(variant_id)
            for variant_id in sorted((request.source_variant_id, request.destination_variant_id))
        }
        source = locked[request.source_variant_id]
        destination = locked[request.destination_variant_id]

        if source.organization_id != destination.organization_id:
            raise InvalidTransferError(
                source.variant_id,
                destination.variant_id,
                "variants belong to different organizations",
            )

        self._check_tail(ledger, source)
        self._check_tail(ledger, destination)

        source_new = apply_movement(source.current_stock, MovementType.OUT, quantity)
        if source_new < 0:
            raise InsufficientStockError(source.variant_id, source.current_stock, quantity)

        lot_number = _clean(request.lot_number)
        if lot_number is not None:
            LotRegistry(session, self._clock).consume(
                source.organization_id,
                lot_number,
                quantity,
                variant_id=source.variant_id,
                actor_id=request.actor_id,
            )

        reference = request.reference or f"transfer:{uuid4()}"

        out_row = ledger.append(
            _new_movement(
                source,
                MovementType.OUT,
                quantity,
                source_new,
                reason=request.reason or f"Transfer to {destination.variant_id}",
                reference=reference,
                lot_number=lot_number,
                actor_id=request.actor_id,
            )
        )
        states.record_movement(source, source_new, out_row.seq, request.actor_id)

        destination_new = apply_movement(
            destination.current_stock, MovementType.TRANSFER, quantity
        )
        in_row = ledger.append(
            _new_movement(
                destination,
                MovementType.TRANSFER,
                quantity,
                destination_new,
                reason=request.reason or f"Transfer from {source.variant_id}",
                reference=reference,
                lot_number=lot_number,
                actor_id=request.actor_id,
            )
        )
        states.record_movement(destination, destination_new, in_row.seq, request.actor_id)

        return AdjustmentResult(
            status=AdjustmentStatus.APPLIED,
            movements=(MovementRecord.from_model(out_row), MovementRecord.from_model(in_row)),
            availability=compute(source, self._default_threshold),
            destination_availability=compute(destination, self._default_threshold),
        )

    @staticmethod
    def _check_tail(ledger: MovementLedger, state: VariantStockState) -> None:
        """The cached counter must match the newest ledger row."""
        tail = ledger.tail(state.variant_id)
        ledger_stock = tail.new_stock if tail is not None else 0
        ledger_seq = tail.seq if tail is not None else 0
        if state.current_stock != ledger_stock or state.last_movement_seq != ledger_seq:
            raise InvariantViolationError(
                state.variant_id,
                "cached counter disagrees with the ledger tail",
                {
                    "cached_stock": state.current_stock,
                    "cached_seq": state.last_movement_seq,
                    "ledger_stock": ledger_stock,
                    "ledger_seq": ledger_seq,
                },
            )

    # =========================================================================
    # Transaction handling
    # =========================================================================

    def _run(
        self,
        operation: str,
        variant_ids: tuple[str, ...],
        work: Callable[[Session], AdjustmentResult],
        t0: float,
    ) -> AdjustmentResult:
        attempts = self._max_conflict_retries + 1
        for attempt in range(1, attempts + 1):
            with self._guard.hold(*variant_ids):
                session = self._session_factory()
                try:
                    result = work(session)
                    try:
                        session.commit()
                    except StaleDataError as exc:
                        raise OptimisticLockError(
                            "VariantStockState", ",".join(variant_ids)
                        ) from exc
                    return self._finish(operation, result, t0)
                except OptimisticLockError as exc:
                    _safe_rollback(session)
                    logger.warning(
                        "stock_adjustment_conflict_retry",
                        extra={
                            "operation": operation,
                            "attempt": attempt,
                            "max_attempts": attempts,
                            "entity_type": exc.entity_type,
                        },
                    )
                except InvariantViolationError as exc:
                    _safe_rollback(session)
                    logger.error(
                        "invariant_violation",
                        extra={
                            "operation": operation,
                            "reason": exc.reason,
                            "violation_context": exc.context,
                        },
                        exc_info=True,
                    )
                    return self._finish(
                        operation,
                        AdjustmentResult(
                            status=AdjustmentStatus.INVARIANT_VIOLATION,
                            error_code=exc.code,
                            message=INVARIANT_VIOLATION_MESSAGE,
                        ),
                        t0,
                    )
                except ImmutabilityError as exc:
                    _safe_rollback(session)
                    logger.error(
                        "invariant_violation",
                        extra={"operation": operation, "reason": str(exc)},
                        exc_info=True,
                    )
                    return self._finish(
                        operation,
                        AdjustmentResult(
                            status=AdjustmentStatus.INVARIANT_VIOLATION,
                            error_code=InvariantViolationError.code,
                            message=INVARIANT_VIOLATION_MESSAGE,
                        ),
                        t0,
                    )
                except StockKernelError as exc:
                    _safe_rollback(session)
                    if _status_for(exc) is None:
                        logger.error(
                            "stock_adjustment_failed",
                            extra={"operation": operation},
                            exc_info=True,
                        )
                        raise
                    return self._finish(operation, self._rejected(exc), t0)
                except _STORE_ERRORS:
                    _safe_rollback(session)
                    return self._finish(operation, self._store_unavailable(operation), t0)
                except Exception:
                    _safe_rollback(session)
                    logger.error(
                        "stock_adjustment_failed",
                        extra={"operation": operation},
                        exc_info=True,
                    )
                    raise
                finally:
                    session.close()

        logger.error(
            "store_unavailable",
            extra={"operation": operation, "reason": "conflict retries exhausted"},
        )
        return self._finish(
            operation,
            AdjustmentResult(
                status=AdjustmentStatus.STORE_UNAVAILABLE,
                error_code=StoreUnavailableError.code,
                message=str(StoreUnavailableError(operation, "conflict retries exhausted")),
            ),
            t0,
        )

    def _lot_variant(self, organization_id: str, lot_number: str) -> str:
        session = self._session_factory()
        try:
            return LotRegistry(session, self._clock).get(organization_id, lot_number).variant_id
        finally:
            session.close()

    @staticmethod
    def _rejected(exc: StockKernelError) -> AdjustmentResult:
        return AdjustmentResult(
            status=_status_for(exc),
            error_code=exc.code,
            message=str(exc),
        )

    @staticmethod
    def _store_unavailable(operation: str) -> AdjustmentResult:
        logger.error("store_unavailable", extra={"operation": operation}, exc_info=True)
        return AdjustmentResult(
            status=AdjustmentStatus.STORE_UNAVAILABLE,
            error_code=StoreUnavailableError.code,
            message="The stock store is temporarily unavailable; the request can be retried.",
        )

    @staticmethod
    def _finish(operation: str, result: AdjustmentResult, t0: float) -> AdjustmentResult:
        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        extra = {
            "operation": operation,
            "status": result.status.value,
            "duration_ms": duration_ms,
        }
        if result.is_success:
            if result.availability is not None:
                extra["available_stock"] = result.availability.available_stock
                extra["is_low_stock"] = result.availability.is_low_stock
            extra["movement_count"] = len(result.movements)
            logger.info("stock_adjustment_completed", extra=extra)
        else:
            extra["error_code"] = result.error_code
            logger.info("stock_adjustment_rejected", extra=extra)
        return result


def _status_for(exc: StockKernelError) -> AdjustmentStatus | None:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return None


def _safe_rollback(session: Session) -> None:
    """Roll back; a dead connection is logged, the original error wins."""
    try:
        session.rollback()
    except SQLAlchemyError:
        logger.warning("transaction_rollback_failed", exc_info=True)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _str_or_none(value: object) -> str | None:
    return str(value) if value is not None else None


def _new_movement(
    state: VariantStockState,
    movement_type: MovementType,
    quantity: int,
    new_stock: int,
    reason: str | None,
    reference: str | None,
    lot_number: str | None,
    actor_id: UUID | None,
) -> NewMovement:
    return NewMovement(
        organization_id=state.organization_id,
        product_id=state.product_id,
        variant_id=state.variant_id,
        movement_type=movement_type,
        quantity=quantity,
        previous_stock=state.current_stock,
        new_stock=new_stock,
        reason=reason,
        reference=reference,
        lot_number=lot_number,
        sku=state.sku,
        product_name=state.product_name,
        variant_name=state.variant_name,
        created_by_id=actor_id,
    )
