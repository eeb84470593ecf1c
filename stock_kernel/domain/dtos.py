"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable data structures that cross the service and selector
    boundaries: requests handed to AdjustmentService and LotRegistry, the
    movement draft handed to MovementLedger, and the read-side records
    returned by selectors.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods are boundary converters invoked only from
    services and selectors; ORM types are imported for type checking only.

Data flow:
    AdjustmentRequest -> NewMovement -> StockMovement (ORM) -> MovementRecord
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from stock_kernel.domain.clock import as_utc
from stock_kernel.domain.movement import MovementType

if TYPE_CHECKING:
    from stock_kernel.models.lot import Lot as LotModel
    from stock_kernel.models.stock_movement import StockMovement as StockMovementModel
    from stock_kernel.models.variant_stock import VariantStockState as VariantStockModel


# =============================================================================
# Write side
# =============================================================================


@dataclass(frozen=True)
class AdjustmentRequest:
    """
    One stock-changing request for a single variant.

    ``movement_type`` and ``quantity`` are kept as supplied so the boundary
    can report INVALID_TYPE / INVALID_QUANTITY instead of failing at
    construction.
    """

    variant_id: str
    movement_type: MovementType | str
    quantity: object
    reason: str | None = None
    reference: str | None = None
    lot_number: str | None = None
    actor_id: UUID | None = None


@dataclass(frozen=True)
class TransferRequest:
    """Move ``quantity`` units from one variant to another atomically."""

    source_variant_id: str
    destination_variant_id: str
    quantity: object
    reason: str | None = None
    reference: str | None = None
    lot_number: str | None = None
    actor_id: UUID | None = None


@dataclass(frozen=True)
class NewMovement:
    """
    A fully computed ledger row, not yet persisted.

    previous_stock and new_stock are computed by AdjustmentService under the
    variant lock; MovementLedger only validates them.
    """

    organization_id: str
    product_id: str
    variant_id: str
    movement_type: MovementType
    quantity: int
    previous_stock: int
    new_stock: int
    reason: str | None = None
    reference: str | None = None
    lot_number: str | None = None
    sku: str | None = None
    product_name: str | None = None
    variant_name: str | None = None
    created_by_id: UUID | None = None


@dataclass(frozen=True)
class NewLot:
    """Lot registration request.  product_id is taken from the variant."""

    organization_id: str
    lot_number: str
    variant_id: str
    initial_quantity: object
    manufactured_at: datetime | None = None
    expiry_date: datetime | None = None
    supplier: str | None = None
    notes: str | None = None
    actor_id: UUID | None = None


# =============================================================================
# Read side
# =============================================================================


@dataclass(frozen=True)
class VariantStock:
    """Snapshot of a VariantStockState row."""

    variant_id: str
    organization_id: str
    product_id: str
    current_stock: int
    reserved_stock: int
    low_stock_threshold: int | None
    last_movement_seq: int = 0
    sku: str | None = None
    product_name: str | None = None
    variant_name: str | None = None

    @classmethod
    def from_model(cls, model: VariantStockModel) -> VariantStock:
        return cls(
            variant_id=model.variant_id,
            organization_id=model.organization_id,
            product_id=model.product_id,
            current_stock=model.current_stock,
            reserved_stock=model.reserved_stock,
            low_stock_threshold=model.low_stock_threshold,
            last_movement_seq=model.last_movement_seq,
            sku=model.sku,
            product_name=model.product_name,
            variant_name=model.variant_name,
        )


@dataclass(frozen=True)
class MovementRecord:
    """A persisted ledger row."""

    id: UUID
    organization_id: str
    product_id: str
    variant_id: str
    seq: int
    movement_type: MovementType
    quantity: int
    previous_stock: int
    new_stock: int
    created_at: datetime
    reason: str | None = None
    reference: str | None = None
    lot_number: str | None = None
    sku: str | None = None
    product_name: str | None = None
    variant_name: str | None = None
    created_by_id: UUID | None = None

    @classmethod
    def from_model(cls, model: StockMovementModel) -> MovementRecord:
        return cls(
            id=model.id,
            organization_id=model.organization_id,
            product_id=model.product_id,
            variant_id=model.variant_id,
            seq=model.seq,
            movement_type=MovementType(model.movement_type),
            quantity=model.quantity,
            previous_stock=model.previous_stock,
            new_stock=model.new_stock,
            created_at=as_utc(model.created_at),
            reason=model.reason,
            reference=model.reference,
            lot_number=model.lot_number,
            sku=model.sku,
            product_name=model.product_name,
            variant_name=model.variant_name,
            created_by_id=model.created_by_id,
        )


@dataclass(frozen=True)
class LotRecord:
    """A persisted lot.  sku / product_name are joined from the variant."""

    id: UUID
    organization_id: str
    lot_number: str
    product_id: str
    variant_id: str
    initial_quantity: int
    current_quantity: int
    manufactured_at: datetime | None = None
    expiry_date: datetime | None = None
    supplier: str | None = None
    notes: str | None = None
    sku: str | None = None
    product_name: str | None = None

    @classmethod
    def from_model(
        cls,
        model: LotModel,
        sku: str | None = None,
        product_name: str | None = None,
    ) -> LotRecord:
        return cls(
            id=model.id,
            organization_id=model.organization_id,
            lot_number=model.lot_number,
            product_id=model.product_id,
            variant_id=model.variant_id,
            initial_quantity=model.initial_quantity,
            current_quantity=model.current_quantity,
            manufactured_at=as_utc(model.manufactured_at),
            expiry_date=as_utc(model.expiry_date),
            supplier=model.supplier,
            notes=model.notes,
            sku=sku,
            product_name=product_name,
        )


@dataclass(frozen=True)
class MovementFilter:
    """
    Movement history filters.

    date_from is inclusive, date_to exclusive.  search matches product name,
    variant name, sku, reason and reference case-insensitively.
    """

    movement_type: MovementType | str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    search: str | None = None


@dataclass(frozen=True)
class MovementPage:
    items: tuple[MovementRecord, ...] = field(default_factory=tuple)
    total: int = 0
    limit: int = 0
    offset: int = 0

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total
