"""
Module: stock_kernel.models.stock_movement
Responsibility: ORM persistence for the append-only stock movement ledger.
    Each row records one committed stock change for one variant, together
    with the stock value before and after it.
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    L1 -- quantity > 0.  The sign is implied by movement_type ('out' is the
          only negative type).  CHECK constraint.
    L2 -- new_stock >= 0 and previous_stock >= 0.  CHECK constraint.
    L3 -- (variant_id, seq) unique.  seq is the per-variant ledger position
          (1, 2, 3 ...); two writers that read the same tail collide here.
    L4 -- Immutable once written.  Enforced by ORM listeners
          (db/immutability.py) and, on PostgreSQL, by triggers (db/sql/).
          Corrections are new compensating movements.

    new_stock = previous_stock + signed_delta(movement_type, quantity) is
    validated by MovementLedger before the row is added; it is not expressible
    as a portable CHECK because the sign depends on the type column.

Audit relevance:
    The ledger is the source of truth for how a variant's stock arrived at
    its current value.  VariantStockState.current_stock is a cache of the
    newest row's new_stock.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UUIDString

MOVEMENT_TYPE_VALUES = ("in", "out", "adjustment", "transfer")


class StockMovement(Base):
    """
    One immutable ledger row.

    Contract:
        Rows are written only by MovementLedger.append inside the
        AdjustmentService unit of work, never updated, never deleted.

    Guarantees:
        - quantity > 0, previous_stock >= 0, new_stock >= 0 (CHECK).
        - seq is unique per variant and increases by exactly one per row.

    Non-goals:
        - Does not store a signed quantity; see domain.movement.signed_delta.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_stock_movement_quantity_positive"),
        CheckConstraint("previous_stock >= 0", name="ck_stock_movement_previous_nonneg"),
        CheckConstraint("new_stock >= 0", name="ck_stock_movement_new_nonneg"),
        CheckConstraint(
            "movement_type IN ('in', 'out', 'adjustment', 'transfer')",
            name="ck_stock_movement_type",
        ),
        UniqueConstraint("variant_id", "seq", name="uq_stock_movement_variant_seq"),
        # Query: organization history, newest first
        Index("idx_stock_movement_org_created", "organization_id", "created_at"),
        # Query: product history
        Index("idx_stock_movement_product_created", "product_id", "created_at"),
        # Query: type filter
        Index("idx_stock_movement_org_type", "organization_id", "movement_type"),
        # Query: lot traceability
        Index("idx_stock_movement_lot", "organization_id", "lot_number"),
    )

    organization_id: Mapped[str] = mapped_column(String(100), nullable=False)

    product_id: Mapped[str] = mapped_column(String(100), nullable=False)

    variant_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # INVARIANT L3: per-variant ledger position
    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    movement_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # INVARIANT L1: always positive
    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)

    previous_stock: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # INVARIANT L2: never negative
    new_stock: Mapped[int] = mapped_column(BigInteger, nullable=False)

    reason: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    # External order / lot / transfer id
    reference: Mapped[str | None] = mapped_column(String(200), nullable=True)

    lot_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Catalogue labels captured at write time so history stays searchable
    product_name: Mapped[str | None] = mapped_column(String(300), nullable=True)
    variant_name: Mapped[str | None] = mapped_column(String(300), nullable=True)
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    created_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<StockMovement {self.id}: variant={self.variant_id} #{self.seq} "
            f"{self.movement_type} {self.quantity} "
            f"{self.previous_stock}->{self.new_stock}>"
        )
