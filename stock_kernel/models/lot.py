"""
Module: stock_kernel.models.lot
Responsibility: ORM persistence for traceable lots (manufactured or received
    batches of one variant, optionally expiry-dated).
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    T1 -- 0 <= current_quantity <= initial_quantity.  CHECK constraint.
    T2 -- initial_quantity > 0.  CHECK constraint.
    T3 -- lot_number unique per organization.  UNIQUE constraint.
    T4 -- lot_number, organization_id, variant_id, product_id and
          initial_quantity are frozen after creation (db/immutability.py).

Non-goals:
    - Status is not stored.  active / expiring / depleted is derived by
      domain.lot_expiry.classify at read time.
    - The sum of current_quantity across a variant's lots is not required to
      equal VariantStockState.current_stock; lots are a traceability overlay.
"""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase


class Lot(TrackedBase):
    """A traceable batch of a variant's stock."""

    __tablename__ = "lots"

    __table_args__ = (
        CheckConstraint("initial_quantity > 0", name="ck_lot_initial_positive"),
        CheckConstraint(
            "current_quantity >= 0 AND current_quantity <= initial_quantity",
            name="ck_lot_current_bounds",
        ),
        UniqueConstraint("organization_id", "lot_number", name="uq_lot_org_number"),
        Index("idx_lot_variant", "variant_id"),
        Index("idx_lot_org_expiry", "organization_id", "expiry_date"),
    )

    organization_id: Mapped[str] = mapped_column(String(100), nullable=False)

    lot_number: Mapped[str] = mapped_column(String(100), nullable=False)

    product_id: Mapped[str] = mapped_column(String(100), nullable=False)

    variant_id: Mapped[str] = mapped_column(String(100), nullable=False)

    initial_quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # INVARIANT T1
    current_quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)

    manufactured_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    expiry_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    supplier: Mapped[str | None] = mapped_column(String(300), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<Lot {self.lot_number}: variant={self.variant_id} "
            f"{self.current_quantity}/{self.initial_quantity}>"
        )
