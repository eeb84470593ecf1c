"""
Module: stock_kernel.models.variant_stock
Responsibility: ORM persistence for the denormalized per-variant stock
    counters read by every inventory screen.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    S1 -- current_stock >= 0, reserved_stock >= 0.  CHECK constraints.
    S2 -- One row per variant.  UNIQUE (variant_id).
    S3 -- current_stock equals the new_stock of the newest StockMovement for
          the variant, and last_movement_seq equals that movement's seq.
          Maintained by AdjustmentService inside the same transaction as the
          ledger append; verified by MovementSelector.verify_chain.
    S4 -- Lost updates are detected by the mapper version counter
          (version_id_col): a flush against a stale version raises
          StaleDataError, surfaced as OptimisticLockError.

Audit relevance:
    This row is a write-through cache.  The ledger is authoritative; if the
    two ever disagree the ledger wins and the disagreement is an invariant
    violation.
"""

from sqlalchemy import BigInteger, CheckConstraint, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase


class VariantStockState(TrackedBase):
    """
    Stock counters for one variant.

    Contract:
        Created zeroed when the variant is registered.  current_stock and
        last_movement_seq change only inside AdjustmentService, exactly once
        per committed movement.  reserved_stock and low_stock_threshold are
        maintained by collaborators (order workflow, catalogue settings) and
        never write a movement.

    Non-goals:
        - available_stock and is_low_stock are not stored; they are derived by
          domain.availability.compute on every read.
    """

    __tablename__ = "variant_stock_states"

    __table_args__ = (
        CheckConstraint("current_stock >= 0", name="ck_variant_stock_current_nonneg"),
        CheckConstraint("reserved_stock >= 0", name="ck_variant_stock_reserved_nonneg"),
        CheckConstraint(
            "low_stock_threshold IS NULL OR low_stock_threshold >= 0",
            name="ck_variant_stock_threshold_nonneg",
        ),
        UniqueConstraint("variant_id", name="uq_variant_stock_variant"),
        Index("idx_variant_stock_org", "organization_id"),
        Index("idx_variant_stock_product", "product_id"),
    )

    organization_id: Mapped[str] = mapped_column(String(100), nullable=False)

    product_id: Mapped[str] = mapped_column(String(100), nullable=False)

    variant_id: Mapped[str] = mapped_column(String(100), nullable=False)

    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    product_name: Mapped[str | None] = mapped_column(String(300), nullable=True)
    variant_name: Mapped[str | None] = mapped_column(String(300), nullable=True)

    # INVARIANT S3: cache of the ledger tail
    current_stock: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    reserved_stock: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # None means "use the organization default"
    low_stock_threshold: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    last_movement_seq: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # INVARIANT S4: optimistic lock counter
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<VariantStockState {self.variant_id}: current={self.current_stock} "
            f"reserved={self.reserved_stock} seq={self.last_movement_seq}>"
        )
