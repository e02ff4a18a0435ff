"""
Module: inventory_kernel.models.inventory_level
Responsibility: ORM persistence for per-(tenant, product, variant, location)
    stock levels.  One row is the mutable projection of the movement ledger
    for its key.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - available_level == current_level - reserved_level (maintained by
      LevelStore, which is the only writer of the three quantity columns).
    - version increments on every UPDATE (SQLAlchemy version_id_col); a
      concurrent writer that read a stale version gets StaleDataError.
    - Rows are never deleted; is_active=False soft-deactivates.
    - last_movement_sequence is the source of movement sequence numbers for
      the key; it is only incremented while the row is locked.

Failure modes:
    - IntegrityError on a duplicate key with a non-NULL variant
      (uq_inventory_level_key).  NULL variants are guarded by LevelStore
      because SQL treats NULLs as distinct.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase


class InventoryLevelModel(TrackedBase):
    """Current stock position for one stock key."""

    __tablename__ = "inventory_levels"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "product_id",
            "variant_id",
            "location_id",
            name="uq_inventory_level_key",
        ),
        Index("idx_inventory_level_location", "tenant_id", "location_id"),
        Index("idx_inventory_level_product", "tenant_id", "product_id"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    variant_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    location_id: Mapped[str] = mapped_column(String(100), nullable=False)

    current_level: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    available_level: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    reserved_level: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    min_stock_level: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    max_stock_level: Mapped[Decimal | None] = mapped_column(nullable=True)
    reorder_point: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    reorder_quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    valuation_method: Mapped[str] = mapped_column(String(20), default="fifo", nullable=False)
    average_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    total_value: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    last_movement_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_count_at: Mapped[datetime | None] = mapped_column(nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Locked counter for the per-key movement sequence
    last_movement_sequence: Mapped[int] = mapped_column(nullable=False, default=0)

    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<InventoryLevel {self.product_id}/{self.variant_id or '-'}@{self.location_id}: "
            f"current={self.current_level} reserved={self.reserved_level} v{self.version}>"
        )
