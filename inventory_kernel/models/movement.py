"""
Module: inventory_kernel.models.movement
Responsibility: ORM persistence for the append-only movement ledger.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - new_level == previous_level + quantity (checked by MovementLedger before
      insert).
    - Append-only: rows are never deleted and never updated, except that a
      pending movement receives exactly one decision stamp
      (approved_by/approved_at or rejected_by/rejected_at).  Enforced by
      db/immutability.py.
    - sequence is strictly increasing per stock key; it orders movements that
      share an occurred_at timestamp.

Audit relevance:
    The ledger is the system of record.  Inventory levels are a projection
    that must always be reproducible from the applied movements of a key.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase, UUIDString

# Columns that may be written once on a pending movement.
DECISION_STAMP_FIELDS = frozenset(
    {"approved_by", "approved_at", "rejected_by", "rejected_at"}
)


class InventoryMovementModel(TrackedBase):
    """One recorded stock change."""

    __tablename__ = "inventory_movements"

    __table_args__ = (
        Index(
            "idx_movement_key_sequence",
            "tenant_id",
            "product_id",
            "location_id",
            "sequence",
        ),
        Index("idx_movement_occurred_at", "tenant_id", "occurred_at"),
        Index("idx_movement_type", "tenant_id", "movement_type"),
        Index("idx_movement_reference", "reference_type", "reference_id"),
        Index("idx_movement_batch", "tenant_id", "batch_number"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    variant_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    location_id: Mapped[str] = mapped_column(String(100), nullable=False)

    sequence: Mapped[int] = mapped_column(nullable=False)

    movement_type: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    total_cost: Mapped[Decimal | None] = mapped_column(nullable=True)

    previous_level: Mapped[Decimal] = mapped_column(nullable=False)
    new_level: Mapped[Decimal] = mapped_column(nullable=False)

    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    batch_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    reason: Mapped[str | None] = mapped_column(String(30), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    requires_approval: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    @property
    def is_pending(self) -> bool:
        return (
            self.requires_approval
            and self.approved_at is None
            and self.rejected_at is None
        )

    @property
    def is_applied(self) -> bool:
        """Applied movements moved the level; approval requests never do."""
        return not self.requires_approval

    def __repr__(self) -> str:
        return (
            f"<InventoryMovement {self.id}: {self.movement_type} {self.quantity} "
            f"{self.previous_level}->{self.new_level}>"
        )
