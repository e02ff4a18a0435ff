"""
Module: inventory_kernel.models.reservation
Responsibility: ORM persistence for holds on available stock.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - status moves active -> released or active -> consumed, never back.
    - Sum of active reservation quantities for a key equals the level's
      reserved_level (ReservationManager is the only writer of both).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase


class ReservationModel(TrackedBase):
    __tablename__ = "inventory_reservations"

    __table_args__ = (
        Index("idx_reservation_key_status", "tenant_id", "product_id", "location_id", "status"),
        Index("idx_reservation_reference", "tenant_id", "reference_id"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    variant_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    location_id: Mapped[str] = mapped_column(String(100), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    reserved_for: Mapped[str] = mapped_column(String(50), nullable=False)
    reference_id: Mapped[str] = mapped_column(String(100), nullable=False)
    batch_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reserved_until: Mapped[datetime | None] = mapped_column(nullable=True)

    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False)
    released_at: Mapped[datetime | None] = mapped_column(nullable=True)
    consumed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Reservation {self.id}: {self.quantity} of {self.product_id}@{self.location_id} "
            f"for {self.reserved_for}:{self.reference_id} {self.status}>"
        )
