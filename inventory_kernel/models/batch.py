"""
Module: inventory_kernel.models.batch
Responsibility: ORM persistence for receipt batches (lots).  Each batch holds
    stock received at one unit cost and date, which is what FIFO/LIFO/FEFO
    ordering and batch-level valuation walk over.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - 0 <= current_quantity <= original_quantity (BatchTracker).
    - batch_number unique per (tenant, location) (uq_batch_number_location).
    - expired and recalled are terminal statuses.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase


class BatchModel(TrackedBase):
    """A lot of stock received at a single cost."""

    __tablename__ = "inventory_batches"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "location_id", "batch_number", name="uq_batch_number_location"
        ),
        # FIFO/LIFO ordering
        Index("idx_batch_key_received", "tenant_id", "product_id", "location_id", "received_date"),
        # FEFO ordering and expiry sweeps
        Index("idx_batch_expiry", "tenant_id", "expiry_date"),
        Index("idx_batch_number", "tenant_id", "batch_number"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    variant_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    location_id: Mapped[str] = mapped_column(String(100), nullable=False)

    batch_number: Mapped[str] = mapped_column(String(100), nullable=False)
    lot_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    original_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    current_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)

    received_date: Mapped[date] = mapped_column(nullable=False)
    expiry_date: Mapped[date | None] = mapped_column(nullable=True)

    quality_status: Mapped[str] = mapped_column(String(20), default="approved", nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False)

    supplier_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    supplier_batch_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Batch {self.batch_number}@{self.location_id}: "
            f"{self.current_quantity}/{self.original_quantity} @ {self.unit_cost} {self.status}>"
        )
