"""
DTOs -- Immutable data transfer objects for the inventory kernel.

Responsibility:
    Request objects flowing into the services (StockChange, NewMovement,
    LevelRegistration, BatchReceipt, TransferRequest, ReconciliationRequest)
    and record objects flowing out (InventoryLevelRecord, MovementRecord,
    BatchRecord, ReservationRecord), plus the operation results.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  from_model() class methods are
    boundary converters invoked only by services and selectors.

Invariants enforced:
    - Services return records, never ORM instances.
    - Quantities and costs are Decimal; request constructors reject floats.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from inventory_kernel.db.types import to_decimal
from inventory_kernel.domain.values import (
    AdjustmentReason,
    BatchStatus,
    NO_VARIANT,
    MovementType,
    QualityStatus,
    ReconciliationType,
    ReservationStatus,
    StockKey,
    ValuationMethod,
    VariantKey,
    variant_from_value,
)

if TYPE_CHECKING:
    from inventory_kernel.models.batch import BatchModel
    from inventory_kernel.models.inventory_level import InventoryLevelModel
    from inventory_kernel.models.movement import InventoryMovementModel
    from inventory_kernel.models.reservation import ReservationModel


def key_of(model) -> StockKey:
    """Stock key of any row carrying the four key columns."""
    return StockKey(
        tenant_id=model.tenant_id,
        product_id=model.product_id,
        location_id=model.location_id,
        variant=variant_from_value(model.variant_id),
    )


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InventoryLevelRecord:
    id: UUID
    key: StockKey
    current_level: Decimal
    available_level: Decimal
    reserved_level: Decimal
    min_stock_level: Decimal
    max_stock_level: Decimal | None
    reorder_point: Decimal
    reorder_quantity: Decimal
    valuation_method: ValuationMethod
    average_cost: Decimal
    total_value: Decimal
    last_movement_at: datetime | None
    last_count_at: datetime | None
    is_active: bool
    version: int

    @property
    def is_low_stock(self) -> bool:
        return self.current_level <= self.reorder_point

    @classmethod
    def from_model(cls, model: InventoryLevelModel) -> InventoryLevelRecord:
        return cls(
            id=model.id,
            key=key_of(model),
            current_level=model.current_level,
            available_level=model.available_level,
            reserved_level=model.reserved_level,
            min_stock_level=model.min_stock_level,
            max_stock_level=model.max_stock_level,
            reorder_point=model.reorder_point,
            reorder_quantity=model.reorder_quantity,
            valuation_method=ValuationMethod(model.valuation_method),
            average_cost=model.average_cost,
            total_value=model.total_value,
            last_movement_at=model.last_movement_at,
            last_count_at=model.last_count_at,
            is_active=model.is_active,
            version=model.version,
        )


@dataclass(frozen=True)
class MovementRecord:
    id: UUID
    key: StockKey
    sequence: int
    movement_type: MovementType
    quantity: Decimal
    unit_cost: Decimal | None
    total_cost: Decimal | None
    previous_level: Decimal
    new_level: Decimal
    reference_type: str | None
    reference_id: str | None
    reference_number: str | None
    batch_number: str | None
    reason: AdjustmentReason | None
    notes: str | None
    requires_approval: bool
    approved_by: UUID | None
    approved_at: datetime | None
    rejected_by: UUID | None
    rejected_at: datetime | None
    occurred_at: datetime
    created_by_id: UUID

    @property
    def is_pending(self) -> bool:
        return self.requires_approval and self.approved_at is None and self.rejected_at is None

    @property
    def is_applied(self) -> bool:
        """Applied movements moved the level; approval requests never do."""
        return not self.requires_approval

    @property
    def is_rejected(self) -> bool:
        return self.rejected_at is not None

    @classmethod
    def from_model(cls, model: InventoryMovementModel) -> MovementRecord:
        return cls(
            id=model.id,
            key=key_of(model),
            sequence=model.sequence,
            movement_type=MovementType(model.movement_type),
            quantity=model.quantity,
            unit_cost=model.unit_cost,
            total_cost=model.total_cost,
            previous_level=model.previous_level,
            new_level=model.new_level,
            reference_type=model.reference_type,
            reference_id=model.reference_id,
            reference_number=model.reference_number,
            batch_number=model.batch_number,
            reason=AdjustmentReason(model.reason) if model.reason else None,
            notes=model.notes,
            requires_approval=model.requires_approval,
            approved_by=model.approved_by,
            approved_at=model.approved_at,
            rejected_by=model.rejected_by,
            rejected_at=model.rejected_at,
            occurred_at=model.occurred_at,
            created_by_id=model.created_by_id,
        )


@dataclass(frozen=True)
class BatchRecord:
    id: UUID
    key: StockKey
    batch_number: str
    lot_number: str | None
    original_quantity: Decimal
    current_quantity: Decimal
    unit_cost: Decimal
    received_date: date
    expiry_date: date | None
    quality_status: QualityStatus
    status: BatchStatus
    supplier_id: str | None = None
    supplier_batch_number: str | None = None

    @property
    def is_pickable(self) -> bool:
        return (
            self.status is BatchStatus.ACTIVE
            and self.quality_status is QualityStatus.APPROVED
            and self.current_quantity > 0
        )

    @classmethod
    def from_model(cls, model: BatchModel) -> BatchRecord:
        return cls(
            id=model.id,
            key=key_of(model),
            batch_number=model.batch_number,
            lot_number=model.lot_number,
            original_quantity=model.original_quantity,
            current_quantity=model.current_quantity,
            unit_cost=model.unit_cost,
            received_date=model.received_date,
            expiry_date=model.expiry_date,
            quality_status=QualityStatus(model.quality_status),
            status=BatchStatus(model.status),
            supplier_id=model.supplier_id,
            supplier_batch_number=model.supplier_batch_number,
        )


@dataclass(frozen=True)
class ReservationRecord:
    id: UUID
    key: StockKey
    quantity: Decimal
    reserved_for: str
    reference_id: str
    batch_number: str | None
    reserved_until: datetime | None
    status: ReservationStatus
    released_at: datetime | None
    consumed_at: datetime | None

    @classmethod
    def from_model(cls, model: ReservationModel) -> ReservationRecord:
        return cls(
            id=model.id,
            key=key_of(model),
            quantity=model.quantity,
            reserved_for=model.reserved_for,
            reference_id=model.reference_id,
            batch_number=model.batch_number,
            reserved_until=model.reserved_until,
            status=ReservationStatus(model.status),
            released_at=model.released_at,
            consumed_at=model.consumed_at,
        )


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StockChange:
    """
    A requested change to one stock key.

    ``quantity`` is a magnitude for inbound/outbound types (its sign is
    ignored) and a signed delta for adjustment/recount.
    """

    key: StockKey
    movement_type: MovementType
    quantity: Decimal
    unit_cost: Decimal | None = None
    reference_type: str | None = None
    reference_id: str | None = None
    reference_number: str | None = None
    batch_number: str | None = None
    reason: AdjustmentReason | None = None
    notes: str | None = None
    requires_approval: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "quantity", to_decimal(self.quantity))
        if self.unit_cost is not None:
            object.__setattr__(self, "unit_cost", to_decimal(self.unit_cost))
            if self.unit_cost < 0:
                raise ValueError("unit_cost must be non-negative")


@dataclass(frozen=True)
class NewMovement:
    """A fully computed ledger entry, ready to append."""

    key: StockKey
    movement_type: MovementType
    quantity: Decimal
    previous_level: Decimal
    new_level: Decimal
    unit_cost: Decimal | None = None
    reference_type: str | None = None
    reference_id: str | None = None
    reference_number: str | None = None
    batch_number: str | None = None
    reason: AdjustmentReason | None = None
    notes: str | None = None
    requires_approval: bool = False

    @property
    def total_cost(self) -> Decimal | None:
        if self.unit_cost is None:
            return None
        return self.unit_cost * abs(self.quantity)


@dataclass(frozen=True)
class LevelRegistration:
    key: StockKey
    initial_quantity: Decimal = Decimal("0")
    min_stock_level: Decimal = Decimal("0")
    max_stock_level: Decimal | None = None
    reorder_point: Decimal = Decimal("0")
    reorder_quantity: Decimal = Decimal("0")
    valuation_method: ValuationMethod | None = None
    average_cost: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        object.__setattr__(self, "initial_quantity", to_decimal(self.initial_quantity))
        if self.initial_quantity < 0:
            raise ValueError("initial_quantity must be non-negative")
        if self.max_stock_level is not None and self.max_stock_level < self.min_stock_level:
            raise ValueError("max_stock_level must be >= min_stock_level")


@dataclass(frozen=True)
class BatchReceipt:
    key: StockKey
    batch_number: str
    quantity: Decimal
    unit_cost: Decimal
    received_date: date
    expiry_date: date | None = None
    lot_number: str | None = None
    quality_status: QualityStatus = QualityStatus.APPROVED
    supplier_id: str | None = None
    supplier_batch_number: str | None = None
    reference_type: str | None = None
    reference_id: str | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "quantity", to_decimal(self.quantity))
        object.__setattr__(self, "unit_cost", to_decimal(self.unit_cost))
        if not self.batch_number:
            raise ValueError("batch_number is required")
        if self.quantity <= 0:
            raise ValueError("Batch quantity must be positive")
        if self.unit_cost < 0:
            raise ValueError("unit_cost must be non-negative")
        if self.expiry_date is not None and self.expiry_date < self.received_date:
            raise ValueError("expiry_date cannot precede received_date")


@dataclass(frozen=True)
class TransferRequest:
    tenant_id: str
    product_id: str
    from_location_id: str
    to_location_id: str
    quantity: Decimal
    variant: VariantKey = NO_VARIANT
    reference_id: str | None = None
    reference_number: str | None = None
    batch_number: str | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "quantity", to_decimal(self.quantity))

    def source_key(self) -> StockKey:
        return self._key(self.from_location_id)

    def destination_key(self) -> StockKey:
        return self._key(self.to_location_id)

    def _key(self, location_id: str) -> StockKey:
        return StockKey(self.tenant_id, self.product_id, location_id, self.variant)


@dataclass(frozen=True)
class ReconciliationItem:
    product_id: str
    expected_quantity: Decimal
    variant: VariantKey = NO_VARIANT
    batch_number: str | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "expected_quantity", to_decimal(self.expected_quantity))
        if self.expected_quantity < 0:
            raise ValueError("expected_quantity must be non-negative")


@dataclass(frozen=True)
class ReconciliationRequest:
    tenant_id: str
    location_id: str
    items: tuple[ReconciliationItem, ...]
    reconciliation_type: ReconciliationType = ReconciliationType.FULL
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", tuple(self.items))

    def key_for(self, item: ReconciliationItem) -> StockKey:
        return StockKey(self.tenant_id, item.product_id, self.location_id, item.variant)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PerpetualUpdateResult:
    movement: MovementRecord | None
    level: InventoryLevelRecord
    applied: bool
    low_stock: bool = False


@dataclass(frozen=True)
class TransferResult:
    reference_id: str
    outbound: MovementRecord
    inbound: MovementRecord
    source: InventoryLevelRecord
    destination: InventoryLevelRecord
    destination_created: bool = False


@dataclass(frozen=True)
class ReconciliationVariance:
    key: StockKey
    system_quantity: Decimal
    expected_quantity: Decimal
    variance: Decimal
    unit_cost: Decimal
    variance_value: Decimal
    movement_id: UUID
    batch_number: str | None = None


@dataclass(frozen=True)
class ReconciliationSummary:
    total_items: int
    items_with_variance: int
    total_variance_value: Decimal
    accuracy_percentage: Decimal


@dataclass(frozen=True)
class ReconciliationResult:
    reconciliation_id: UUID
    location_id: str
    reconciliation_type: ReconciliationType
    summary: ReconciliationSummary
    variances: tuple[ReconciliationVariance, ...]
    adjustment_movement_ids: tuple[UUID, ...]
    created_levels: tuple[StockKey, ...] = field(default_factory=tuple)
    completed_at: datetime | None = None
