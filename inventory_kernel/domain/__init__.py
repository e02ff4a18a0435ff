"""
Pure domain layer.

Value objects, enumerations, DTOs and the injectable clock.  Nothing here
touches the ORM, the database or the wall clock directly.
"""

from inventory_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from inventory_kernel.domain.dtos import (
    BatchReceipt,
    BatchRecord,
    InventoryLevelRecord,
    LevelRegistration,
    MovementRecord,
    NewMovement,
    PerpetualUpdateResult,
    ReconciliationItem,
    ReconciliationRequest,
    ReconciliationResult,
    ReconciliationSummary,
    ReconciliationVariance,
    ReservationRecord,
    StockChange,
    TransferRequest,
    TransferResult,
)
from inventory_kernel.domain.values import (
    NO_VARIANT,
    AdjustmentReason,
    BatchStatus,
    ConsumptionOrder,
    Direction,
    MovementType,
    NoVariant,
    QualityStatus,
    ReconciliationType,
    ReservationStatus,
    StockKey,
    ValuationMethod,
    Variant,
    VariantKey,
)

__all__ = [
    "AdjustmentReason",
    "BatchReceipt",
    "BatchRecord",
    "BatchStatus",
    "Clock",
    "ConsumptionOrder",
    "DeterministicClock",
    "Direction",
    "InventoryLevelRecord",
    "LevelRegistration",
    "MovementRecord",
    "MovementType",
    "NO_VARIANT",
    "NewMovement",
    "NoVariant",
    "PerpetualUpdateResult",
    "QualityStatus",
    "ReconciliationItem",
    "ReconciliationRequest",
    "ReconciliationResult",
    "ReconciliationSummary",
    "ReconciliationType",
    "ReconciliationVariance",
    "ReservationRecord",
    "ReservationStatus",
    "StockChange",
    "StockKey",
    "SystemClock",
    "TransferRequest",
    "TransferResult",
    "ValuationMethod",
    "Variant",
    "VariantKey",
]
