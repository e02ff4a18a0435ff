"""ORM models for the inventory kernel."""

from inventory_kernel.models.batch import BatchModel
from inventory_kernel.models.inventory_level import InventoryLevelModel
from inventory_kernel.models.movement import (
    DECISION_STAMP_FIELDS,
    InventoryMovementModel,
)
from inventory_kernel.models.reservation import ReservationModel

__all__ = [
    "BatchModel",
    "InventoryLevelModel",
    "InventoryMovementModel",
    "DECISION_STAMP_FIELDS",
    "ReservationModel",
]
