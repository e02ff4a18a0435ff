"""Services for the inventory kernel (write side)."""

from inventory_kernel.services.batch_tracker import BatchTracker
from inventory_kernel.services.level_store import LevelStore
from inventory_kernel.services.movement_ledger import MovementFilter, MovementLedger, Pagination
from inventory_kernel.services.reservation_manager import ReservationManager
from inventory_kernel.services.retry import retry_on_conflict

__all__ = [
    "BatchTracker",
    "LevelStore",
    "MovementFilter",
    "MovementLedger",
    "Pagination",
    "ReservationManager",
    "retry_on_conflict",
]
