"""Selectors for the inventory kernel (read side)."""

from inventory_kernel.selectors.inventory_selector import InventorySelector
from inventory_kernel.selectors.movement_selector import MovementSelector, MovementSummary

__all__ = [
    "InventorySelector",
    "MovementSelector",
    "MovementSummary",
]
