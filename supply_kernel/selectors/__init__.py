"""Selectors for the supply kernel (read side)."""

from supply_kernel.selectors.inventory_selector import InventorySelector

__all__ = [
    "InventorySelector",
]
