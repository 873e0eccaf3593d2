"""Selectors for the workshop kernel (read side)."""

from workshop_kernel.selectors.inventory_selector import InventorySelector

__all__ = [
    "InventorySelector",
]
