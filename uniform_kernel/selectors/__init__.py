"""Read-only selectors."""

from uniform_kernel.selectors.base import BaseSelector
from uniform_kernel.selectors.deficit_selector import DeficitSelector, ReportView
from uniform_kernel.selectors.inventory_selector import DepletedSize, InventorySelector

__all__ = [
    "BaseSelector",
    "DeficitSelector",
    "DepletedSize",
    "InventorySelector",
    "ReportView",
]
