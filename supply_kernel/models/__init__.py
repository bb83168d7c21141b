"""ORM models for the supply kernel."""

from supply_kernel.models.inventory import InventoryItemModel, StockMovementModel
from supply_kernel.models.requisition import RequestLineItemModel, SupplyRequestModel

__all__ = [
    "InventoryItemModel",
    "StockMovementModel",
    "SupplyRequestModel",
    "RequestLineItemModel",
]
