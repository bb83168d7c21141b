"""
InventorySelector -- read-only projections over the inventory ledger.

Backs the inventory screen (full stock list, low-stock filter) and the
stock movement audit trail.
"""

from uuid import UUID

from sqlalchemy import select

from supply_kernel.domain.inventory import InventoryItemInfo, StockMovementInfo
from supply_kernel.exceptions import ItemNotFoundError
from supply_kernel.models.inventory import InventoryItemModel, StockMovementModel
from supply_kernel.selectors.base import BaseSelector


class InventorySelector(BaseSelector[InventoryItemModel]):
    """Read-only inventory queries returning frozen DTOs."""

    def get_item(self, item_id: str) -> InventoryItemInfo:
        item = self.session.execute(
            select(InventoryItemModel).where(InventoryItemModel.item_code == item_id)
        ).scalar_one_or_none()
        if item is None:
            raise ItemNotFoundError(item_id)
        return item.to_dto()

    def list_items(self) -> list[InventoryItemInfo]:
        """All items ordered by item id."""
        rows = self.session.execute(
            select(InventoryItemModel).order_by(InventoryItemModel.item_code)
        ).scalars()
        return [row.to_dto() for row in rows]

    def low_stock_items(self) -> list[InventoryItemInfo]:
        """Items whose available quantity is below their reorder point."""
        rows = self.session.execute(
            select(InventoryItemModel)
            .where(
                InventoryItemModel.physical_qty - InventoryItemModel.pending_qty
                < InventoryItemModel.reorder_point
            )
            .order_by(InventoryItemModel.item_code)
        ).scalars()
        return [row.to_dto() for row in rows]

    def movements(
        self,
        item_id: str | None = None,
        request_id: UUID | None = None,
    ) -> list[StockMovementInfo]:
        """
        Stock movements ordered by when they occurred, optionally
        narrowed to one item and/or one request.
        """
        stmt = select(StockMovementModel)
        if item_id is not None:
            stmt = stmt.where(StockMovementModel.item_code == item_id)
        if request_id is not None:
            stmt = stmt.where(StockMovementModel.request_id == request_id)
        stmt = stmt.order_by(StockMovementModel.occurred_at)
        return [row.to_dto() for row in self.session.execute(stmt).scalars()]
