"""
Inventory ledger DTOs.

Pure, immutable views of inventory items and the stock movements recorded
against them.  Returned by InventoryLedger and InventorySelector so callers
never hold ORM instances.

The ledger tracks two counters per item:

    physical_qty   units on the shelf
    pending_qty    units reserved for requests that are not yet verified

    available = physical_qty - pending_qty   (never negative)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class MovementKind(str, Enum):
    """Kinds of stock movement recorded by the ledger."""

    RESERVE = "reserve"
    COMMIT = "commit"
    RELEASE = "release"
    RESTOCK = "restock"


@dataclass(frozen=True)
class InventoryItemInfo:
    """Snapshot of one inventory item's stock counters."""

    id: str
    name: str
    unit: str
    physical_qty: int
    pending_qty: int
    reorder_point: int = 0
    version: int = 1

    @property
    def available(self) -> int:
        return self.physical_qty - self.pending_qty

    @property
    def is_low_stock(self) -> bool:
        return self.available < self.reorder_point


@dataclass(frozen=True)
class StockMovementInfo:
    """
    One applied ledger effect.

    ``pending_delta`` and ``physical_delta`` are the signed changes the
    movement made to the item's counters.  ``request_id`` is None for
    restocks and for reservations made outside a request.
    """

    id: UUID
    item_id: str
    kind: MovementKind
    quantity: int
    pending_delta: int
    physical_delta: int
    occurred_at: datetime
    request_id: UUID | None = None
    actor_id: str | None = None
