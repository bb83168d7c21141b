"""
SQLAlchemy ORM persistence models for the inventory ledger.

Responsibility
--------------
Persist per-item stock counters and the append-only journal of stock
movements that explains every change to them.

Invariants enforced
-------------------
* ``physical_qty >= 0``, ``pending_qty >= 0`` and
  ``physical_qty - pending_qty >= 0`` are CHECK constraints, so a buggy
  caller cannot commit an inconsistent item even by bypassing the ledger.
* ``(request_id, item_code, kind)`` is unique on stock movements: a
  request can reserve, commit or release a given item at most once.
* Enum fields stored as String(20) for readability and portability.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from supply_kernel.db.base import Base, TrackedBase
from supply_kernel.domain.inventory import InventoryItemInfo, MovementKind, StockMovementInfo

# ---------------------------------------------------------------------------
# InventoryItemModel
# ---------------------------------------------------------------------------


class InventoryItemModel(TrackedBase):
    """
    One stock item and its two counters.

    Maps to ``InventoryItemInfo``.  ``item_code`` is the stable, human-facing
    identifier (the stock number printed on slips); the UUID ``id`` is the
    internal key.
    """

    __tablename__ = "inventory_items"

    __table_args__ = (
        UniqueConstraint("item_code", name="uq_inventory_item_code"),
        CheckConstraint("physical_qty >= 0", name="ck_inventory_physical_nonneg"),
        CheckConstraint("pending_qty >= 0", name="ck_inventory_pending_nonneg"),
        CheckConstraint("physical_qty - pending_qty >= 0", name="ck_inventory_available_nonneg"),
        CheckConstraint("reorder_point >= 0", name="ck_inventory_reorder_nonneg"),
    )

    item_code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    unit: Mapped[str] = mapped_column(String(30), nullable=False)
    physical_qty: Mapped[int] = mapped_column(nullable=False, default=0)
    pending_qty: Mapped[int] = mapped_column(nullable=False, default=0)
    reorder_point: Mapped[int] = mapped_column(nullable=False, default=0)
    version: Mapped[int] = mapped_column(nullable=False, default=1)

    def to_dto(self) -> InventoryItemInfo:
        return InventoryItemInfo(
            id=self.item_code,
            name=self.name,
            unit=self.unit,
            physical_qty=self.physical_qty,
            pending_qty=self.pending_qty,
            reorder_point=self.reorder_point,
            version=self.version,
        )

    def __repr__(self) -> str:
        return (
            f"<InventoryItemModel {self.item_code} "
            f"physical={self.physical_qty} pending={self.pending_qty}>"
        )


# ---------------------------------------------------------------------------
# StockMovementModel
# ---------------------------------------------------------------------------


class StockMovementModel(Base):
    """
    Append-only journal row for one applied ledger effect.

    Rows are inserted in the same transaction as the counter update they
    describe and never updated afterwards.  Summing ``pending_delta`` and
    ``physical_delta`` per item reproduces the item's counters relative to
    its registration.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        UniqueConstraint("request_id", "item_code", "kind", name="uq_movement_request_item_kind"),
        Index("idx_movement_item", "item_code"),
        Index("idx_movement_request", "request_id"),
    )

    item_code: Mapped[str] = mapped_column(
        ForeignKey("inventory_items.item_code"), nullable=False,
    )
    request_id: Mapped[UUID | None]
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity: Mapped[int] = mapped_column(nullable=False)
    pending_delta: Mapped[int] = mapped_column(nullable=False, default=0)
    physical_delta: Mapped[int] = mapped_column(nullable=False, default=0)
    actor_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self) -> StockMovementInfo:
        return StockMovementInfo(
            id=self.id,
            item_id=self.item_code,
            kind=MovementKind(self.kind),
            quantity=self.quantity,
            pending_delta=self.pending_delta,
            physical_delta=self.physical_delta,
            occurred_at=self.occurred_at,
            request_id=self.request_id,
            actor_id=self.actor_id,
        )

    def __repr__(self) -> str:
        return f"<StockMovementModel {self.kind} {self.item_code} x{self.quantity}>"
