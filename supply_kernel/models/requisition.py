"""
SQLAlchemy ORM persistence models for supply requests.

Responsibility
--------------
Persist supply requests and their line items.  Maps to the
``SupplyRequest`` / ``RequestLineItem`` DTOs in
``supply_kernel.domain.requisition``.

Invariants enforced
-------------------
* ``request_number`` is unique.
* A request holds each item at most once, and line numbers are unique
  within a request.
* ``requested_qty > 0`` and ``qty >= 0`` are CHECK constraints.
* Status stored as String(30) holding the ``RequestStatus`` value.
* Transition timestamps are written from the injected clock, not the
  database server, so they match what the workflow logged.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from supply_kernel.db.base import Base
from supply_kernel.domain.requisition import RequestLineItem, RequestStatus, SupplyRequest

# ---------------------------------------------------------------------------
# SupplyRequestModel
# ---------------------------------------------------------------------------


class SupplyRequestModel(Base):
    """
    A supply requisition.

    Guarantees:
        - ``status`` follows REQUISITION_WORKFLOW:
          For Verification -> Awaiting Approval -> For Issuance
          -> To Receive -> History, with Rejected as the only side exit.
        - ``version`` increases by one on every persisted transition.
    """

    __tablename__ = "supply_requests"

    __table_args__ = (
        UniqueConstraint("request_number", name="uq_supply_request_number"),
        Index("idx_supply_request_requester", "requester_id"),
        Index("idx_supply_request_status", "status"),
    )

    request_number: Mapped[str] = mapped_column(String(30), nullable=False)
    purpose: Mapped[str] = mapped_column(Text, nullable=False, default="")
    requester_id: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    approver_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    issuer_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    receiver_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    verified_at: Mapped[datetime | None]
    approved_at: Mapped[datetime | None]
    issued_at: Mapped[datetime | None]
    received_at: Mapped[datetime | None]
    rejected_at: Mapped[datetime | None]
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(nullable=False, default=1)

    # Relationships
    lines: Mapped[list["RequestLineItemModel"]] = relationship(
        "RequestLineItemModel",
        back_populates="request",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="RequestLineItemModel.line_number",
    )

    def to_dto(self) -> SupplyRequest:
        return SupplyRequest(
            id=self.id,
            request_number=self.request_number,
            purpose=self.purpose,
            requester_id=self.requester_id,
            status=RequestStatus(self.status),
            created_at=self.created_at,
            line_items=tuple(line.to_dto() for line in self.lines),
            approver_id=self.approver_id,
            issuer_id=self.issuer_id,
            receiver_id=self.receiver_id,
            verified_at=self.verified_at,
            approved_at=self.approved_at,
            issued_at=self.issued_at,
            received_at=self.received_at,
            rejected_at=self.rejected_at,
            rejection_reason=self.rejection_reason,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: SupplyRequest) -> "SupplyRequestModel":
        model = cls(
            id=dto.id,
            request_number=dto.request_number,
            purpose=dto.purpose,
            requester_id=dto.requester_id,
            status=RequestStatus(dto.status).value,
            created_at=dto.created_at,
            approver_id=dto.approver_id,
            issuer_id=dto.issuer_id,
            receiver_id=dto.receiver_id,
            verified_at=dto.verified_at,
            approved_at=dto.approved_at,
            issued_at=dto.issued_at,
            received_at=dto.received_at,
            rejected_at=dto.rejected_at,
            rejection_reason=dto.rejection_reason,
            version=dto.version,
        )
        model.lines = [RequestLineItemModel.from_dto(line) for line in dto.line_items]
        return model

    def __repr__(self) -> str:
        return f"<SupplyRequestModel {self.request_number} [{self.status}]>"


# ---------------------------------------------------------------------------
# RequestLineItemModel
# ---------------------------------------------------------------------------


class RequestLineItemModel(Base):
    """A single line on a supply request."""

    __tablename__ = "supply_request_lines"

    __table_args__ = (
        UniqueConstraint("request_id", "item_code", name="uq_request_line_item"),
        UniqueConstraint("request_id", "line_number", name="uq_request_line_number"),
        CheckConstraint("requested_qty > 0", name="ck_request_line_requested_positive"),
        CheckConstraint("qty >= 0", name="ck_request_line_qty_nonneg"),
    )

    request_id: Mapped[UUID] = mapped_column(
        ForeignKey("supply_requests.id"), nullable=False,
    )
    line_number: Mapped[int] = mapped_column(nullable=False)
    item_code: Mapped[str] = mapped_column(
        ForeignKey("inventory_items.item_code"), nullable=False,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    unit: Mapped[str] = mapped_column(String(30), nullable=False)
    requested_qty: Mapped[int] = mapped_column(nullable=False)
    qty: Mapped[int] = mapped_column(nullable=False)

    request: Mapped["SupplyRequestModel"] = relationship(
        "SupplyRequestModel",
        back_populates="lines",
    )

    def to_dto(self) -> RequestLineItem:
        return RequestLineItem(
            line_number=self.line_number,
            item_id=self.item_code,
            name=self.name,
            unit=self.unit,
            requested_qty=self.requested_qty,
            qty=self.qty,
        )

    @classmethod
    def from_dto(cls, dto: RequestLineItem) -> "RequestLineItemModel":
        return cls(
            line_number=dto.line_number,
            item_code=dto.item_id,
            name=dto.name,
            unit=dto.unit,
            requested_qty=dto.requested_qty,
            qty=dto.qty,
        )

    def __repr__(self) -> str:
        return f"<RequestLineItemModel #{self.line_number} {self.item_code} x{self.qty}>"
