"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from supply_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from supply_kernel.domain.inventory import (
    InventoryItemInfo,
    MovementKind,
    StockMovementInfo,
)
from supply_kernel.domain.requisition import (
    LINEAR_PATH,
    REQUISITION_WORKFLOW,
    SUBMISSION_EFFECT,
    SUBMISSION_GUARD,
    TERMINAL_STATUSES,
    LineItemSpec,
    QuantityAdjustment,
    RequestFilter,
    RequestLineItem,
    RequestStatus,
    SupplyRequest,
    apply_adjustments,
)
from supply_kernel.domain.slip import (
    ISSUABLE_STATUSES,
    RequisitionSlip,
    Signatories,
    Signatory,
    SlipHeader,
    build_requisition_slip,
)
from supply_kernel.domain.workflow import Guard, LedgerEffect, Transition, Workflow

__all__ = [
    # Clock
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Inventory
    "InventoryItemInfo",
    "MovementKind",
    "StockMovementInfo",
    # Requisition
    "LINEAR_PATH",
    "REQUISITION_WORKFLOW",
    "SUBMISSION_EFFECT",
    "SUBMISSION_GUARD",
    "TERMINAL_STATUSES",
    "LineItemSpec",
    "QuantityAdjustment",
    "RequestFilter",
    "RequestLineItem",
    "RequestStatus",
    "SupplyRequest",
    "apply_adjustments",
    # Slip
    "ISSUABLE_STATUSES",
    "RequisitionSlip",
    "Signatories",
    "Signatory",
    "SlipHeader",
    "build_requisition_slip",
    # Workflow
    "Guard",
    "LedgerEffect",
    "Transition",
    "Workflow",
]
