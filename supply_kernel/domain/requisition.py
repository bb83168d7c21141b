"""
Requisition Domain Models and Workflow.

The nouns of the supply requisition core: requests, their line items, the
inputs used to create and adjust them, and the state machine that governs
a request from submission to receipt.

Architecture position:
    Kernel > Domain -- frozen value objects and pure functions.  ZERO I/O.

Invariants enforced:
    - ``RequestLineItem.qty >= 0`` and ``requested_qty > 0`` at construction.
    - Adjustments are validated against the request's own lines
      (no unknown or duplicated items).
    - REQUISITION_WORKFLOW is strictly linear with a single terminal
      ``Rejected`` branch; there is no re-open path.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from uuid import UUID

from supply_kernel.domain.workflow import Guard, LedgerEffect, Transition, Workflow
from supply_kernel.exceptions import (
    DuplicateLineItemError,
    InvalidQuantityError,
    UnknownLineItemError,
)
from supply_kernel.logging_config import get_logger

logger = get_logger("domain.requisition")


class RequestStatus(str, Enum):
    """Supply request lifecycle states."""
    FOR_VERIFICATION = "For Verification"
    AWAITING_APPROVAL = "Awaiting Approval"
    FOR_ISSUANCE = "For Issuance"
    TO_RECEIVE = "To Receive"
    HISTORY = "History"
    REJECTED = "Rejected"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.HISTORY,
    RequestStatus.REJECTED,
})

# Forward path; Rejected is the only side-branch.
LINEAR_PATH: tuple[RequestStatus, ...] = (
    RequestStatus.FOR_VERIFICATION,
    RequestStatus.AWAITING_APPROVAL,
    RequestStatus.FOR_ISSUANCE,
    RequestStatus.TO_RECEIVE,
    RequestStatus.HISTORY,
)


# -----------------------------------------------------------------------------
# Inputs
# -----------------------------------------------------------------------------


def _require_whole(item_id: str, value: object, field_name: str) -> None:
    # bool is an int subclass; True is not a quantity.
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidQuantityError(item_id, value, f"{field_name} must be an integer")


@dataclass(frozen=True)
class LineItemSpec:
    """One requested item at submission time: ``{itemId, qty}``."""
    item_id: str
    qty: int

    def __post_init__(self):
        _require_whole(self.item_id, self.qty, "qty")


@dataclass(frozen=True)
class QuantityAdjustment:
    """
    A verifier's change to one line's working quantity.

    Either an absolute ``qty`` or a relative ``delta`` (the +/- controls of
    the verification screen, floored at zero).  Exactly one must be given.
    """
    item_id: str
    qty: int | None = None
    delta: int | None = None

    def __post_init__(self):
        if (self.qty is None) == (self.delta is None):
            raise InvalidQuantityError(
                self.item_id, self.qty if self.qty is not None else 0,
                "give exactly one of qty or delta",
            )
        if self.qty is not None:
            _require_whole(self.item_id, self.qty, "qty")
            if self.qty < 0:
                raise InvalidQuantityError(self.item_id, self.qty, "must not be negative")
        else:
            _require_whole(self.item_id, self.delta, "delta")

    def apply(self, current: int) -> int:
        """Return the new working quantity for a line currently at ``current``."""
        if self.qty is not None:
            return self.qty
        return max(0, current + self.delta)


# -----------------------------------------------------------------------------
# Request
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class RequestLineItem:
    """A line on a supply request; name/unit are snapshots at request time."""
    line_number: int
    item_id: str
    name: str
    unit: str
    requested_qty: int
    qty: int

    def __post_init__(self):
        if self.requested_qty <= 0:
            raise ValueError(
                f"requested_qty ({self.requested_qty}) must be positive "
                f"for item {self.item_id}"
            )
        if self.qty < 0:
            raise ValueError(f"qty ({self.qty}) cannot be negative for item {self.item_id}")

    @property
    def under_provisioned(self) -> bool:
        return self.qty < self.requested_qty


@dataclass(frozen=True)
class SupplyRequest:
    """A supply requisition and its full lifecycle record."""
    id: UUID
    request_number: str
    purpose: str
    requester_id: str
    status: RequestStatus
    created_at: datetime
    line_items: tuple[RequestLineItem, ...] = field(default_factory=tuple)
    approver_id: str | None = None
    issuer_id: str | None = None
    receiver_id: str | None = None
    verified_at: datetime | None = None
    approved_at: datetime | None = None
    issued_at: datetime | None = None
    received_at: datetime | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    version: int = 1

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def line_for(self, item_id: str) -> RequestLineItem | None:
        for line in self.line_items:
            if line.item_id == item_id:
                return line
        return None


@dataclass(frozen=True)
class RequestFilter:
    """Predicates for listing requests; ``None`` means "any"."""
    status: RequestStatus | None = None
    requester_id: str | None = None


def apply_adjustments(
    request: SupplyRequest,
    adjustments: Iterable[QuantityAdjustment],
) -> tuple[RequestLineItem, ...]:
    """
    Return the request's lines with the verifier's adjustments applied.

    Lines without an adjustment keep their working quantity.

    Raises:
        DuplicateLineItemError: the same item is adjusted twice.
        UnknownLineItemError: an adjustment names an item not on the request.
    """
    by_item: dict[str, QuantityAdjustment] = {}
    for adj in adjustments:
        if adj.item_id in by_item:
            raise DuplicateLineItemError(adj.item_id)
        if request.line_for(adj.item_id) is None:
            raise UnknownLineItemError(str(request.id), adj.item_id)
        by_item[adj.item_id] = adj

    lines = []
    for line in request.line_items:
        adj = by_item.get(line.item_id)
        if adj is None:
            lines.append(line)
            continue
        new_qty = adj.apply(line.qty)
        if new_qty != line.qty:
            logger.debug(
                "line_quantity_adjusted",
                extra={
                    "request_id": str(request.id),
                    "item_id": line.item_id,
                    "from_qty": line.qty,
                    "to_qty": new_qty,
                },
            )
        lines.append(replace(line, qty=new_qty))
    return tuple(lines)


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

STOCK_AVAILABLE = Guard(
    name="stock_available",
    description="Every line's requested quantity is within available stock",
)

STOCK_DEDUCTIBLE = Guard(
    name="stock_deductible",
    description="Every line's frozen quantity is covered by physical stock "
                "not reserved for other requests",
)


# -----------------------------------------------------------------------------
# Requisition Workflow
# -----------------------------------------------------------------------------

# Submission creates the request in the initial state and reserves each line.
SUBMISSION_GUARD = STOCK_AVAILABLE
SUBMISSION_EFFECT = LedgerEffect.RESERVE

REQUISITION_WORKFLOW = Workflow(
    name="supply_requisition",
    description="Supply requisition and issue lifecycle",
    initial_state=RequestStatus.FOR_VERIFICATION,
    states=tuple(RequestStatus),
    transitions=(
        Transition(
            RequestStatus.FOR_VERIFICATION, RequestStatus.AWAITING_APPROVAL,
            action="verify", guard=STOCK_DEDUCTIBLE,
            ledger_effect=LedgerEffect.COMMIT, stamps="verified_at",
        ),
        Transition(
            RequestStatus.AWAITING_APPROVAL, RequestStatus.FOR_ISSUANCE,
            action="approve", records_actor="approver_id", stamps="approved_at",
        ),
        Transition(
            RequestStatus.FOR_ISSUANCE, RequestStatus.TO_RECEIVE,
            action="issue", records_actor="issuer_id", stamps="issued_at",
        ),
        Transition(
            RequestStatus.TO_RECEIVE, RequestStatus.HISTORY,
            action="receive", records_actor="receiver_id", stamps="received_at",
        ),
        # Only the pre-verification reject still holds a reservation.
        Transition(
            RequestStatus.FOR_VERIFICATION, RequestStatus.REJECTED,
            action="reject", ledger_effect=LedgerEffect.RELEASE, stamps="rejected_at",
        ),
        Transition(
            RequestStatus.AWAITING_APPROVAL, RequestStatus.REJECTED,
            action="reject", stamps="rejected_at",
        ),
        Transition(
            RequestStatus.FOR_ISSUANCE, RequestStatus.REJECTED,
            action="reject", stamps="rejected_at",
        ),
    ),
    terminal_states=tuple(TERMINAL_STATUSES),
)

logger.debug(
    "requisition_workflow_registered",
    extra={
        "workflow_name": REQUISITION_WORKFLOW.name,
        "state_count": len(REQUISITION_WORKFLOW.states),
        "transition_count": len(REQUISITION_WORKFLOW.transitions),
        "initial_state": REQUISITION_WORKFLOW.initial_state,
    },
)
