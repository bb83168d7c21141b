"""
Requisition and Issue Slip projection.

Pure projection of a SupplyRequest into the data a renderer needs to
print the slip.  Layout, pagination and typography belong to the
renderer; this module only decides *what* is printed.

Architecture position:
    Kernel > Domain -- pure functions over frozen DTOs.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from supply_kernel.domain.requisition import RequestStatus, SupplyRequest

# Statuses for which a slip can be produced (quantities are frozen and
# approved by then).
ISSUABLE_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.FOR_ISSUANCE,
    RequestStatus.TO_RECEIVE,
    RequestStatus.HISTORY,
})


@dataclass(frozen=True)
class Signatory:
    """A resolved person for one signature block."""
    name: str
    designation: str = ""
    signature_image: str | None = None


@dataclass(frozen=True)
class Signatories:
    requester: Signatory | None = None
    approver: Signatory | None = None
    issuer: Signatory | None = None
    receiver: Signatory | None = None


@dataclass(frozen=True)
class SlipHeader:
    """Fixed header block printed on every slip."""
    entity_name: str = "PHILIPPINE STATISTICS AUTHORITY"
    division: str = "Aurora Provincial Statistical Office"
    office: str = "J.S. Center Brgy. Pingit Baler, Aurora"
    fund_cluster: str = ""
    responsibility_center_code: str = ""


@dataclass(frozen=True)
class SlipLine:
    stock_no: str
    unit: str
    description: str
    requested_qty: int
    issue_qty: int | None
    stock_available: bool | None


@dataclass(frozen=True)
class SignatureBlock:
    role: str
    signatory: Signatory | None
    signed_on: date | None


@dataclass(frozen=True)
class RequisitionSlip:
    """Everything printed on one Requisition and Issue Slip."""
    header: SlipHeader
    slip_number: str
    purpose: str
    lines: tuple[SlipLine, ...]
    requested_by: SignatureBlock
    approved_by: SignatureBlock
    issued_by: SignatureBlock
    received_by: SignatureBlock
    file_name: str


def _day(value) -> date | None:
    return value.date() if value is not None else None


def slip_file_name(request: SupplyRequest, requester: Signatory | None) -> str:
    """``RIS_<REQUESTER NAME>_<slip number>_<YYYY-MM-DD>.pdf``"""
    name = requester.name if requester is not None else request.requester_id
    return (
        f"RIS_{name.upper()}_{request.request_number}_"
        f"{request.created_at.date().isoformat()}.pdf"
    )


def build_requisition_slip(
    request: SupplyRequest,
    signatories: Signatories,
    header: SlipHeader | None = None,
) -> RequisitionSlip:
    """
    Project a request into slip data.

    Issue quantity and the stock-available flag are only filled in once
    the request is issuable; before that those columns stay blank.  The
    received-by block falls back to the requester when no receiver has
    been resolved, and the approval date falls back to the verification
    date.
    """
    issuable = request.status in ISSUABLE_STATUSES
    lines = tuple(
        SlipLine(
            stock_no=line.item_id,
            unit=line.unit,
            description=line.name,
            requested_qty=line.requested_qty,
            issue_qty=line.qty if issuable else None,
            stock_available=(line.qty > 0) if issuable else None,
        )
        for line in request.line_items
    )

    approved_at = request.approved_at or request.verified_at
    receiver = signatories.receiver or signatories.requester

    return RequisitionSlip(
        header=header or SlipHeader(),
        slip_number=request.request_number,
        purpose=request.purpose,
        lines=lines,
        requested_by=SignatureBlock("requested_by", signatories.requester, _day(request.created_at)),
        approved_by=SignatureBlock("approved_by", signatories.approver, _day(approved_at)),
        issued_by=SignatureBlock("issued_by", signatories.issuer, _day(request.issued_at)),
        received_by=SignatureBlock("received_by", receiver, _day(request.received_at)),
        file_name=slip_file_name(request, signatories.requester),
    )
