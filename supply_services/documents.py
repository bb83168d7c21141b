"""
Document collaborators for requisition slips.

The gateway hands a request snapshot and its resolved signatories to an
external renderer; producing the printable artifact (PDF layout, images,
pagination) happens outside this package.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from supply_kernel.domain.requisition import SupplyRequest
from supply_kernel.domain.slip import Signatories, Signatory


@runtime_checkable
class DocumentRenderer(Protocol):
    """Turns a request snapshot into a printable artifact."""

    def render(self, request: SupplyRequest, signatories: Signatories) -> bytes:
        ...


@runtime_checkable
class SignatoryResolver(Protocol):
    """Looks up the printed name, designation and signature of an actor."""

    def resolve(self, actor_id: str) -> Signatory | None:
        ...


def resolve_signatories(request: SupplyRequest, resolver: SignatoryResolver) -> Signatories:
    """Resolve every actor recorded on the request; unrecorded roles stay None."""

    def _lookup(actor_id: str | None) -> Signatory | None:
        if not actor_id:
            return None
        return resolver.resolve(actor_id)

    return Signatories(
        requester=_lookup(request.requester_id),
        approver=_lookup(request.approver_id),
        issuer=_lookup(request.issuer_id),
        receiver=_lookup(request.receiver_id),
    )
