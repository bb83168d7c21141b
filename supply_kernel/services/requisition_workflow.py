"""
RequisitionWorkflow -- the supply request state machine.

Responsibility:
    Creates supply requests and moves them through REQUISITION_WORKFLOW,
    applying the ledger effect each transition declares.  Every legal
    move is looked up in the transition table; nothing here compares
    status strings.

Architecture position:
    Kernel > Services -- imperative shell.
    Composes InventoryLedger, RequestStore and SequenceService within the
    caller's session.  Only WorkflowGateway drives it in production.

Invariants enforced:
    - Linear progression: an action is legal only if the table holds a
      transition for (current status, action).  Rejected and History are
      terminal.
    - Compare-and-set: the status change is saved with the status the
      request had when it was read; losing a race surfaces as
      InvalidTransitionError and no ledger effect is applied.
    - Conservation: submission reserves ``requested_qty`` per line;
      verification commits exactly that reservation; a reject before
      verification releases it.  No other transition touches pending stock.
    - Quantity freeze: adjustments are accepted only by ``verify``.
    - All-or-nothing: every input is validated before the first mutation;
      a failure after that propagates so the caller's transaction rolls
      the whole request back.

Failure modes:
    - EmptyRequestError, InvalidQuantityError, DuplicateLineItemError,
      ItemNotFoundError, UnknownLineItemError, MissingActorError.
    - InsufficientAvailabilityError on submit,
      InsufficientPhysicalStockError on verify.
    - InvalidTransitionError for an action not allowed from the current
      status (including a lost compare-and-set race).
    - RequestNotFoundError for an unknown request id.
"""

from collections.abc import Iterable, Sequence
from dataclasses import replace
from uuid import UUID, uuid4

from supply_kernel.domain.clock import Clock, SystemClock
from supply_kernel.domain.requisition import (
    REQUISITION_WORKFLOW,
    STOCK_AVAILABLE,
    STOCK_DEDUCTIBLE,
    SUBMISSION_EFFECT,
    SUBMISSION_GUARD,
    LineItemSpec,
    QuantityAdjustment,
    RequestLineItem,
    RequestStatus,
    SupplyRequest,
    apply_adjustments,
)
from supply_kernel.domain.workflow import Guard, LedgerEffect, Transition, Workflow
from supply_kernel.exceptions import (
    DuplicateLineItemError,
    EmptyRequestError,
    InsufficientAvailabilityError,
    InsufficientPhysicalStockError,
    InvalidQuantityError,
    InvalidTransitionError,
    MissingActorError,
    OptimisticLockError,
)
from supply_kernel.logging_config import get_logger
from supply_kernel.services.inventory_ledger import InventoryLedger
from supply_kernel.services.request_store import RequestStore
from supply_kernel.services.sequence_service import SequenceService

logger = get_logger("services.requisition_workflow")


class RequisitionWorkflow:
    """
    Supply request lifecycle engine.

    Contract:
        Flush-only.  Each public method either completes the transition
        (request saved and every ledger effect applied) or raises; the
        caller owns commit/rollback.
    """

    def __init__(
        self,
        ledger: InventoryLedger,
        store: RequestStore,
        sequence: SequenceService,
        clock: Clock | None = None,
        request_number_prefix: str = "RIS",
        workflow: Workflow = REQUISITION_WORKFLOW,
    ):
        self._ledger = ledger
        self._store = store
        self._sequence = sequence
        self._clock = clock or SystemClock()
        self._prefix = request_number_prefix
        self._workflow = workflow

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    def submit(
        self,
        requester_id: str,
        items: Sequence[LineItemSpec],
        purpose: str = "",
    ) -> SupplyRequest:
        """
        Create a request in the initial state and reserve every line.

        Preconditions:
            - ``items`` is non-empty, each ``qty > 0``, no item repeated.
            - Every item exists and has ``available >= qty``.

        Raises:
            MissingActorError, EmptyRequestError, InvalidQuantityError,
            DuplicateLineItemError, ItemNotFoundError,
            InsufficientAvailabilityError.
        """
        if not requester_id:
            raise MissingActorError("requester")
        if not items:
            raise EmptyRequestError()

        seen: set[str] = set()
        for spec in items:
            if spec.qty <= 0:
                raise InvalidQuantityError(spec.item_id, spec.qty, "requested quantity must be positive")
            if spec.item_id in seen:
                raise DuplicateLineItemError(spec.item_id)
            seen.add(spec.item_id)

        lines: list[RequestLineItem] = []
        for number, spec in enumerate(items, start=1):
            item = self._ledger.get_item(spec.item_id)
            lines.append(
                RequestLineItem(
                    line_number=number,
                    item_id=item.id,
                    name=item.name,
                    unit=item.unit,
                    requested_qty=spec.qty,
                    qty=spec.qty,
                )
            )
        # Every line is checked before the first reservation.
        self._check_guard(SUBMISSION_GUARD, None, tuple(lines))

        now = self._clock.now()
        request = SupplyRequest(
            id=uuid4(),
            request_number=self._allocate_number(now.year),
            purpose=purpose,
            requester_id=requester_id,
            status=RequestStatus(self._workflow.initial_state),
            created_at=now,
            line_items=tuple(lines),
        )
        saved = self._store.save(request)

        for line in saved.line_items:
            self._apply_effect(SUBMISSION_EFFECT, saved, line, requester_id)

        logger.info(
            "request_submitted",
            extra={
                "request_id": str(saved.id),
                "request_number": saved.request_number,
                "requester_id": requester_id,
                "line_count": len(saved.line_items),
                "status": saved.status.value,
            },
        )
        return saved

    def _allocate_number(self, year: int) -> str:
        seq = self._sequence.next_value(f"{self._prefix}-{year}")
        return f"{self._prefix}-{year}-{seq:04d}"

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def verify(
        self,
        request_id: UUID,
        adjustments: Iterable[QuantityAdjustment] | None = None,
        actor_id: str | None = None,
    ) -> SupplyRequest:
        """Apply the verifier's adjustments, freeze quantities and commit stock."""
        return self.transition(request_id, "verify", actor_id=actor_id, adjustments=adjustments)

    def approve(self, request_id: UUID, approver_id: str) -> SupplyRequest:
        return self.transition(request_id, "approve", actor_id=approver_id)

    def issue(self, request_id: UUID, issuer_id: str) -> SupplyRequest:
        return self.transition(request_id, "issue", actor_id=issuer_id)

    def receive(self, request_id: UUID, receiver_id: str) -> SupplyRequest:
        return self.transition(request_id, "receive", actor_id=receiver_id)

    def reject(
        self,
        request_id: UUID,
        actor_id: str | None = None,
        reason: str | None = None,
    ) -> SupplyRequest:
        """Terminate the request; releases its reservation if not yet verified."""
        return self.transition(request_id, "reject", actor_id=actor_id, reason=reason)

    def transition(
        self,
        request_id: UUID,
        action: str,
        actor_id: str | None = None,
        adjustments: Iterable[QuantityAdjustment] | None = None,
        reason: str | None = None,
    ) -> SupplyRequest:
        """
        Fire ``action`` on a request.

        Steps:
            1. Read the request and look up (status, action) in the table.
            2. Validate actor, adjustments and the transition guard.
            3. Save the new state with compare-and-set on the old status.
            4. Apply the transition's ledger effect to every line.
        """
        request = self._store.get(request_id)
        transition = self._workflow.transition_for(request.status, action)
        if transition is None:
            logger.warning(
                "invalid_transition_attempted",
                extra={
                    "request_id": str(request.id),
                    "action": action,
                    "status": request.status.value,
                },
            )
            raise InvalidTransitionError(str(request.id), action, request.status.value)

        if transition.records_actor and not actor_id:
            raise MissingActorError(transition.records_actor)

        lines = request.line_items
        adjustments = tuple(adjustments or ())
        if adjustments:
            # INVARIANT: quantity freeze -- only the commit transition
            # accepts quantity changes.
            if transition.ledger_effect is not LedgerEffect.COMMIT:
                raise InvalidTransitionError(str(request.id), "adjust", request.status.value)
            lines = apply_adjustments(request, adjustments)

        if transition.guard is not None:
            self._check_guard(transition.guard, request, lines)

        for line in lines:
            if line.under_provisioned and transition.ledger_effect is LedgerEffect.COMMIT:
                logger.warning(
                    "requisition_line_under_provisioned",
                    extra={
                        "request_id": str(request.id),
                        "item_id": line.item_id,
                        "requested_qty": line.requested_qty,
                        "qty": line.qty,
                    },
                )

        updated = self._next_state(request, transition, lines, actor_id, reason)
        try:
            saved = self._store.save(updated, expected_status=request.status)
        except OptimisticLockError as exc:
            current = self._store.get(request_id)
            logger.warning(
                "transition_lost_race",
                extra={
                    "request_id": str(request.id),
                    "action": action,
                    "status": current.status.value,
                },
            )
            raise InvalidTransitionError(str(request.id), action, current.status.value) from exc

        if transition.ledger_effect is not None:
            for line in saved.line_items:
                self._apply_effect(transition.ledger_effect, saved, line, actor_id)

        logger.info(
            "request_transitioned",
            extra={
                "request_id": str(saved.id),
                "request_number": saved.request_number,
                "action": action,
                "from_status": request.status.value,
                "to_status": saved.status.value,
                "ledger_effect": transition.ledger_effect.value if transition.ledger_effect else None,
            },
        )
        return saved

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _next_state(
        self,
        request: SupplyRequest,
        transition: Transition,
        lines: tuple[RequestLineItem, ...],
        actor_id: str | None,
        reason: str | None,
    ) -> SupplyRequest:
        changes: dict = {
            "status": RequestStatus(transition.to_state),
            "line_items": lines,
        }
        if transition.records_actor:
            changes[transition.records_actor] = actor_id
        if transition.stamps:
            changes[transition.stamps] = self._clock.now()
        if transition.to_state == RequestStatus.REJECTED:
            changes["rejection_reason"] = reason
        return replace(request, **changes)

    def _check_guard(
        self,
        guard: Guard,
        request: SupplyRequest | None,
        lines: tuple[RequestLineItem, ...],
    ) -> None:
        if guard is STOCK_AVAILABLE:
            self._check_available(lines)
        elif guard is STOCK_DEDUCTIBLE:
            self._check_deductible(request, lines)
        else:
            raise ValueError(f"No evaluator for workflow guard {guard.name!r}")

    def _check_available(self, lines: tuple[RequestLineItem, ...]) -> None:
        for line in lines:
            item = self._ledger.get_item(line.item_id)
            if line.requested_qty > item.available:
                logger.warning(
                    "request_submission_refused",
                    extra={
                        "item_id": line.item_id,
                        "quantity": line.requested_qty,
                        "available": item.available,
                    },
                )
                raise InsufficientAvailabilityError(line.item_id, line.requested_qty, item.available)

    def _check_deductible(
        self,
        request: SupplyRequest,
        lines: tuple[RequestLineItem, ...],
    ) -> None:
        # Pre-check so nothing is committed when any line would fail.
        for line in lines:
            item = self._ledger.get_item(line.item_id)
            deductible = item.physical_qty - (item.pending_qty - line.requested_qty)
            if line.qty > deductible:
                logger.warning(
                    "request_verification_refused",
                    extra={
                        "request_id": str(request.id),
                        "item_id": line.item_id,
                        "qty": line.qty,
                        "deductible": deductible,
                    },
                )
                raise InsufficientPhysicalStockError(line.item_id, line.qty, deductible)

    def _apply_effect(
        self,
        effect: LedgerEffect,
        request: SupplyRequest,
        line: RequestLineItem,
        actor_id: str | None,
    ) -> None:
        if effect is LedgerEffect.RESERVE:
            self._ledger.reserve(line.item_id, line.requested_qty, request_id=request.id, actor_id=actor_id)
        elif effect is LedgerEffect.COMMIT:
            self._ledger.commit(
                line.item_id, line.requested_qty, line.qty,
                request_id=request.id, actor_id=actor_id,
            )
        elif effect is LedgerEffect.RELEASE:
            self._ledger.release(line.item_id, line.requested_qty, request_id=request.id, actor_id=actor_id)
