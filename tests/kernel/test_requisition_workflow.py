"""
Tests for RequisitionWorkflow: submission, every transition, the ledger
effect each transition applies, and the worked stock scenarios of the
Aurora office (SECPA-FORMS at 1500 physical / 200 pending).
"""

from uuid import uuid4

import pytest

from supply_kernel.domain.inventory import MovementKind
from supply_kernel.domain.requisition import (
    LineItemSpec,
    QuantityAdjustment,
    RequestStatus,
)
from supply_kernel.domain.workflow import Guard, Transition, Workflow
from supply_kernel.exceptions import (
    DuplicateLineItemError,
    EmptyRequestError,
    InsufficientAvailabilityError,
    InsufficientPhysicalStockError,
    InvalidQuantityError,
    InvalidTransitionError,
    ItemNotFoundError,
    MissingActorError,
    RequestNotFoundError,
    UnknownLineItemError,
)
from supply_kernel.selectors.inventory_selector import InventorySelector
from supply_kernel.services.requisition_workflow import RequisitionWorkflow

REQUESTER = "juan.delacruz"
OFFICER = "supply.aurora"
APPROVER = "chief.statistician"


@pytest.fixture
def submit(workflow, stocked_ledger):
    def _submit(*lines: tuple[str, int], purpose: str = "Field enumeration"):
        return workflow.submit(
            REQUESTER,
            [LineItemSpec(item_id, qty) for item_id, qty in lines],
            purpose,
        )

    return _submit


class TestStockScenarios:
    """Worked examples against SECPA-FORMS (1500 physical, 200 pending)."""

    def test_submit_reserves_requested_quantity(self, submit, stocked_ledger):
        submit(("SECPA-FORMS", 100))

        item = stocked_ledger.get_item("SECPA-FORMS")
        assert item.pending_qty == 300
        assert item.available == 1200
        assert item.physical_qty == 1500

    def test_verify_unchanged_commits_and_restores_pending(self, submit, workflow, stocked_ledger):
        request = submit(("SECPA-FORMS", 100))

        workflow.verify(request.id)

        item = stocked_ledger.get_item("SECPA-FORMS")
        assert item.pending_qty == 200
        assert item.physical_qty == 1400

    def test_submit_over_availability_fails_without_mutation(self, submit, workflow, stocked_ledger, store):
        submit(("SECPA-FORMS", 100))

        with pytest.raises(InsufficientAvailabilityError) as exc_info:
            submit(("SECPA-FORMS", 2000))

        assert exc_info.value.available == 1200
        item = stocked_ledger.get_item("SECPA-FORMS")
        assert item.pending_qty == 300
        assert item.physical_qty == 1500
        assert len(store.list()) == 1

    def test_reduced_verify_deducts_adjusted_and_releases_full_hold(self, submit, workflow, stocked_ledger):
        request = submit(("SECPA-FORMS", 50))
        assert stocked_ledger.get_item("SECPA-FORMS").pending_qty == 250

        verified = workflow.verify(request.id, [QuantityAdjustment("SECPA-FORMS", qty=30)])

        item = stocked_ledger.get_item("SECPA-FORMS")
        assert item.physical_qty == 1470
        assert item.pending_qty == 200
        line = verified.line_for("SECPA-FORMS")
        assert line.requested_qty == 50
        assert line.qty == 30

    def test_reject_before_verify_releases_reservation(self, submit, workflow, stocked_ledger):
        request = submit(("SECPA-FORMS", 10))
        assert stocked_ledger.get_item("SECPA-FORMS").pending_qty == 210

        rejected = workflow.reject(request.id, actor_id=APPROVER, reason="Duplicate request")

        assert rejected.status == RequestStatus.REJECTED
        assert rejected.rejection_reason == "Duplicate request"
        item = stocked_ledger.get_item("SECPA-FORMS")
        assert item.pending_qty == 200
        assert item.physical_qty == 1500


class TestSubmit:
    """Creation of a request in For Verification."""

    def test_submit_snapshots_item_details(self, submit, deterministic_clock):
        request = submit(("LOGBOOK", 2), ("ENV-LARGE", 30), purpose="Census training")

        assert request.status == RequestStatus.FOR_VERIFICATION
        assert request.requester_id == REQUESTER
        assert request.purpose == "Census training"
        assert request.created_at == deterministic_clock.now()
        assert [line.line_number for line in request.line_items] == [1, 2]
        logbook = request.line_for("LOGBOOK")
        assert logbook.name == "Logbooks"
        assert logbook.unit == "pc"
        assert logbook.requested_qty == logbook.qty == 2

    def test_request_numbers_are_sequential_per_year(self, submit):
        first = submit(("LOGBOOK", 1))
        second = submit(("LOGBOOK", 1))

        assert first.request_number == "RIS-2024-0001"
        assert second.request_number == "RIS-2024-0002"

    def test_custom_prefix(self, stocked_ledger, store, sequence, deterministic_clock):
        workflow = RequisitionWorkflow(
            stocked_ledger, store, sequence, deterministic_clock, request_number_prefix="PSA",
        )
        request = workflow.submit(REQUESTER, [LineItemSpec("LOGBOOK", 1)])
        assert request.request_number == "PSA-2024-0001"

    def test_empty_request_rejected(self, workflow, stocked_ledger):
        with pytest.raises(EmptyRequestError):
            workflow.submit(REQUESTER, [])

    def test_missing_requester_rejected(self, workflow, stocked_ledger):
        with pytest.raises(MissingActorError):
            workflow.submit("", [LineItemSpec("LOGBOOK", 1)])

    @pytest.mark.parametrize("qty", [0, -3])
    def test_non_positive_quantity_rejected(self, workflow, stocked_ledger, qty):
        with pytest.raises(InvalidQuantityError):
            workflow.submit(REQUESTER, [LineItemSpec("LOGBOOK", qty)])
        assert stocked_ledger.get_item("LOGBOOK").pending_qty == 0

    def test_duplicate_item_rejected(self, workflow, stocked_ledger):
        with pytest.raises(DuplicateLineItemError):
            workflow.submit(REQUESTER, [LineItemSpec("LOGBOOK", 1), LineItemSpec("LOGBOOK", 2)])

    def test_unknown_item_rejected_before_any_reservation(self, workflow, stocked_ledger, session):
        before = InventorySelector(session).movements(item_id="LOGBOOK")

        with pytest.raises(ItemNotFoundError):
            workflow.submit(
                REQUESTER,
                [LineItemSpec("LOGBOOK", 1), LineItemSpec("NO-SUCH-ITEM", 1)],
            )
        assert stocked_ledger.get_item("LOGBOOK").pending_qty == 0
        after = InventorySelector(session).movements(item_id="LOGBOOK")
        assert after == before
        assert all(m.kind is not MovementKind.RESERVE for m in after)

    def test_one_short_line_fails_whole_request(self, workflow, stocked_ledger, store):
        with pytest.raises(InsufficientAvailabilityError):
            workflow.submit(
                REQUESTER,
                [LineItemSpec("ENV-LARGE", 10), LineItemSpec("INK-CART", 5)],
            )
        assert stocked_ledger.get_item("ENV-LARGE").pending_qty == 0
        assert store.list() == []

    def test_submit_logs_event(self, submit, captured_logs):
        request = submit(("LOGBOOK", 1))

        records = [r for r in captured_logs() if r["message"] == "request_submitted"]
        assert len(records) == 1
        assert records[0]["request_number"] == request.request_number
        assert records[0]["line_count"] == 1


class TestLinearProgression:
    """For Verification -> Awaiting Approval -> For Issuance -> To Receive -> History."""

    def test_full_lifecycle(self, submit, workflow, stocked_ledger, deterministic_clock):
        request = submit(("ENV-LARGE", 20))

        deterministic_clock.advance(60)
        verified = workflow.verify(request.id)
        assert verified.status == RequestStatus.AWAITING_APPROVAL
        assert verified.verified_at == deterministic_clock.now()

        deterministic_clock.advance(60)
        approved = workflow.approve(request.id, APPROVER)
        assert approved.status == RequestStatus.FOR_ISSUANCE
        assert approved.approver_id == APPROVER
        assert approved.approved_at == deterministic_clock.now()

        deterministic_clock.advance(60)
        issued = workflow.issue(request.id, OFFICER)
        assert issued.status == RequestStatus.TO_RECEIVE
        assert issued.issuer_id == OFFICER

        deterministic_clock.advance(60)
        received = workflow.receive(request.id, REQUESTER)
        assert received.status == RequestStatus.HISTORY
        assert received.receiver_id == REQUESTER
        assert received.is_terminal

        item = stocked_ledger.get_item("ENV-LARGE")
        assert item.physical_qty == 800
        assert item.pending_qty == 0

    def test_version_bumps_per_transition(self, submit, workflow):
        request = submit(("LOGBOOK", 1))
        assert request.version == 1

        assert workflow.verify(request.id).version == 2
        assert workflow.approve(request.id, APPROVER).version == 3

    @pytest.mark.parametrize(
        "action, kwargs",
        [
            ("approve", {"approver_id": APPROVER}),
            ("issue", {"issuer_id": OFFICER}),
            ("receive", {"receiver_id": REQUESTER}),
        ],
    )
    def test_cannot_skip_verification(self, submit, workflow, action, kwargs):
        request = submit(("LOGBOOK", 1))

        with pytest.raises(InvalidTransitionError) as exc_info:
            getattr(workflow, action)(request.id, **kwargs)

        assert exc_info.value.current_status == RequestStatus.FOR_VERIFICATION.value
        assert exc_info.value.action == action

    def test_verify_twice_rejected(self, submit, workflow, stocked_ledger):
        request = submit(("LOGBOOK", 4))
        workflow.verify(request.id)

        with pytest.raises(InvalidTransitionError):
            workflow.verify(request.id)
        assert stocked_ledger.get_item("LOGBOOK").physical_qty == 11

    def test_approve_requires_actor(self, submit, workflow):
        request = submit(("LOGBOOK", 1))
        workflow.verify(request.id)

        with pytest.raises(MissingActorError) as exc_info:
            workflow.approve(request.id, "")
        assert exc_info.value.role == "approver_id"

    def test_unknown_request(self, workflow):
        with pytest.raises(RequestNotFoundError):
            workflow.verify(uuid4())

    def test_unknown_action(self, submit, workflow):
        request = submit(("LOGBOOK", 1))
        with pytest.raises(InvalidTransitionError):
            workflow.transition(request.id, "reopen", actor_id=OFFICER)

    def test_guard_without_evaluator_refused(self, submit, stocked_ledger, store, sequence, deterministic_clock):
        countersigned = Guard("countersigned", "A second officer has signed the slip")
        custom = Workflow(
            "countersigned_requisition", "",
            initial_state=RequestStatus.FOR_VERIFICATION,
            states=tuple(RequestStatus),
            transitions=(
                Transition(
                    RequestStatus.FOR_VERIFICATION, RequestStatus.AWAITING_APPROVAL,
                    action="verify", guard=countersigned,
                ),
            ),
        )
        workflow = RequisitionWorkflow(stocked_ledger, store, sequence, deterministic_clock, workflow=custom)
        request = submit(("LOGBOOK", 2))

        with pytest.raises(ValueError, match="countersigned"):
            workflow.verify(request.id)
        assert store.get(request.id).status is RequestStatus.FOR_VERIFICATION
        assert stocked_ledger.get_item("LOGBOOK").physical_qty == 15


class TestRejection:
    """Rejected is terminal and reachable only before To Receive."""

    def test_reject_after_verify_has_no_ledger_effect(self, submit, workflow, stocked_ledger):
        request = submit(("ENV-LARGE", 20))
        workflow.verify(request.id)
        before = stocked_ledger.get_item("ENV-LARGE")

        workflow.reject(request.id, actor_id=APPROVER)

        after = stocked_ledger.get_item("ENV-LARGE")
        assert (after.physical_qty, after.pending_qty) == (before.physical_qty, before.pending_qty)

    def test_reject_from_for_issuance(self, submit, workflow):
        request = submit(("LOGBOOK", 1))
        workflow.verify(request.id)
        workflow.approve(request.id, APPROVER)

        rejected = workflow.reject(request.id)
        assert rejected.status == RequestStatus.REJECTED
        assert rejected.rejected_at is not None

    def test_reject_twice_is_invalid_and_ledger_unchanged(self, submit, workflow, stocked_ledger):
        request = submit(("SECPA-FORMS", 10))
        workflow.reject(request.id)
        after_first = stocked_ledger.get_item("SECPA-FORMS")

        with pytest.raises(InvalidTransitionError) as exc_info:
            workflow.reject(request.id)

        assert exc_info.value.current_status == RequestStatus.REJECTED.value
        after_second = stocked_ledger.get_item("SECPA-FORMS")
        assert (after_second.physical_qty, after_second.pending_qty) == (
            after_first.physical_qty,
            after_first.pending_qty,
        )

    @pytest.mark.parametrize("stop_at", ["issue", "receive"])
    def test_cannot_reject_once_issued(self, submit, workflow, stop_at):
        request = submit(("LOGBOOK", 1))
        workflow.verify(request.id)
        workflow.approve(request.id, APPROVER)
        workflow.issue(request.id, OFFICER)
        if stop_at == "receive":
            workflow.receive(request.id, REQUESTER)

        with pytest.raises(InvalidTransitionError):
            workflow.reject(request.id)

    def test_rejected_request_cannot_be_verified(self, submit, workflow):
        request = submit(("LOGBOOK", 1))
        workflow.reject(request.id)

        with pytest.raises(InvalidTransitionError):
            workflow.verify(request.id)


class TestVerificationAdjustments:
    """Quantities change only during verification, then stay frozen."""

    def test_delta_adjustments_floor_at_zero(self, submit, workflow, stocked_ledger):
        request = submit(("LOGBOOK", 3), ("ENV-LARGE", 10))

        verified = workflow.verify(
            request.id,
            [QuantityAdjustment("LOGBOOK", delta=-5), QuantityAdjustment("ENV-LARGE", delta=2)],
        )

        assert verified.line_for("LOGBOOK").qty == 0
        assert verified.line_for("ENV-LARGE").qty == 12
        assert stocked_ledger.get_item("LOGBOOK").physical_qty == 15
        assert stocked_ledger.get_item("ENV-LARGE").physical_qty == 808
        assert stocked_ledger.get_item("ENV-LARGE").pending_qty == 0

    def test_adjustment_above_request_within_stock(self, submit, workflow, stocked_ledger):
        request = submit(("INK-CART", 2))

        verified = workflow.verify(request.id, [QuantityAdjustment("INK-CART", qty=4)])

        assert verified.line_for("INK-CART").qty == 4
        item = stocked_ledger.get_item("INK-CART")
        assert item.physical_qty == 0
        assert item.pending_qty == 0

    def test_adjustment_beyond_deductible_refused_atomically(self, submit, workflow, stocked_ledger, store):
        request = submit(("ENV-LARGE", 10), ("INK-CART", 2))

        with pytest.raises(InsufficientPhysicalStockError):
            workflow.verify(
                request.id,
                [QuantityAdjustment("ENV-LARGE", qty=5), QuantityAdjustment("INK-CART", qty=9)],
            )

        assert store.get(request.id).status == RequestStatus.FOR_VERIFICATION
        assert stocked_ledger.get_item("ENV-LARGE").physical_qty == 820
        assert stocked_ledger.get_item("ENV-LARGE").pending_qty == 10

    def test_unknown_line_adjustment_rejected(self, submit, workflow):
        request = submit(("LOGBOOK", 1))
        with pytest.raises(UnknownLineItemError):
            workflow.verify(request.id, [QuantityAdjustment("INK-CART", qty=1)])

    def test_duplicate_adjustment_rejected(self, submit, workflow):
        request = submit(("LOGBOOK", 2))
        with pytest.raises(DuplicateLineItemError):
            workflow.verify(
                request.id,
                [QuantityAdjustment("LOGBOOK", qty=1), QuantityAdjustment("LOGBOOK", delta=1)],
            )

    @pytest.mark.parametrize("action", ["approve", "issue", "receive", "reject"])
    def test_adjustments_refused_after_verification(self, submit, workflow, action):
        request = submit(("LOGBOOK", 2))
        workflow.verify(request.id)
        if action in ("issue", "receive"):
            workflow.approve(request.id, APPROVER)
        if action == "receive":
            workflow.issue(request.id, OFFICER)

        with pytest.raises(InvalidTransitionError) as exc_info:
            workflow.transition(
                request.id, action, actor_id=OFFICER,
                adjustments=[QuantityAdjustment("LOGBOOK", qty=1)],
            )

        assert exc_info.value.action == "adjust"
        assert workflow.transition(request.id, action, actor_id=OFFICER).line_for("LOGBOOK").qty == 2

    def test_under_provisioning_is_logged(self, submit, workflow, captured_logs):
        request = submit(("ENV-LARGE", 50))

        workflow.verify(request.id, [QuantityAdjustment("ENV-LARGE", qty=30)])

        warnings = [
            r for r in captured_logs() if r["message"] == "requisition_line_under_provisioned"
        ]
        assert len(warnings) == 1
        assert warnings[0]["level"] == "WARNING"
        assert warnings[0]["requested_qty"] == 50
        assert warnings[0]["qty"] == 30


class TestConservation:
    """Every reserved unit leaves pending exactly once."""

    def test_movements_per_request(self, submit, workflow, session):
        verified = submit(("ENV-LARGE", 20))
        rejected = submit(("ENV-LARGE", 5))
        workflow.verify(verified.id, [QuantityAdjustment("ENV-LARGE", qty=15)])
        workflow.reject(rejected.id)

        selector = InventorySelector(session)
        verified_moves = selector.movements(request_id=verified.id)
        rejected_moves = selector.movements(request_id=rejected.id)

        assert sorted(m.kind for m in verified_moves) == [MovementKind.COMMIT, MovementKind.RESERVE]
        assert sorted(m.kind for m in rejected_moves) == [MovementKind.RELEASE, MovementKind.RESERVE]
        assert sum(m.pending_delta for m in verified_moves) == 0
        assert sum(m.pending_delta for m in rejected_moves) == 0
        assert sum(m.physical_delta for m in verified_moves) == -15
        assert sum(m.physical_delta for m in rejected_moves) == 0
