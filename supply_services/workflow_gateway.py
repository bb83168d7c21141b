"""
supply_services.workflow_gateway -- the supply requisition API surface.

Responsibility:
    The only entry point that moves supply requests.  For each operation
    it checks the actor's capability with the Authorizer, opens one unit
    of work, drives RequisitionWorkflow / InventoryLedger inside it, and
    commits.  Also exposes the read projections the presentation layer
    needs and requisition slip rendering.

Architecture position:
    Services layer.  Imports from supply_kernel (domain, services,
    selectors, db) and supply_config.  Owns transaction boundaries; the
    kernel services it calls are flush-only.

Invariants enforced:
    - Fail closed: a falsy, non-boolean or raising authorizer denies the
      operation before any session is opened.
    - Atomicity: ledger mutations and the request status change of one
      operation commit together or roll back together.
    - Bounded wait: every unit of work runs under the configured
      transaction timeout; database operational failures surface as
      TransactionTimeoutError and are safe to retry because transitions
      are compare-and-set guarded.

Failure modes:
    - PermissionDeniedError: authorizer refused or failed.
    - TransactionTimeoutError: lock/statement timeout or lost connection.
    - Any SupplyKernelError raised by the kernel, after rollback.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from supply_config.schema import SupplyConfig
from supply_kernel.db.engine import apply_transaction_timeout
from supply_kernel.domain.clock import Clock, SystemClock
from supply_kernel.domain.inventory import InventoryItemInfo, StockMovementInfo
from supply_kernel.domain.requisition import (
    LineItemSpec,
    QuantityAdjustment,
    RequestFilter,
    RequestStatus,
    SupplyRequest,
)
from supply_kernel.domain.slip import ISSUABLE_STATUSES, RequisitionSlip, build_requisition_slip
from supply_kernel.exceptions import (
    DocumentNotAvailableError,
    MalformedLineItemError,
    PermissionDeniedError,
    SupplyKernelError,
    TransactionTimeoutError,
)
from supply_kernel.logging_config import LogContext, get_logger
from supply_kernel.selectors.inventory_selector import InventorySelector
from supply_kernel.services.inventory_ledger import InventoryLedger
from supply_kernel.services.request_store import SqlRequestStore
from supply_kernel.services.requisition_workflow import RequisitionWorkflow
from supply_kernel.services.sequence_service import SequenceService
from supply_services.authorizer import Authorizer
from supply_services.documents import DocumentRenderer, SignatoryResolver, resolve_signatories

logger = get_logger("services.workflow_gateway")

T = TypeVar("T")


def _required(item: Mapping[str, Any], name: str) -> Any:
    if not isinstance(item, Mapping) or name not in item:
        raise MalformedLineItemError(name, item)
    return item[name]


def _as_line_spec(item: LineItemSpec | Mapping[str, Any]) -> LineItemSpec:
    if isinstance(item, LineItemSpec):
        return item
    # qty is taken as given; LineItemSpec refuses anything but an int.
    return LineItemSpec(item_id=str(_required(item, "item_id")), qty=_required(item, "qty"))


def _as_adjustment(item: QuantityAdjustment | Mapping[str, Any]) -> QuantityAdjustment:
    if isinstance(item, QuantityAdjustment):
        return item
    return QuantityAdjustment(
        item_id=str(_required(item, "item_id")),
        qty=item.get("qty"),
        delta=item.get("delta"),
    )


class WorkflowGateway:
    """
    Authorized, transactional facade over the requisition workflow.

    Contract:
        Every mutating method returns the request (or item) as committed.
        Nothing is committed when a method raises.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        authorizer: Authorizer,
        config: SupplyConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._authorizer = authorizer
        self._config = config or SupplyConfig.with_defaults()
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Infrastructure
    # -------------------------------------------------------------------------

    def _authorize(self, actor_id: str, operation: str) -> None:
        permission = self._config.permission_for(operation)
        if not actor_id:
            logger.warning(
                "permission_denied",
                extra={"operation": operation, "permission": permission, "reason": "missing_actor"},
            )
            raise PermissionDeniedError(str(actor_id), permission, operation)
        try:
            allowed = self._authorizer.check(actor_id, permission)
        except Exception as exc:
            logger.warning(
                "permission_denied",
                extra={"operation": operation, "permission": permission, "reason": "authorizer_error"},
                exc_info=True,
            )
            raise PermissionDeniedError(actor_id, permission, operation) from exc
        # INVARIANT: fail closed -- only a literal True grants access
        if allowed is not True:
            logger.warning(
                "permission_denied",
                extra={"operation": operation, "permission": permission, "reason": "not_granted"},
            )
            raise PermissionDeniedError(actor_id, permission, operation)

    @contextmanager
    def _unit_of_work(self, operation: str) -> Iterator[Session]:
        session = self._session_factory()
        try:
            apply_transaction_timeout(session, self._config.transaction_timeout_seconds)
            yield session
            session.commit()
        except OperationalError as exc:
            session.rollback()
            logger.warning(
                "gateway_transaction_timeout",
                extra={"operation": operation},
                exc_info=True,
            )
            raise TransactionTimeoutError(operation, str(exc.orig)) from exc
        except SupplyKernelError as exc:
            session.rollback()
            logger.warning(
                "gateway_operation_failed",
                extra={"operation": operation, "error_code": exc.code},
                exc_info=True,
            )
            raise
        except Exception:
            session.rollback()
            logger.error("gateway_operation_error", extra={"operation": operation}, exc_info=True)
            raise
        finally:
            session.close()

    def _run(
        self,
        operation: str,
        actor_id: str | None,
        work: Callable[[Session], T],
        request_id: UUID | None = None,
        authorize: bool = True,
    ) -> T:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=actor_id,
            request_id=request_id,
            action=operation,
        ):
            if authorize:
                self._authorize(actor_id, operation)
            with self._unit_of_work(operation) as session:
                return work(session)

    def _workflow(self, session: Session) -> RequisitionWorkflow:
        return RequisitionWorkflow(
            ledger=InventoryLedger(session, self._clock),
            store=SqlRequestStore(session),
            sequence=SequenceService(session),
            clock=self._clock,
            request_number_prefix=self._config.request_number_prefix,
        )

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def submit_request(
        self,
        requester_id: str,
        items: Iterable[LineItemSpec | Mapping[str, Any]],
        purpose: str = "",
    ) -> SupplyRequest:
        """Create a request and reserve its lines; returns the new request."""
        def work(session: Session) -> SupplyRequest:
            specs = [_as_line_spec(item) for item in items]
            return self._workflow(session).submit(requester_id, specs, purpose)

        return self._run("submit", requester_id, work)

    def verify_request(
        self,
        actor_id: str,
        request_id: UUID,
        adjusted_items: Iterable[QuantityAdjustment | Mapping[str, Any]] | None = None,
    ) -> SupplyRequest:
        def work(session: Session) -> SupplyRequest:
            adjustments = [_as_adjustment(item) for item in adjusted_items or ()]
            return self._workflow(session).verify(request_id, adjustments, actor_id=actor_id)

        return self._run("verify", actor_id, work, request_id=request_id)

    def approve_request(self, actor_id: str, request_id: UUID) -> SupplyRequest:
        return self._run(
            "approve",
            actor_id,
            lambda session: self._workflow(session).approve(request_id, actor_id),
            request_id=request_id,
        )

    def issue_request(self, actor_id: str, request_id: UUID) -> SupplyRequest:
        return self._run(
            "issue",
            actor_id,
            lambda session: self._workflow(session).issue(request_id, actor_id),
            request_id=request_id,
        )

    def receive_request(self, actor_id: str, request_id: UUID) -> SupplyRequest:
        return self._run(
            "receive",
            actor_id,
            lambda session: self._workflow(session).receive(request_id, actor_id),
            request_id=request_id,
        )

    def reject_request(
        self,
        actor_id: str,
        request_id: UUID,
        reason: str | None = None,
    ) -> SupplyRequest:
        return self._run(
            "reject",
            actor_id,
            lambda session: self._workflow(session).reject(request_id, actor_id=actor_id, reason=reason),
            request_id=request_id,
        )

    # -------------------------------------------------------------------------
    # Inventory management
    # -------------------------------------------------------------------------

    def restock_item(self, actor_id: str, item_id: str, qty: int) -> InventoryItemInfo:
        return self._run(
            "restock",
            actor_id,
            lambda session: InventoryLedger(session, self._clock).restock(item_id, qty, actor_id=actor_id),
        )

    # -------------------------------------------------------------------------
    # Read projections
    # -------------------------------------------------------------------------

    def get_request(self, request_id: UUID) -> SupplyRequest:
        return self._run(
            "get_request",
            None,
            lambda session: SqlRequestStore(session).get(request_id),
            request_id=request_id,
            authorize=False,
        )

    def list_requests(
        self,
        status: RequestStatus | None = None,
        requester_id: str | None = None,
    ) -> list[SupplyRequest]:
        request_filter = RequestFilter(status=status, requester_id=requester_id)
        return self._run(
            "list_requests",
            None,
            lambda session: SqlRequestStore(session).list(request_filter),
            authorize=False,
        )

    def my_requests(self, actor_id: str) -> list[SupplyRequest]:
        """Requests the actor submitted, newest first."""
        return self.list_requests(requester_id=actor_id)

    def pending_approvals(self) -> list[SupplyRequest]:
        return self.list_requests(status=RequestStatus.AWAITING_APPROVAL)

    def get_inventory_item(self, item_id: str) -> InventoryItemInfo:
        return self._run(
            "get_inventory_item",
            None,
            lambda session: InventorySelector(session).get_item(item_id),
            authorize=False,
        )

    def list_inventory(self, low_stock_only: bool = False) -> list[InventoryItemInfo]:
        def work(session: Session) -> list[InventoryItemInfo]:
            selector = InventorySelector(session)
            return selector.low_stock_items() if low_stock_only else selector.list_items()

        return self._run("list_inventory", None, work, authorize=False)

    def stock_movements(
        self,
        item_id: str | None = None,
        request_id: UUID | None = None,
    ) -> list[StockMovementInfo]:
        return self._run(
            "stock_movements",
            None,
            lambda session: InventorySelector(session).movements(item_id=item_id, request_id=request_id),
            authorize=False,
        )

    # -------------------------------------------------------------------------
    # Requisition slip
    # -------------------------------------------------------------------------

    def _issuable_request(self, session: Session, request_id: UUID) -> SupplyRequest:
        request = SqlRequestStore(session).get(request_id)
        if request.status not in ISSUABLE_STATUSES:
            raise DocumentNotAvailableError(str(request_id), request.status.value)
        return request

    def requisition_slip(
        self,
        actor_id: str,
        request_id: UUID,
        resolver: SignatoryResolver,
    ) -> RequisitionSlip:
        """Slip data (header, lines, signature blocks) for an issuable request."""
        request = self._run(
            "render_slip",
            actor_id,
            lambda session: self._issuable_request(session, request_id),
            request_id=request_id,
        )
        return build_requisition_slip(
            request,
            resolve_signatories(request, resolver),
            self._config.slip_header,
        )

    def render_requisition_slip(
        self,
        actor_id: str,
        request_id: UUID,
        renderer: DocumentRenderer,
        resolver: SignatoryResolver,
    ) -> bytes:
        """
        Render the printable slip through the external renderer.

        Raises:
            DocumentNotAvailableError: request is not For Issuance,
                To Receive or History.
        """
        request = self._run(
            "render_slip",
            actor_id,
            lambda session: self._issuable_request(session, request_id),
            request_id=request_id,
        )
        signatories = resolve_signatories(request, resolver)
        with LogContext.bind(actor_id=actor_id, request_id=request_id, action="render_slip"):
            document = renderer.render(request, signatories)
            logger.info(
                "requisition_slip_rendered",
                extra={
                    "request_number": request.request_number,
                    "status": request.status.value,
                    "size_bytes": len(document),
                },
            )
        return document
