"""
RequestStore -- keyed persistence of supply requests.

Responsibility:
    Durable collection of ``SupplyRequest`` records keyed by id, with
    lookup, filtered listing and save.  No business logic: which
    transitions are legal is decided by RequisitionWorkflow.

Architecture position:
    Kernel > Services.  ``RequestStore`` is the storage-agnostic contract;
    ``SqlRequestStore`` is the SQLAlchemy implementation used in
    production and tests.

Invariants enforced:
    - Compare-and-set on status: ``save(request, expected_status=...)``
      updates the row only if its stored status still equals
      ``expected_status``.  A concurrent transition that moved the request
      first makes the save fail with OptimisticLockError instead of
      overwriting it.
    - Flush-only: never commits or rolls back the session.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from supply_kernel.domain.requisition import RequestFilter, RequestStatus, SupplyRequest
from supply_kernel.exceptions import (
    OptimisticLockError,
    RequestAlreadyExistsError,
    RequestNotFoundError,
)
from supply_kernel.logging_config import get_logger
from supply_kernel.models.requisition import RequestLineItemModel, SupplyRequestModel
from supply_kernel.services.base import BaseService

logger = get_logger("services.request_store")


class RequestStore(ABC):
    """Storage contract for supply requests."""

    @abstractmethod
    def save(
        self,
        request: SupplyRequest,
        expected_status: RequestStatus | None = None,
    ) -> SupplyRequest:
        """
        Insert a new request (``expected_status`` None) or update an
        existing one whose stored status equals ``expected_status``.
        """

    @abstractmethod
    def get(self, request_id: UUID) -> SupplyRequest:
        """Raises RequestNotFoundError for an unknown id."""

    @abstractmethod
    def list(self, request_filter: RequestFilter | None = None) -> list[SupplyRequest]:
        """Requests matching the filter, newest first."""


class SqlRequestStore(BaseService[SupplyRequestModel], RequestStore):
    """SQLAlchemy-backed RequestStore."""

    def __init__(self, session: Session):
        super().__init__(session)

    def _load(self, request_id: UUID) -> SupplyRequestModel | None:
        return self.session.execute(
            select(SupplyRequestModel)
            .where(SupplyRequestModel.id == request_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get(self, request_id: UUID) -> SupplyRequest:
        model = self._load(request_id)
        if model is None:
            raise RequestNotFoundError(str(request_id))
        return model.to_dto()

    def get_by_number(self, request_number: str) -> SupplyRequest:
        model = self.session.execute(
            select(SupplyRequestModel)
            .where(SupplyRequestModel.request_number == request_number)
        ).scalar_one_or_none()
        if model is None:
            raise RequestNotFoundError(request_number)
        return model.to_dto()

    def list(self, request_filter: RequestFilter | None = None) -> list[SupplyRequest]:
        stmt = select(SupplyRequestModel)
        if request_filter is not None:
            if request_filter.status is not None:
                stmt = stmt.where(
                    SupplyRequestModel.status == RequestStatus(request_filter.status).value
                )
            if request_filter.requester_id is not None:
                stmt = stmt.where(SupplyRequestModel.requester_id == request_filter.requester_id)
        stmt = stmt.order_by(
            SupplyRequestModel.created_at.desc(),
            SupplyRequestModel.request_number.desc(),
        )
        return [model.to_dto() for model in self.session.execute(stmt).scalars()]

    def save(
        self,
        request: SupplyRequest,
        expected_status: RequestStatus | None = None,
    ) -> SupplyRequest:
        """
        Persist ``request``.

        Raises:
            RequestAlreadyExistsError: inserting under an id already stored.
            RequestNotFoundError: updating an id that was never stored.
            OptimisticLockError: the stored status no longer equals
                ``expected_status``.
        """
        if expected_status is None:
            return self._insert(request)
        return self._update(request, RequestStatus(expected_status))

    def _insert(self, request: SupplyRequest) -> SupplyRequest:
        existing = self.session.execute(
            select(SupplyRequestModel.id).where(SupplyRequestModel.id == request.id)
        ).first()
        if existing is not None:
            raise RequestAlreadyExistsError(str(request.id))

        model = SupplyRequestModel.from_dto(request)
        self.session.add(model)
        self.session.flush()
        logger.debug(
            "request_inserted",
            extra={
                "request_id": str(request.id),
                "request_number": request.request_number,
                "line_count": len(request.line_items),
            },
        )
        return model.to_dto()

    def _update(self, request: SupplyRequest, expected_status: RequestStatus) -> SupplyRequest:
        # INVARIANT: compare-and-set -- only the holder of the expected
        # status may move the request.
        result = self.session.execute(
            update(SupplyRequestModel)
            .where(
                SupplyRequestModel.id == request.id,
                SupplyRequestModel.status == expected_status.value,
            )
            .values(
                status=RequestStatus(request.status).value,
                purpose=request.purpose,
                approver_id=request.approver_id,
                issuer_id=request.issuer_id,
                receiver_id=request.receiver_id,
                verified_at=request.verified_at,
                approved_at=request.approved_at,
                issued_at=request.issued_at,
                received_at=request.received_at,
                rejected_at=request.rejected_at,
                rejection_reason=request.rejection_reason,
                version=SupplyRequestModel.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            if self._load(request.id) is None:
                raise RequestNotFoundError(str(request.id))
            logger.warning(
                "request_status_conflict",
                extra={
                    "request_id": str(request.id),
                    "expected_status": expected_status.value,
                },
            )
            raise OptimisticLockError("SupplyRequest", str(request.id))

        for line in request.line_items:
            self.session.execute(
                update(RequestLineItemModel)
                .where(
                    RequestLineItemModel.request_id == request.id,
                    RequestLineItemModel.item_code == line.item_id,
                )
                .values(qty=line.qty)
                .execution_options(synchronize_session=False)
            )

        # Bulk updates bypass the identity map; reload row and lines.
        self.session.expire_all()
        model = self._load(request.id)
        logger.debug(
            "request_updated",
            extra={
                "request_id": str(request.id),
                "from_status": expected_status.value,
                "to_status": model.status,
                "version": model.version,
            },
        )
        return model.to_dto()
