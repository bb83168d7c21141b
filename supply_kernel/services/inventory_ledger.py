"""
InventoryLedger -- per-item stock counters with reserve / commit / release.

Responsibility:
    Owns the two counters of every inventory item (``physical_qty`` and
    ``pending_qty``) and is the only code that changes them.  Each
    mutation writes one StockMovementModel row describing the change.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by RequisitionWorkflow for request-driven effects and by the
    gateway / seeding script for inventory management (register, restock).

Invariants enforced:
    - Availability: ``physical_qty >= 0``, ``pending_qty >= 0`` and
      ``physical_qty - pending_qty >= 0`` after every mutation.  Each
      mutation is a single guarded ``UPDATE ... WHERE`` that re-asserts
      the invariant in SQL, preceded by ``SELECT ... FOR UPDATE`` on
      backends that support it.  A guard miss means the row changed under
      us or the operation is not allowed; the caller gets a typed error.
    - Idempotent effects: a request can reserve, commit or release an item
      at most once (unique ``(request_id, item_code, kind)`` movement).
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - ItemNotFoundError: unknown item id.
    - InvalidQuantityError: non-positive (or negative) quantity.
    - InsufficientAvailabilityError: reserve exceeds physical - pending.
    - InsufficientPhysicalStockError: commit would consume stock reserved
      by other requests.
    - LedgerUnderflowError: commit or release returns more than is pending.
    - DuplicateLedgerEffectError: same request/item/kind applied twice.
"""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from supply_kernel.domain.clock import Clock, SystemClock
from supply_kernel.domain.inventory import InventoryItemInfo, MovementKind
from supply_kernel.exceptions import (
    DuplicateLedgerEffectError,
    InsufficientAvailabilityError,
    InsufficientPhysicalStockError,
    InvalidQuantityError,
    ItemAlreadyExistsError,
    ItemNotFoundError,
    LedgerUnderflowError,
)
from supply_kernel.logging_config import get_logger
from supply_kernel.models.inventory import InventoryItemModel, StockMovementModel
from supply_kernel.services.base import BaseService

logger = get_logger("services.inventory_ledger")


class InventoryLedger(BaseService[InventoryItemModel]):
    """
    Stock counter service.

    Contract:
        Every public mutator either applies its full effect (counter update
        plus movement row, flushed) or raises before touching anything.
        Returns frozen ``InventoryItemInfo`` DTOs, never ORM entities.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def _load(self, item_id: str, lock: bool = False) -> InventoryItemModel:
        stmt = (
            select(InventoryItemModel)
            .where(InventoryItemModel.item_code == item_id)
            .execution_options(populate_existing=True)
        )
        if lock:
            stmt = stmt.with_for_update()
        item = self.session.execute(stmt).scalar_one_or_none()
        if item is None:
            raise ItemNotFoundError(item_id)
        return item

    def get_item(self, item_id: str) -> InventoryItemInfo:
        """
        Current counters for one item.

        Raises:
            ItemNotFoundError: unknown item id.
        """
        return self._load(item_id).to_dto()

    def item_exists(self, item_id: str) -> bool:
        return self.session.execute(
            select(InventoryItemModel.id).where(InventoryItemModel.item_code == item_id)
        ).first() is not None

    # -------------------------------------------------------------------------
    # Inventory management
    # -------------------------------------------------------------------------

    def register_item(
        self,
        item_id: str,
        name: str,
        unit: str,
        physical_qty: int = 0,
        reorder_point: int = 0,
        actor_id: str = "system",
    ) -> InventoryItemInfo:
        """
        Add a new item to the ledger with an opening physical quantity.

        Raises:
            ItemAlreadyExistsError: ``item_id`` is already registered.
            InvalidQuantityError: negative opening quantity or reorder point.
        """
        if physical_qty < 0:
            raise InvalidQuantityError(item_id, physical_qty, "opening quantity must not be negative")
        if reorder_point < 0:
            raise InvalidQuantityError(item_id, reorder_point, "reorder point must not be negative")
        if self.item_exists(item_id):
            raise ItemAlreadyExistsError(item_id)

        item = InventoryItemModel(
            item_code=item_id,
            name=name,
            unit=unit,
            physical_qty=physical_qty,
            pending_qty=0,
            reorder_point=reorder_point,
            version=1,
            created_by_id=actor_id,
        )
        self.session.add(item)
        self.session.flush()

        if physical_qty > 0:
            self._record(item_id, MovementKind.RESTOCK, physical_qty, 0, physical_qty, None, actor_id)

        logger.info(
            "inventory_item_registered",
            extra={
                "item_id": item_id,
                "item_name": name,
                "unit": unit,
                "physical_qty": physical_qty,
                "reorder_point": reorder_point,
            },
        )
        return self._load(item_id).to_dto()

    def restock(
        self,
        item_id: str,
        qty: int,
        actor_id: str | None = None,
    ) -> InventoryItemInfo:
        """
        Add delivered units to ``physical_qty``.

        Raises:
            InvalidQuantityError: ``qty <= 0``.
            ItemNotFoundError: unknown item id.
        """
        if qty <= 0:
            raise InvalidQuantityError(item_id, qty, "restock quantity must be positive")
        self._load(item_id, lock=True)

        self._guarded_update(
            item_id,
            (),
            physical_qty=InventoryItemModel.physical_qty + qty,
            updated_by_id=actor_id,
        )
        self._record(item_id, MovementKind.RESTOCK, qty, 0, qty, None, actor_id)

        item = self._load(item_id)
        logger.info(
            "inventory_restocked",
            extra={
                "item_id": item_id,
                "quantity": qty,
                "physical_qty": item.physical_qty,
                "pending_qty": item.pending_qty,
            },
        )
        return item.to_dto()

    # -------------------------------------------------------------------------
    # Request-driven effects
    # -------------------------------------------------------------------------

    def reserve(
        self,
        item_id: str,
        qty: int,
        request_id: UUID | None = None,
        actor_id: str | None = None,
    ) -> InventoryItemInfo:
        """
        Hold ``qty`` units for a request: ``pending_qty += qty``.

        Raises:
            InvalidQuantityError: ``qty <= 0``.
            ItemNotFoundError: unknown item id.
            InsufficientAvailabilityError: ``qty > physical_qty - pending_qty``.
            DuplicateLedgerEffectError: this request already reserved the item.
        """
        if qty <= 0:
            raise InvalidQuantityError(item_id, qty, "reservation quantity must be positive")
        self._load(item_id, lock=True)
        self._check_not_applied(request_id, item_id, MovementKind.RESERVE)

        # INVARIANT: availability -- pending + qty <= physical
        applied = self._guarded_update(
            item_id,
            (InventoryItemModel.pending_qty + qty <= InventoryItemModel.physical_qty,),
            pending_qty=InventoryItemModel.pending_qty + qty,
            updated_by_id=actor_id,
        )
        if not applied:
            current = self._load(item_id)
            logger.warning(
                "inventory_reserve_refused",
                extra={
                    "item_id": item_id,
                    "quantity": qty,
                    "available": current.physical_qty - current.pending_qty,
                },
            )
            raise InsufficientAvailabilityError(
                item_id, qty, current.physical_qty - current.pending_qty,
            )

        self._record(item_id, MovementKind.RESERVE, qty, qty, 0, request_id, actor_id)

        item = self._load(item_id)
        logger.info(
            "inventory_reserved",
            extra={
                "item_id": item_id,
                "quantity": qty,
                "physical_qty": item.physical_qty,
                "pending_qty": item.pending_qty,
            },
        )
        return item.to_dto()

    def commit(
        self,
        item_id: str,
        reserved_qty: int,
        actual_qty: int,
        request_id: UUID | None = None,
        actor_id: str | None = None,
    ) -> InventoryItemInfo:
        """
        Convert a reservation into a physical deduction.

        ``pending_qty -= reserved_qty`` (the full original hold) and
        ``physical_qty -= actual_qty`` (what the verifier authorized).  The
        deduction may not consume units that other requests still hold:
        ``actual_qty <= physical_qty - (pending_qty - reserved_qty)``.

        Raises:
            InvalidQuantityError: negative quantity.
            ItemNotFoundError: unknown item id.
            LedgerUnderflowError: ``reserved_qty > pending_qty``.
            InsufficientPhysicalStockError: deduction exceeds unreserved stock.
            DuplicateLedgerEffectError: this request already committed the item.
        """
        if reserved_qty < 0:
            raise InvalidQuantityError(item_id, reserved_qty, "reserved quantity must not be negative")
        if actual_qty < 0:
            raise InvalidQuantityError(item_id, actual_qty, "actual quantity must not be negative")
        self._load(item_id, lock=True)
        self._check_not_applied(request_id, item_id, MovementKind.COMMIT)

        applied = self._guarded_update(
            item_id,
            (
                InventoryItemModel.pending_qty >= reserved_qty,
                # INVARIANT: availability -- other requests' holds stay covered
                InventoryItemModel.physical_qty - actual_qty
                >= InventoryItemModel.pending_qty - reserved_qty,
            ),
            pending_qty=InventoryItemModel.pending_qty - reserved_qty,
            physical_qty=InventoryItemModel.physical_qty - actual_qty,
            updated_by_id=actor_id,
        )
        if not applied:
            current = self._load(item_id)
            if reserved_qty > current.pending_qty:
                logger.warning(
                    "inventory_commit_underflow",
                    extra={"item_id": item_id, "reserved_qty": reserved_qty, "pending_qty": current.pending_qty},
                )
                raise LedgerUnderflowError(item_id, reserved_qty, current.pending_qty)
            deductible = current.physical_qty - (current.pending_qty - reserved_qty)
            logger.warning(
                "inventory_commit_refused",
                extra={"item_id": item_id, "actual_qty": actual_qty, "deductible": deductible},
            )
            raise InsufficientPhysicalStockError(item_id, actual_qty, deductible)

        self._record(
            item_id, MovementKind.COMMIT, actual_qty,
            -reserved_qty, -actual_qty, request_id, actor_id,
        )

        item = self._load(item_id)
        logger.info(
            "inventory_committed",
            extra={
                "item_id": item_id,
                "reserved_qty": reserved_qty,
                "actual_qty": actual_qty,
                "physical_qty": item.physical_qty,
                "pending_qty": item.pending_qty,
            },
        )
        return item.to_dto()

    def release(
        self,
        item_id: str,
        qty: int,
        request_id: UUID | None = None,
        actor_id: str | None = None,
    ) -> InventoryItemInfo:
        """
        Return a reservation without touching physical stock:
        ``pending_qty -= qty``.

        Raises:
            InvalidQuantityError: ``qty <= 0``.
            ItemNotFoundError: unknown item id.
            LedgerUnderflowError: ``qty > pending_qty``.
            DuplicateLedgerEffectError: this request already released the item.
        """
        if qty <= 0:
            raise InvalidQuantityError(item_id, qty, "release quantity must be positive")
        self._load(item_id, lock=True)
        self._check_not_applied(request_id, item_id, MovementKind.RELEASE)

        applied = self._guarded_update(
            item_id,
            (InventoryItemModel.pending_qty >= qty,),
            pending_qty=InventoryItemModel.pending_qty - qty,
            updated_by_id=actor_id,
        )
        if not applied:
            current = self._load(item_id)
            logger.warning(
                "inventory_release_underflow",
                extra={"item_id": item_id, "quantity": qty, "pending_qty": current.pending_qty},
            )
            raise LedgerUnderflowError(item_id, qty, current.pending_qty)

        self._record(item_id, MovementKind.RELEASE, qty, -qty, 0, request_id, actor_id)

        item = self._load(item_id)
        logger.info(
            "inventory_released",
            extra={
                "item_id": item_id,
                "quantity": qty,
                "physical_qty": item.physical_qty,
                "pending_qty": item.pending_qty,
            },
        )
        return item.to_dto()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _guarded_update(self, item_id: str, guards: tuple, **values) -> bool:
        """Apply ``values`` only if every guard still holds; bump version."""
        result = self.session.execute(
            update(InventoryItemModel)
            .where(InventoryItemModel.item_code == item_id, *guards)
            .values(version=InventoryItemModel.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _check_not_applied(
        self,
        request_id: UUID | None,
        item_id: str,
        kind: MovementKind,
    ) -> None:
        if request_id is None:
            return
        existing = self.session.execute(
            select(StockMovementModel.id).where(
                StockMovementModel.request_id == request_id,
                StockMovementModel.item_code == item_id,
                StockMovementModel.kind == kind.value,
            )
        ).first()
        if existing is not None:
            logger.warning(
                "duplicate_ledger_effect",
                extra={"item_id": item_id, "kind": kind.value, "request_id": str(request_id)},
            )
            raise DuplicateLedgerEffectError(str(request_id), item_id, kind.value)

    def _record(
        self,
        item_id: str,
        kind: MovementKind,
        quantity: int,
        pending_delta: int,
        physical_delta: int,
        request_id: UUID | None,
        actor_id: str | None,
    ) -> None:
        self.session.add(
            StockMovementModel(
                item_code=item_id,
                request_id=request_id,
                kind=kind.value,
                quantity=quantity,
                pending_delta=pending_delta,
                physical_delta=physical_delta,
                actor_id=actor_id,
                occurred_at=self._clock.now(),
            )
        )
        self.session.flush()
