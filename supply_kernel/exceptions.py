"""
Typed Exception Hierarchy for the Supply Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A requisition passes through five actors and touches a shared ledger.  Every
failure has to be reported precisely enough that the caller knows whether to
correct its input, refresh a stale view, or simply retry.  Parsing message
strings for that decision is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        gateway.approve_request(actor_id, request_id)
    except Exception as e:
        if "status" in str(e):  # FRAGILE - message might change
            refresh_view()

Example - RIGHT way (what this module enables):
    try:
        gateway.approve_request(actor_id, request_id)
    except InvalidTransitionError as e:  # Typed catch
        refresh_view(e.request_id, e.current_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from SupplyKernelError:

    SupplyKernelError (base)
    |
    +-- ValidationError                (caller's fault, nothing mutated)
    |   +-- EmptyRequestError
    |   +-- InvalidQuantityError
    |   +-- MalformedLineItemError
    |   +-- DuplicateLineItemError
    |   +-- UnknownLineItemError
    |   +-- MissingActorError
    |   +-- ItemAlreadyExistsError
    |   +-- ItemNotFoundError          (also a NotFoundError)
    |
    +-- NotFoundError
    |   +-- RequestNotFoundError
    |   +-- ItemNotFoundError
    |
    +-- InvariantError                 (stock would go inconsistent)
    |   +-- InsufficientAvailabilityError
    |   +-- InsufficientPhysicalStockError
    |   +-- LedgerUnderflowError
    |   +-- DuplicateLedgerEffectError
    |
    +-- StateError
    |   +-- InvalidTransitionError
    |   +-- DocumentNotAvailableError
    |   +-- RequestAlreadyExistsError
    |
    +-- AuthorizationError
    |   +-- PermissionDeniedError
    |
    +-- ConcurrencyError
        +-- OptimisticLockError
        +-- TransactionTimeoutError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | EMPTY_REQUEST               | Submission without line items
                | INVALID_QUANTITY            | Non-integer or out-of-range quantity
                | MALFORMED_LINE_ITEM         | Line payload missing a required field
                | DUPLICATE_LINE_ITEM         | Same item twice in one request
                | UNKNOWN_LINE_ITEM           | Adjustment for item not on the request
                | MISSING_ACTOR               | Blank actor id
                | ITEM_ALREADY_EXISTS         | Registering an existing item id
----------------|-----------------------------|-----------------------------------------
Not found       | REQUEST_NOT_FOUND           | Request id doesn't exist
                | ITEM_NOT_FOUND              | Item id doesn't exist
----------------|-----------------------------|-----------------------------------------
Invariant       | INSUFFICIENT_AVAILABILITY   | Reserve exceeds physical - pending
                | INSUFFICIENT_PHYSICAL_STOCK | Commit exceeds unreserved physical stock
                | LEDGER_UNDERFLOW            | Release exceeds pending
                | DUPLICATE_LEDGER_EFFECT     | Same request+item+kind applied twice
----------------|-----------------------------|-----------------------------------------
State           | INVALID_TRANSITION          | Action not allowed from current status
                | DOCUMENT_NOT_AVAILABLE      | Slip requested before issuance
                | REQUEST_ALREADY_EXISTS      | Saving a new request under a used id
----------------|-----------------------------|-----------------------------------------
Authorization   | PERMISSION_DENIED           | Authorizer refused (or failed)
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Compare-and-set lost a race
                | TRANSACTION_TIMEOUT         | Store did not answer in time (retry)

===============================================================================
HANDLING PATTERNS
===============================================================================

1. VALIDATION / INVARIANT errors: show to the actor, let them correct input.
2. StateError: the client view is stale -- refresh and re-decide.
3. TransactionTimeoutError: retry; transitions are compare-and-set guarded,
   so a retry of an operation that actually committed fails with
   InvalidTransitionError instead of applying twice.
4. PermissionDeniedError: never retried; no partial work was done.
"""


class SupplyKernelError(Exception):
    """
    Base exception for all supply kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "SUPPLY_KERNEL_ERROR"


# Validation errors


class ValidationError(SupplyKernelError):
    """Base exception for malformed caller input."""

    code: str = "VALIDATION_ERROR"


class EmptyRequestError(ValidationError):
    """A request was submitted without any line items."""

    code: str = "EMPTY_REQUEST"

    def __init__(self):
        super().__init__("A supply request needs at least one line item")


class InvalidQuantityError(ValidationError):
    """Quantity is not acceptable for the operation."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, item_id: str, quantity: object, reason: str):
        self.item_id = item_id
        self.quantity = quantity
        self.reason = reason
        super().__init__(f"Invalid quantity {quantity!r} for item {item_id}: {reason}")


class MalformedLineItemError(ValidationError):
    """A line item or adjustment payload is missing a required field."""

    code: str = "MALFORMED_LINE_ITEM"

    def __init__(self, field: str, payload: object):
        self.field = field
        self.payload = payload
        super().__init__(f"Line item payload is missing {field!r}: {payload!r}")


class DuplicateLineItemError(ValidationError):
    """The same item appears more than once in a request or adjustment."""

    code: str = "DUPLICATE_LINE_ITEM"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item {item_id} appears more than once")


class UnknownLineItemError(ValidationError):
    """An adjustment references an item that is not on the request."""

    code: str = "UNKNOWN_LINE_ITEM"

    def __init__(self, request_id: str, item_id: str):
        self.request_id = request_id
        self.item_id = item_id
        super().__init__(f"Item {item_id} is not a line of request {request_id}")


class MissingActorError(ValidationError):
    """An operation that records an actor was called without one."""

    code: str = "MISSING_ACTOR"

    def __init__(self, role: str):
        self.role = role
        super().__init__(f"Missing actor id for {role}")


class ItemAlreadyExistsError(ValidationError):
    """An inventory item with the given id is already registered."""

    code: str = "ITEM_ALREADY_EXISTS"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Inventory item already exists: {item_id}")


# Not-found errors


class NotFoundError(SupplyKernelError):
    """Base exception for unknown identifiers."""

    code: str = "NOT_FOUND"


class RequestNotFoundError(NotFoundError):
    """Supply request with given ID was not found."""

    code: str = "REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Supply request not found: {request_id}")


class ItemNotFoundError(NotFoundError, ValidationError):
    """Inventory item with given ID was not found."""

    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Inventory item not found: {item_id}")


# Invariant errors


class InvariantError(SupplyKernelError):
    """Base exception for operations that would break stock consistency."""

    code: str = "INVARIANT_ERROR"


class InsufficientAvailabilityError(InvariantError):
    """Reservation exceeds the unreserved quantity (physical - pending)."""

    code: str = "INSUFFICIENT_AVAILABILITY"

    def __init__(self, item_id: str, requested: int, available: int):
        self.item_id = item_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Cannot reserve {requested} of {item_id}: only {available} available"
        )


class InsufficientPhysicalStockError(InvariantError):
    """
    Commit would deduct more than the physical stock not held for others.

    The deductible quantity is physical_qty minus the reservations of every
    other request, so a commit can never eat into someone else's hold.
    """

    code: str = "INSUFFICIENT_PHYSICAL_STOCK"

    def __init__(self, item_id: str, requested: int, deductible: int):
        self.item_id = item_id
        self.requested = requested
        self.deductible = deductible
        super().__init__(
            f"Cannot deduct {requested} of {item_id}: only {deductible} deductible"
        )


class LedgerUnderflowError(InvariantError):
    """Release or commit would drive pending_qty below zero."""

    code: str = "LEDGER_UNDERFLOW"

    def __init__(self, item_id: str, quantity: int, pending: int):
        self.item_id = item_id
        self.quantity = quantity
        self.pending = pending
        super().__init__(
            f"Cannot return {quantity} of {item_id}: only {pending} pending"
        )


class DuplicateLedgerEffectError(InvariantError):
    """The same ledger effect was already applied for this request and item."""

    code: str = "DUPLICATE_LEDGER_EFFECT"

    def __init__(self, request_id: str, item_id: str, kind: str):
        self.request_id = request_id
        self.item_id = item_id
        self.kind = kind
        super().__init__(
            f"Ledger {kind} already applied for request {request_id}, item {item_id}"
        )


# State errors


class StateError(SupplyKernelError):
    """Base exception for lifecycle state conflicts."""

    code: str = "STATE_ERROR"


class InvalidTransitionError(StateError):
    """
    Requested action is not permitted from the request's current status.

    Usually means the caller acted on a stale view (someone else moved the
    request first).  Always recoverable by refreshing.
    """

    code: str = "INVALID_TRANSITION"

    def __init__(self, request_id: str, action: str, current_status: str):
        self.request_id = request_id
        self.action = action
        self.current_status = current_status
        super().__init__(
            f"Cannot {action} request {request_id} while it is {current_status}"
        )


class DocumentNotAvailableError(StateError):
    """A requisition slip was requested before the request reached issuance."""

    code: str = "DOCUMENT_NOT_AVAILABLE"

    def __init__(self, request_id: str, current_status: str):
        self.request_id = request_id
        self.current_status = current_status
        super().__init__(
            f"No requisition slip for request {request_id} in status {current_status}"
        )


class RequestAlreadyExistsError(StateError):
    """A new request was saved under an id that is already taken."""

    code: str = "REQUEST_ALREADY_EXISTS"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Supply request already exists: {request_id}")


# Authorization errors


class AuthorizationError(SupplyKernelError):
    """Base exception for authorization failures."""

    code: str = "AUTHORIZATION_ERROR"


class PermissionDeniedError(AuthorizationError):
    """Actor lacks the permission required for the operation."""

    code: str = "PERMISSION_DENIED"

    def __init__(self, actor_id: str, permission: str, operation: str):
        self.actor_id = actor_id
        self.permission = permission
        self.operation = operation
        super().__init__(
            f"Actor {actor_id} lacks {permission} required to {operation}"
        )


# Concurrency errors


class ConcurrencyError(SupplyKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


class TransactionTimeoutError(ConcurrencyError):
    """
    The store did not complete the unit of work in time.

    Nothing was committed.  Safe to retry.
    """

    code: str = "TRANSACTION_TIMEOUT"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Transaction for {operation} failed: {reason}")
