"""
Kernel Invariants Contract.

These invariants are structural law.  They are hardcoded in the ledger,
the workflow and the database constraints.  No configuration, role or
authorizer may override them.

This module exists solely to declare these invariants explicitly.  The
enforcement is distributed across InventoryLedger, RequisitionWorkflow,
SqlRequestStore and the stock movement uniqueness constraint.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel.

    Each value names one structural guarantee that the kernel provides
    unconditionally.
    """

    AVAILABILITY = "availability"
    """physical_qty >= 0, pending_qty >= 0 and physical_qty - pending_qty >= 0
    after every committed operation.  Enforced by guarded UPDATE statements
    in InventoryLedger and DB check constraints."""

    CONSERVATION = "conservation"
    """Every unit reserved for a request is removed from pending exactly
    once, by commit (verify) or by release (reject before verify).
    Enforced by the workflow transition table and the unique
    (request_id, item_id, kind) constraint on stock movements."""

    QUANTITY_FREEZE = "quantity_freeze"
    """Line quantities change only during verification.  Enforced by
    RequisitionWorkflow: only the verify transition carries adjustments."""

    LINEAR_PROGRESSION = "linear_progression"
    """Requests move forward along a single path; rejection is terminal.
    Enforced by REQUISITION_WORKFLOW and compare-and-set on status."""

    IDEMPOTENT_TRANSITION = "idempotent_transition"
    """Repeating a transition fails with InvalidTransitionError and leaves
    the ledger untouched.  Enforced by compare-and-set on status."""


# All invariants as a frozenset for programmatic checks.
ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "supply_services",
    "supply_config",
)
