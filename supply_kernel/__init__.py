"""
Supply Kernel - Requisition Workflow Engine

A transactional supply requisition core with:
- Reservation / commit / release inventory ledger
- Linear requisition state machine with a rejection side-branch
- Compare-and-set transitions (safe to retry)
- Append-only stock movement journal for auditability
"""

__version__ = "0.1.0"
