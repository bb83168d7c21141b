"""Services for the supply kernel (write side)."""

from supply_kernel.services.inventory_ledger import InventoryLedger
from supply_kernel.services.request_store import RequestStore, SqlRequestStore
from supply_kernel.services.requisition_workflow import RequisitionWorkflow
from supply_kernel.services.sequence_service import SequenceCounter, SequenceService

__all__ = [
    "InventoryLedger",
    "RequestStore",
    "RequisitionWorkflow",
    "SequenceCounter",
    "SequenceService",
    "SqlRequestStore",
]
