"""
supply_services -- Package init and public API.

Responsibility:
    Orchestration over the supply kernel: the WorkflowGateway that owns
    transaction boundaries and authorization, the Authorizer collaborator
    and its role-based reference implementation, and the requisition slip
    document collaborators.

Architecture position:
    Services -- stateful orchestration over the kernel.

    Dependency direction (enforced by tests/architecture/test_kernel_boundary.py):
        supply_services/ -> supply_kernel/   (allowed)
        supply_services/ -> supply_config/   (allowed)
        supply_kernel/   -> supply_services/ (FORBIDDEN)
"""

from supply_services.authorizer import Authorizer, RoleBasedAuthorizer
from supply_services.documents import DocumentRenderer, SignatoryResolver, resolve_signatories
from supply_services.workflow_gateway import WorkflowGateway

__all__ = [
    "Authorizer",
    "DocumentRenderer",
    "RoleBasedAuthorizer",
    "SignatoryResolver",
    "WorkflowGateway",
    "resolve_signatories",
]
