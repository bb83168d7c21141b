"""
supply_services.authorizer -- capability checks at the gateway boundary.

Responsibility:
    Defines the ``Authorizer`` collaborator the gateway consults before
    every operation, and a config-driven role-based implementation.

Architecture position:
    Services layer.  The kernel stays actor-agnostic: it records actor ids
    but never decides whether an actor may act.

Invariants:
    - Fail closed: anything other than a literal ``True`` from ``check`` is
      a denial (enforced by the gateway).
    - A role holding ``all`` passes every check.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from supply_config.schema import ALL_PERMISSIONS, RoleDefinition, SupplyConfig
from supply_kernel.logging_config import get_logger

logger = get_logger("services.authorizer")


@runtime_checkable
class Authorizer(Protocol):
    """External permission-check collaborator."""

    def check(self, actor_id: str, permission: str) -> bool:
        ...


def effective_permissions(
    roles: Mapping[str, RoleDefinition],
    assigned_roles: tuple[str, ...],
) -> frozenset[str]:
    """Union of the permissions granted by every assigned role."""
    permissions: set[str] = set()
    for name in assigned_roles:
        role = roles.get(name)
        if role is not None:
            permissions |= role.permissions
    return frozenset(permissions)


def has_permission(permissions: frozenset[str], required: str) -> bool:
    return ALL_PERMISSIONS in permissions or required in permissions


class RoleBasedAuthorizer:
    """
    Reference ``Authorizer``: actor -> roles -> permissions.

    Actors without any role assignment are denied everything.
    """

    def __init__(
        self,
        roles: tuple[RoleDefinition, ...],
        actor_roles: Mapping[str, tuple[str, ...]],
    ):
        self._roles = {role.name: role for role in roles}
        self._actor_roles = dict(actor_roles)

    @classmethod
    def from_config(cls, config: SupplyConfig) -> RoleBasedAuthorizer:
        return cls(config.roles, config.actor_roles)

    def assign(self, actor_id: str, *role_names: str) -> None:
        unknown = [name for name in role_names if name not in self._roles]
        if unknown:
            raise ValueError(f"Unknown roles: {unknown}")
        self._actor_roles[actor_id] = tuple(role_names)

    def permissions_of(self, actor_id: str) -> frozenset[str]:
        return effective_permissions(self._roles, self._actor_roles.get(actor_id, ()))

    def check(self, actor_id: str, permission: str) -> bool:
        allowed = has_permission(self.permissions_of(actor_id), permission)
        if not allowed:
            logger.debug(
                "rbac_permission_missing",
                extra={"actor_id": actor_id, "permission": permission},
            )
        return allowed
