"""
Supply configuration schema.

Frozen dataclasses that the YAML loader parses into.  The configuration
set is human-authored and reviewable; the gateway, the reference
authorizer and the seeding script consume it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Self

from supply_kernel.domain.slip import SlipHeader
from supply_kernel.logging_config import get_logger

logger = get_logger("config.schema")

# Permission checked before each gateway operation, unless overridden.
DEFAULT_OPERATION_PERMISSIONS: dict[str, str] = {
    "submit": "supply.request",
    "receive": "supply.request",
    "verify": "supply.inventory",
    "issue": "supply.inventory",
    "restock": "supply.inventory",
    "approve": "supply.approve",
    "reject": "supply.approve",
    "view": "supply.view",
    "render_slip": "supply.view",
}

# A role holding this permission passes every check.
ALL_PERMISSIONS = "all"


@dataclass(frozen=True)
class RoleDefinition:
    """A named role and the permissions it grants."""

    name: str
    permissions: frozenset[str] = frozenset()

    def grants(self, permission: str) -> bool:
        return ALL_PERMISSIONS in self.permissions or permission in self.permissions


@dataclass(frozen=True)
class InventorySeed:
    """An inventory item to register when seeding a fresh database."""

    item_id: str
    name: str
    unit: str
    physical_qty: int = 0
    reorder_point: int = 0

    def __post_init__(self) -> None:
        if self.physical_qty < 0:
            raise ValueError(f"Inventory seed {self.item_id}: physical_qty must be >= 0")
        if self.reorder_point < 0:
            raise ValueError(f"Inventory seed {self.item_id}: reorder_point must be >= 0")


@dataclass(frozen=True)
class SupplyConfig:
    """
    Complete supply configuration.

    ``actor_roles`` is only read by the reference ``RoleBasedAuthorizer``;
    deployments that plug in their own identity provider leave it empty.
    """

    name: str = "default"
    version: str = "1"
    database_url: str = "sqlite:///supply.db"
    transaction_timeout_seconds: float = 5.0
    request_number_prefix: str = "RIS"
    operation_permissions: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_OPERATION_PERMISSIONS)
    )
    roles: tuple[RoleDefinition, ...] = ()
    actor_roles: dict[str, tuple[str, ...]] = field(default_factory=dict)
    slip_header: SlipHeader = field(default_factory=SlipHeader)
    inventory: tuple[InventorySeed, ...] = ()

    def __post_init__(self) -> None:
        if self.transaction_timeout_seconds <= 0:
            raise ValueError("transaction_timeout_seconds must be positive")
        if not self.request_number_prefix:
            raise ValueError("request_number_prefix must not be empty")
        role_names = {role.name for role in self.roles}
        for actor_id, assigned in self.actor_roles.items():
            unknown = set(assigned) - role_names
            if unknown:
                raise ValueError(f"Actor {actor_id} assigned unknown roles: {sorted(unknown)}")

    def permission_for(self, operation: str) -> str:
        """Permission required for a gateway operation."""
        return self.operation_permissions.get(
            operation, DEFAULT_OPERATION_PERMISSIONS[operation]
        )

    def role(self, name: str) -> RoleDefinition | None:
        for role in self.roles:
            if role.name == name:
                return role
        return None

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the built-in permission map and no roles."""
        logger.info("supply_config_created_with_defaults")
        return cls()
