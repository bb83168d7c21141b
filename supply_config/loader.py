"""
Configuration Loader (``supply_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the typed
``supply_config.schema`` dataclasses.  Runtime callers go through
``supply_config.get_active_config()``.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys in parsed dict  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

import yaml

from supply_config.schema import (
    DEFAULT_OPERATION_PERMISSIONS,
    InventorySeed,
    RoleDefinition,
    SupplyConfig,
)
from supply_kernel.domain.slip import SlipHeader
from supply_kernel.logging_config import get_logger

logger = get_logger("config.loader")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_role(name: str, data: dict[str, Any]) -> RoleDefinition:
    """Parse one entry of the ``roles`` mapping."""
    return RoleDefinition(
        name=name,
        permissions=frozenset(data.get("permissions", ())),
    )


def parse_inventory_seed(data: dict[str, Any]) -> InventorySeed:
    """Parse one entry of the ``inventory`` list; ``id``, ``name`` and ``unit`` are required."""
    return InventorySeed(
        item_id=str(data["id"]),
        name=data["name"],
        unit=data["unit"],
        physical_qty=int(data.get("physical_qty", 0)),
        reorder_point=int(data.get("reorder_point", 0)),
    )


def parse_slip_header(data: dict[str, Any]) -> SlipHeader:
    defaults = SlipHeader()
    return SlipHeader(
        entity_name=data.get("entity_name", defaults.entity_name),
        division=data.get("division", defaults.division),
        office=data.get("office", defaults.office),
        fund_cluster=data.get("fund_cluster", defaults.fund_cluster),
        responsibility_center_code=data.get(
            "responsibility_center_code", defaults.responsibility_center_code
        ),
    )


def parse_config(data: dict[str, Any]) -> SupplyConfig:
    """
    Parse a ``SupplyConfig`` from a dict.

    Raises:
        ValueError: unknown operation in ``permissions``, or a value the
            schema rejects.
        KeyError: a required key of a nested entry is missing.
    """
    permissions = dict(DEFAULT_OPERATION_PERMISSIONS)
    for operation, permission in (data.get("permissions") or {}).items():
        if operation not in DEFAULT_OPERATION_PERMISSIONS:
            raise ValueError(f"Unknown gateway operation in permissions: {operation!r}")
        permissions[operation] = permission

    roles = tuple(
        parse_role(name, role_data or {})
        for name, role_data in (data.get("roles") or {}).items()
    )
    actor_roles = {
        str(actor_id): tuple(assigned)
        for actor_id, assigned in (data.get("actors") or {}).items()
    }

    database = data.get("database") or {}
    requests = data.get("requests") or {}

    config = SupplyConfig(
        name=data.get("name", "default"),
        version=str(data.get("version", "1")),
        database_url=database.get("url", "sqlite:///supply.db"),
        transaction_timeout_seconds=float(database.get("transaction_timeout_seconds", 5.0)),
        request_number_prefix=requests.get("number_prefix", "RIS"),
        operation_permissions=permissions,
        roles=roles,
        actor_roles=actor_roles,
        slip_header=parse_slip_header(data.get("slip_header") or {}),
        inventory=tuple(parse_inventory_seed(item) for item in data.get("inventory") or ()),
    )
    logger.debug(
        "supply_config_parsed",
        extra={
            "config_name": config.name,
            "config_version": config.version,
            "role_count": len(config.roles),
            "inventory_count": len(config.inventory),
        },
    )
    return config


def load_config(path: Path) -> SupplyConfig:
    """Load and parse a configuration file."""
    return parse_config(load_yaml_file(path))


def _canonical(value: Any) -> Any:
    if isinstance(value, frozenset):
        return sorted(value)
    if isinstance(value, dict):
        return {k: _canonical(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    return value


def compute_checksum(config: SupplyConfig) -> str:
    """
    Compute a deterministic SHA-256 checksum of a configuration.

    Two configurations with the same content hash identically regardless
    of key order in the source YAML.
    """
    canonical = json.dumps(_canonical(asdict(config)), sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
