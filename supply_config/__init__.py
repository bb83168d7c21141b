"""
supply_config -- single public entrypoint for supply configuration.

Responsibility:
    Provides the runtime configuration through ``get_active_config()``:
    the permission each gateway operation requires, role definitions for
    the reference authorizer, the transaction timeout, the slip number
    prefix, the slip header, and the inventory to seed.

Architecture position:
    Configuration -- sits above ``supply_kernel`` and below
    ``supply_services``.  The kernel MUST NEVER import from
    ``supply_config``.
"""

import os
from pathlib import Path

from supply_config.loader import compute_checksum, load_config, parse_config
from supply_config.schema import (
    ALL_PERMISSIONS,
    DEFAULT_OPERATION_PERMISSIONS,
    InventorySeed,
    RoleDefinition,
    SupplyConfig,
)
from supply_kernel.logging_config import get_logger

logger = get_logger("config")

CONFIG_ENV_VAR = "SUPPLY_CONFIG"
_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | str | None = None) -> SupplyConfig:
    """The public configuration entrypoint.

    Resolution order: explicit ``path``, then the ``SUPPLY_CONFIG``
    environment variable, then the packaged ``sets/default.yaml``.

    Raises:
        FileNotFoundError: the resolved file does not exist.
        ValueError / KeyError: the file does not parse.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or _DEFAULT_CONFIG_PATH
    config_path = Path(path)
    config = load_config(config_path)
    logger.info(
        "supply_config_loaded",
        extra={
            "config_path": str(config_path),
            "config_name": config.name,
            "config_version": config.version,
            "checksum": compute_checksum(config),
        },
    )
    return config


__all__ = [
    "ALL_PERMISSIONS",
    "CONFIG_ENV_VAR",
    "DEFAULT_OPERATION_PERMISSIONS",
    "InventorySeed",
    "RoleDefinition",
    "SupplyConfig",
    "compute_checksum",
    "get_active_config",
    "load_config",
    "parse_config",
]
