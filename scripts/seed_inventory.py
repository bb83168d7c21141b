#!/usr/bin/env python3
"""
Seed a supply database with the inventory declared in a configuration file.

Creates the tables if needed and registers every ``inventory`` entry of
the configuration.  Items that already exist are left untouched, so the
script can be re-run after adding entries.

Usage:
    python3 scripts/seed_inventory.py [--config PATH] [--database-url URL]
"""

import argparse
import logging
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from sqlalchemy.orm import Session  # noqa: E402

from supply_config import SupplyConfig, get_active_config  # noqa: E402
from supply_kernel.db.engine import (  # noqa: E402
    create_tables,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from supply_kernel.logging_config import configure_logging, get_logger  # noqa: E402
from supply_kernel.services.inventory_ledger import InventoryLedger  # noqa: E402

logger = get_logger("scripts.seed_inventory")


def seed_inventory(session: Session, config: SupplyConfig, actor_id: str = "seed") -> list[str]:
    """Register missing configured items; returns the ids that were added."""
    ledger = InventoryLedger(session)
    added: list[str] = []
    for seed in config.inventory:
        if ledger.item_exists(seed.item_id):
            logger.info("inventory_seed_skipped", extra={"item_id": seed.item_id})
            continue
        ledger.register_item(
            seed.item_id,
            seed.name,
            seed.unit,
            physical_qty=seed.physical_qty,
            reorder_point=seed.reorder_point,
            actor_id=actor_id,
        )
        added.append(seed.item_id)
    return added


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Seed supply inventory from configuration")
    parser.add_argument("--config", type=Path, default=None, help="Configuration YAML file")
    parser.add_argument("--database-url", default=None, help="Overrides database.url from the config")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    args = parser.parse_args(argv)

    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    config = get_active_config(args.config)
    url = args.database_url or config.database_url

    init_engine_from_url(url)
    try:
        create_tables()
        with session_scope() as session:
            added = seed_inventory(session, config)
    finally:
        reset_engine()

    print(f"Seeded {len(added)} of {len(config.inventory)} inventory items into {url}")
    for item_id in added:
        print(f"  + {item_id}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
