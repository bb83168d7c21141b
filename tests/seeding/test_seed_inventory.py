"""Tests for scripts/seed_inventory.py."""

import yaml

from scripts.seed_inventory import main, seed_inventory
from supply_config.loader import parse_config
from supply_kernel.db.engine import init_engine_from_url, reset_engine, session_scope
from supply_kernel.services.inventory_ledger import InventoryLedger

CONFIG = {
    "name": "seed_test",
    "inventory": [
        {"id": "LOGBOOK", "name": "Logbooks", "unit": "pc", "physical_qty": 15, "reorder_point": 20},
        {"id": "INK-CART", "name": "Ink Cartridges", "unit": "pc", "physical_qty": 4, "reorder_point": 10},
    ],
}


class TestSeedInventory:

    def test_registers_configured_items(self, session):
        added = seed_inventory(session, parse_config(CONFIG))

        assert added == ["LOGBOOK", "INK-CART"]
        item = InventoryLedger(session).get_item("LOGBOOK")
        assert (item.physical_qty, item.pending_qty, item.reorder_point) == (15, 0, 20)

    def test_existing_items_left_untouched(self, session):
        ledger = InventoryLedger(session)
        ledger.register_item("LOGBOOK", "Logbooks", "pc", physical_qty=3)

        added = seed_inventory(session, parse_config(CONFIG))

        assert added == ["INK-CART"]
        assert ledger.get_item("LOGBOOK").physical_qty == 3

    def test_rerun_adds_nothing(self, session):
        config = parse_config(CONFIG)
        seed_inventory(session, config)
        assert seed_inventory(session, config) == []


class TestMain:

    def test_seeds_database_file(self, tmp_path, capsys):
        config_path = tmp_path / "supply.yaml"
        config_path.write_text(yaml.safe_dump(CONFIG))
        url = f"sqlite:///{tmp_path / 'seeded.db'}"

        assert main(["--config", str(config_path), "--database-url", url]) == 0
        assert "Seeded 2 of 2" in capsys.readouterr().out

        init_engine_from_url(url)
        try:
            with session_scope() as session:
                assert InventoryLedger(session).get_item("INK-CART").physical_qty == 4
        finally:
            reset_engine()

        # Second run finds everything in place.
        assert main(["--config", str(config_path), "--database-url", url]) == 0
        assert "Seeded 0 of 2" in capsys.readouterr().out
