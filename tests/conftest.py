"""
Pytest fixtures for the supply requisition test suite.

Provides:
- A fresh database per test (in-memory SQLite unless DATABASE_URL is set)
- Kernel services bound to one session and a deterministic clock
- A WorkflowGateway wired to a role-based authorizer
- Structured log capture

Environment Variables:
- DATABASE_URL: SQLAlchemy URL of the test database.  Defaults to an
  in-memory SQLite database; a PostgreSQL URL runs the suite against it.
"""

import json
import logging
import os
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session, sessionmaker

from supply_config.schema import RoleDefinition, SupplyConfig
from supply_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from supply_kernel.domain.clock import DeterministicClock
from supply_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from supply_kernel.services.inventory_ledger import InventoryLedger
from supply_kernel.services.request_store import SqlRequestStore
from supply_kernel.services.requisition_workflow import RequisitionWorkflow
from supply_kernel.services.sequence_service import SequenceService
from supply_services.authorizer import RoleBasedAuthorizer
from supply_services.workflow_gateway import WorkflowGateway

DEFAULT_TEST_DATABASE_URL = "sqlite://"

# Actors used throughout the suite
REQUESTER = "juan.delacruz"
OTHER_REQUESTER = "maria.santos"
SUPPLY_OFFICER = "supply.aurora"
APPROVER = "chief.statistician"
ADMIN = "admin"


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_TEST_DATABASE_URL)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture supply_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, workflow):
            workflow.submit(...)
            logs = captured_logs()
            assert any(r["message"] == "request_submitted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("supply_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """A freshly created schema for each test."""
    reset_engine()
    eng = init_engine_from_url(get_database_url())
    create_tables()
    yield eng
    drop_tables()
    reset_engine()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """One session for kernel-level tests; rolled back afterwards."""
    s = session_factory()
    yield s
    s.rollback()
    s.close()


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


# =============================================================================
# Kernel service fixtures
# =============================================================================


@pytest.fixture
def ledger(session, deterministic_clock) -> InventoryLedger:
    return InventoryLedger(session, deterministic_clock)


@pytest.fixture
def store(session) -> SqlRequestStore:
    return SqlRequestStore(session)


@pytest.fixture
def sequence(session) -> SequenceService:
    return SequenceService(session)


@pytest.fixture
def workflow(ledger, store, sequence, deterministic_clock) -> RequisitionWorkflow:
    return RequisitionWorkflow(
        ledger=ledger,
        store=store,
        sequence=sequence,
        clock=deterministic_clock,
    )


@pytest.fixture
def stocked_ledger(ledger) -> InventoryLedger:
    """
    Ledger holding the office's everyday items.

    SECPA-FORMS starts with 1500 physical and 200 already held by an
    earlier request, so 1300 are available.
    """
    ledger.register_item("SECPA-FORMS", "SECPA Forms", "pc", physical_qty=1500, reorder_point=1000)
    ledger.reserve("SECPA-FORMS", 200)
    ledger.register_item("ENV-LARGE", "Envelopes (Large)", "pc", physical_qty=820, reorder_point=200)
    ledger.register_item("LOGBOOK", "Logbooks", "pc", physical_qty=15, reorder_point=20)
    ledger.register_item("INK-CART", "Ink Cartridges", "pc", physical_qty=4, reorder_point=10)
    return ledger


# =============================================================================
# Gateway fixtures
# =============================================================================


@pytest.fixture
def supply_config() -> SupplyConfig:
    roles = (
        RoleDefinition("super_admin", frozenset({"all"})),
        RoleDefinition("staff", frozenset({"supply.view", "supply.request"})),
        RoleDefinition(
            "inventory_lead",
            frozenset({"supply.view", "supply.request", "supply.inventory", "supply.approve"}),
        ),
        RoleDefinition("approver", frozenset({"supply.view", "supply.approve"})),
    )
    return SupplyConfig(
        name="test",
        database_url=get_database_url(),
        roles=roles,
        actor_roles={
            REQUESTER: ("staff",),
            OTHER_REQUESTER: ("staff",),
            SUPPLY_OFFICER: ("inventory_lead",),
            APPROVER: ("approver",),
            ADMIN: ("super_admin",),
        },
    )


@pytest.fixture
def authorizer(supply_config) -> RoleBasedAuthorizer:
    return RoleBasedAuthorizer.from_config(supply_config)


@pytest.fixture
def seeded_inventory(session_factory, deterministic_clock) -> None:
    """Committed copy of ``stocked_ledger`` for gateway tests."""
    with session_scope(session_factory) as s:
        ledger = InventoryLedger(s, deterministic_clock)
        ledger.register_item("SECPA-FORMS", "SECPA Forms", "pc", physical_qty=1500, reorder_point=1000)
        ledger.reserve("SECPA-FORMS", 200)
        ledger.register_item("ENV-LARGE", "Envelopes (Large)", "pc", physical_qty=820, reorder_point=200)
        ledger.register_item("LOGBOOK", "Logbooks", "pc", physical_qty=15, reorder_point=20)
        ledger.register_item("INK-CART", "Ink Cartridges", "pc", physical_qty=4, reorder_point=10)


@pytest.fixture
def gateway(session_factory, authorizer, supply_config, deterministic_clock, seeded_inventory) -> WorkflowGateway:
    return WorkflowGateway(
        session_factory,
        authorizer,
        config=supply_config,
        clock=deterministic_clock,
    )
