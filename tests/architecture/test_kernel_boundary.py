"""
Kernel Boundary & Invariants Contract.

Tests that enforce the kernel's architectural boundaries:

1. supply_kernel/** may NOT import supply_services or supply_config.
   The kernel never depends upward.

2. supply_kernel/domain/** performs no I/O: it may not import the
   database layer, ORM models or services.

3. Stock counters are only written by the InventoryLedger: no module
   outside it issues an UPDATE against InventoryItemModel.

4. The kernel invariants declaration is complete and non-empty.

5. supply_kernel.db exports only names that exist, with no alias of
   uuid.UUID next to the UUIDString column type.

These tests read source code via AST -- they cannot break anything.
"""

import ast
import glob
from pathlib import Path

import supply_kernel.db
import supply_kernel.db.base
from supply_kernel.invariants import (
    ALL_KERNEL_INVARIANTS,
    FORBIDDEN_KERNEL_IMPORTS,
    KernelInvariant,
)

ROOT = Path(__file__).resolve().parents[2]

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _python_files(package: str) -> list[str]:
    """Return all .py files under a top-level package."""
    return sorted(glob.glob(str(ROOT / package / "**" / "*.py"), recursive=True))


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    """Extract (line_number, module_string) for all imports in a file."""
    tree = ast.parse(Path(filepath).read_text(), filename=filepath)

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _violations(files: list[str], prefixes: tuple[str, ...]) -> list[str]:
    found: list[str] = []
    for filepath in files:
        for lineno, module in _extract_imports(filepath):
            for prefix in prefixes:
                if module == prefix or module.startswith(f"{prefix}."):
                    found.append(f"  {Path(filepath).relative_to(ROOT)}:{lineno} imports '{module}'")
    return found


# ---------------------------------------------------------------------------
# Test: Kernel has no upward dependencies
# ---------------------------------------------------------------------------


class TestKernelNoUpwardDependencies:
    """supply_kernel/** must not import supply_services or supply_config."""

    def test_kernel_files_found(self):
        assert len(_python_files("supply_kernel")) > 10

    def test_kernel_does_not_import_forbidden_packages(self):
        violations = _violations(_python_files("supply_kernel"), FORBIDDEN_KERNEL_IMPORTS)

        assert not violations, (
            "Kernel boundary violation -- supply_kernel/** must not import "
            "upward packages:\n" + "\n".join(violations)
        )

    def test_config_does_not_import_services(self):
        violations = _violations(_python_files("supply_config"), ("supply_services",))
        assert not violations, "\n".join(violations)


# ---------------------------------------------------------------------------
# Test: Domain purity
# ---------------------------------------------------------------------------


class TestDomainPurity:
    """supply_kernel/domain/** is pure: no DB, ORM or service imports."""

    FORBIDDEN = (
        "sqlalchemy",
        "supply_kernel.db",
        "supply_kernel.models",
        "supply_kernel.services",
        "supply_kernel.selectors",
    )

    def test_domain_has_no_io_imports(self):
        files = _python_files("supply_kernel/domain")
        violations = _violations(files, self.FORBIDDEN)
        assert not violations, "Domain purity violation:\n" + "\n".join(violations)


# ---------------------------------------------------------------------------
# Test: Ledger owns the stock counters
# ---------------------------------------------------------------------------


class TestLedgerOwnsCounters:
    """Only InventoryLedger issues UPDATEs against inventory items."""

    ALLOWED = "supply_kernel/services/inventory_ledger.py"

    def _updates_inventory(self, filepath: str) -> bool:
        tree = ast.parse(Path(filepath).read_text(), filename=filepath)
        for node in ast.walk(tree):
            if (
                isinstance(node, ast.Call)
                and isinstance(node.func, ast.Name)
                and node.func.id == "update"
                and node.args
                and isinstance(node.args[0], ast.Name)
                and node.args[0].id == "InventoryItemModel"
            ):
                return True
        return False

    def test_no_counter_writes_outside_ledger(self):
        offenders = [
            str(Path(path).relative_to(ROOT))
            for package in ("supply_kernel", "supply_services", "supply_config", "scripts")
            for path in _python_files(package)
            if self._updates_inventory(path)
        ]
        assert offenders == [self.ALLOWED]


# ---------------------------------------------------------------------------
# Test: Invariants declaration
# ---------------------------------------------------------------------------


class TestInvariantsDeclaration:

    def test_invariants_declared(self):
        assert ALL_KERNEL_INVARIANTS == frozenset(KernelInvariant)
        assert {
            KernelInvariant.AVAILABILITY,
            KernelInvariant.CONSERVATION,
            KernelInvariant.QUANTITY_FREEZE,
            KernelInvariant.LINEAR_PROGRESSION,
            KernelInvariant.IDEMPOTENT_TRANSITION,
        } <= ALL_KERNEL_INVARIANTS

    def test_forbidden_imports_declared(self):
        assert set(FORBIDDEN_KERNEL_IMPORTS) == {"supply_services", "supply_config"}


# ---------------------------------------------------------------------------
# Test: db package exports
# ---------------------------------------------------------------------------


class TestDbPackageExports:
    """supply_kernel.db exports only the persistence building blocks in use."""

    def test_exports_resolve(self):
        assert all(hasattr(supply_kernel.db, name) for name in supply_kernel.db.__all__)

    def test_no_uuid_alias(self):
        # Column types go through UUIDString; the bare uuid.UUID is not re-exported.
        assert "UUID" not in supply_kernel.db.__all__
        assert not hasattr(supply_kernel.db.base, "UUID")
