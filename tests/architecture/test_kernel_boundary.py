"""
Kernel Boundary & Invariants Contract.

Tests that enforce the kernel's architectural boundaries:

1. lending_kernel/** may NOT import lending_services or lending_config.
   The kernel never depends upward.

2. lending_kernel/domain/** does not import sqlalchemy or the db package.
   dtos.py is the exception: it reads ORM rows through the models.

3. Only LedgerStore.unit_of_work commits.  Kernel services and selectors
   never call commit() or rollback().

4. The kernel invariants declaration is complete and non-empty.

These tests read source code via AST -- they cannot break anything.
"""

import ast
import glob
from pathlib import Path

from lending_kernel.invariants import (
    ALL_LEDGER_INVARIANTS,
    FORBIDDEN_KERNEL_IMPORTS,
    LedgerInvariant,
)

ROOT = Path(__file__).resolve().parents[2]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _python_files(package: str) -> list[Path]:
    """Return all .py files under a package directory of the repo root."""
    return sorted(Path(p) for p in glob.glob(f"{ROOT / package}/**/*.py", recursive=True))


def _parse(filepath: Path) -> ast.Module:
    return ast.parse(filepath.read_text(), filename=str(filepath))


def _extract_imports(filepath: Path) -> list[tuple[int, str]]:
    """Extract (line_number, module_string) for all imports in a file."""
    results: list[tuple[int, str]] = []
    for node in ast.walk(_parse(filepath)):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _matches(module: str, prefix: str) -> bool:
    return module == prefix or module.startswith(f"{prefix}.")


def _relative(filepath: Path) -> str:
    return str(filepath.relative_to(ROOT))


# ---------------------------------------------------------------------------
# Test: Kernel has no upward dependencies
# ---------------------------------------------------------------------------

class TestKernelNoUpwardDependencies:
    """lending_kernel/** must not import lending_services or lending_config."""

    def test_forbidden_list_covers_outer_packages(self):
        assert set(FORBIDDEN_KERNEL_IMPORTS) == {"lending_services", "lending_config"}

    def test_kernel_does_not_import_forbidden_packages(self):
        violations: list[str] = []

        files = _python_files("lending_kernel")
        assert files, "lending_kernel sources not found"
        for filepath in files:
            for lineno, module in _extract_imports(filepath):
                for prefix in FORBIDDEN_KERNEL_IMPORTS:
                    if _matches(module, prefix):
                        violations.append(
                            f"  {_relative(filepath)}:{lineno} imports '{module}'"
                        )

        assert not violations, (
            "Kernel boundary violation: lending_kernel/** must not import "
            "upward packages:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# Test: Kernel domain purity
# ---------------------------------------------------------------------------

class TestKernelDomainPurity:
    """lending_kernel/domain/** must not import ORM or DB packages."""

    FORBIDDEN_MODULES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "lending_kernel.db",
    )

    # dtos.py builds its snapshots from ORM rows
    ALLOWED_EXCEPTIONS = {"dtos.py"}

    def test_domain_no_orm_imports(self):
        violations: list[str] = []

        for filepath in _python_files("lending_kernel/domain"):
            if filepath.name in self.ALLOWED_EXCEPTIONS:
                continue
            for lineno, module in _extract_imports(filepath):
                for forbidden in self.FORBIDDEN_MODULES:
                    if _matches(module, forbidden):
                        violations.append(
                            f"  {_relative(filepath)}:{lineno} imports '{module}'"
                        )

        assert not violations, (
            "Domain purity violation: lending_kernel/domain/** must not "
            "import ORM or database modules:\n" + "\n".join(violations)
        )

    def test_domain_does_not_import_models(self):
        violations: list[str] = []
        for filepath in _python_files("lending_kernel/domain"):
            if filepath.name in self.ALLOWED_EXCEPTIONS:
                continue
            for lineno, module in _extract_imports(filepath):
                if _matches(module, "lending_kernel.models"):
                    violations.append(f"  {_relative(filepath)}:{lineno}")
        assert not violations, "\n".join(violations)


# ---------------------------------------------------------------------------
# Test: Only the unit of work ends a transaction
# ---------------------------------------------------------------------------

class TestTransactionOwnership:
    """Services flush; LedgerStore.unit_of_work commits or rolls back."""

    def test_no_commit_outside_unit_of_work(self):
        violations: list[str] = []

        for package in ("lending_kernel/services", "lending_kernel/selectors", "lending_services"):
            for filepath in _python_files(package):
                for node in ast.walk(_parse(filepath)):
                    if (
                        isinstance(node, ast.Call)
                        and isinstance(node.func, ast.Attribute)
                        and node.func.attr in ("commit", "rollback")
                    ):
                        violations.append(
                            f"  {_relative(filepath)}:{node.lineno} calls {node.func.attr}()"
                        )

        assert not violations, (
            "Transaction ownership violation: only LedgerStore.unit_of_work "
            "may commit or roll back:\n" + "\n".join(violations)
        )

    def test_selectors_do_not_write(self):
        violations: list[str] = []

        for filepath in _python_files("lending_kernel/selectors"):
            for node in ast.walk(_parse(filepath)):
                if (
                    isinstance(node, ast.Call)
                    and isinstance(node.func, ast.Attribute)
                    and node.func.attr in ("add", "add_all", "delete", "flush", "with_for_update")
                ):
                    violations.append(
                        f"  {_relative(filepath)}:{node.lineno} calls {node.func.attr}()"
                    )

        assert not violations, (
            "Selector violation: selectors are read-only and take no locks:\n"
            + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# Test: Invariants declaration
# ---------------------------------------------------------------------------

class TestInvariantsDeclaration:
    def test_invariants_non_empty(self):
        assert ALL_LEDGER_INVARIANTS

    def test_all_members_declared(self):
        assert ALL_LEDGER_INVARIANTS == frozenset(LedgerInvariant)

    def test_core_invariants_present(self):
        assert LedgerInvariant.CREDIT_WITHIN_LIMIT in ALL_LEDGER_INVARIANTS
        assert LedgerInvariant.FINANCING_BALANCE in ALL_LEDGER_INVARIANTS
