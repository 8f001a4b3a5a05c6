"""
Kernel boundary tests.

1. dispatch_kernel/** may NOT import dispatch_services or dispatch_config.
   The kernel never depends upward.

2. dispatch_kernel/domain/** stays free of ORM and database imports
   (TYPE_CHECKING-only imports are allowed).

3. Only the transaction coordinator commits.

These tests read source code via AST.
"""

import ast
from pathlib import Path

from dispatch_kernel.invariants import ALL_KERNEL_INVARIANTS, FORBIDDEN_KERNEL_IMPORTS

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _runtime_imports(path: Path) -> list[tuple[int, str]]:
    """(line, module) for every import outside ``if TYPE_CHECKING:`` blocks."""
    tree = ast.parse(path.read_text(), filename=str(path))
    skipped: set[int] = set()
    for node in ast.walk(tree):
        if (
            isinstance(node, ast.If)
            and isinstance(node.test, ast.Name)
            and node.test.id == "TYPE_CHECKING"
        ):
            for child in node.body:
                skipped.update(id(n) for n in ast.walk(child))

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if id(node) in skipped:
            continue
        if isinstance(node, ast.Import):
            results.extend((node.lineno, alias.name) for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _receiver_name(node: ast.expr) -> str | None:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    return None


def _matches(module: str, prefixes) -> bool:
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


class TestKernelNoUpwardDependencies:
    def test_kernel_does_not_import_forbidden_packages(self):
        violations = [
            f"  {path.relative_to(ROOT)}:{lineno} imports '{module}'"
            for path in _python_files("dispatch_kernel")
            for lineno, module in _runtime_imports(path)
            if _matches(module, FORBIDDEN_KERNEL_IMPORTS)
        ]
        assert not violations, (
            "Kernel boundary violation, dispatch_kernel/** must not import "
            "upward packages:\n" + "\n".join(violations)
        )


class TestKernelDomainPurity:
    FORBIDDEN_MODULES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "dispatch_kernel.db",
        "dispatch_kernel.models",
    )

    def test_domain_no_orm_imports(self):
        violations = [
            f"  {path.relative_to(ROOT)}:{lineno} imports '{module}'"
            for path in _python_files("dispatch_kernel/domain")
            for lineno, module in _runtime_imports(path)
            if _matches(module, self.FORBIDDEN_MODULES)
        ]
        assert not violations, (
            "Domain purity violation, dispatch_kernel/domain/** must not "
            "import ORM or database modules:\n" + "\n".join(violations)
        )


class TestCommitAuthority:
    def test_kernel_never_commits(self):
        violations = []
        for path in _python_files("dispatch_kernel"):
            tree = ast.parse(path.read_text(), filename=str(path))
            for node in ast.walk(tree):
                if (
                    isinstance(node, ast.Call)
                    and isinstance(node.func, ast.Attribute)
                    and node.func.attr == "commit"
                    and _receiver_name(node.func.value) == "session"
                ):
                    violations.append(f"  {path.relative_to(ROOT)}:{node.lineno}")
        assert not violations, (
            "Kernel code must only flush; commits belong to the coordinator:\n"
            + "\n".join(violations)
        )


class TestInvariantDeclaration:
    def test_invariants_declared(self):
        values = [invariant.value for invariant in ALL_KERNEL_INVARIANTS]
        assert len(values) >= 7
        assert len(set(values)) == len(values)
        assert "dispatch_config" in FORBIDDEN_KERNEL_IMPORTS
