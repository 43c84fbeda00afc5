"""
Import-boundary checks for ledger_kernel.

The kernel is the base package: nothing under ledger_kernel/ may import
ledger_recurring, ledger_config or scripts, not even inline inside a
function.  Scanning is done via AST, so these tests are read-only.
"""

import ast
import glob
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
UPWARD_PACKAGES = ("ledger_recurring", "ledger_config", "scripts")


def _python_files(package: str) -> list[str]:
    return sorted(glob.glob(str(ROOT / package / "**" / "*.py"), recursive=True))


def _imports(filepath: str) -> list[tuple[int, str]]:
    tree = ast.parse(Path(filepath).read_text(), filename=filepath)
    found: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            found.extend((node.lineno, alias.name) for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module:
            found.append((node.lineno, node.module))
    return found


def _string_constants(filepath: str) -> list[tuple[int, str]]:
    tree = ast.parse(Path(filepath).read_text(), filename=filepath)
    return [
        (node.lineno, node.value)
        for node in ast.walk(tree)
        if isinstance(node, ast.Constant) and isinstance(node.value, str)
    ]


def _is_upward(module: str) -> bool:
    return any(module == p or module.startswith(f"{p}.") for p in UPWARD_PACKAGES)


def test_kernel_files_found():
    assert len(_python_files("ledger_kernel")) > 10


def test_kernel_never_imports_upward():
    violations = [
        f"{Path(path).relative_to(ROOT)}:{line} imports {module}"
        for path in _python_files("ledger_kernel")
        for line, module in _imports(path)
        if _is_upward(module)
    ]
    assert violations == []


def test_kernel_never_loads_upward_packages_by_name():
    """importlib strings count too; only docstrings may mention them."""
    violations = []
    for path in _python_files("ledger_kernel"):
        docstrings = {
            node.body[0].value.lineno
            for node in ast.walk(ast.parse(Path(path).read_text()))
            if isinstance(node, (ast.Module, ast.FunctionDef, ast.ClassDef))
            and node.body
            and isinstance(node.body[0], ast.Expr)
            and isinstance(node.body[0].value, ast.Constant)
        }
        violations.extend(
            f"{Path(path).relative_to(ROOT)}:{line}"
            for line, value in _string_constants(path)
            if line not in docstrings and _is_upward(value)
        )
    assert violations == []
