import ast
import os
import sys
from pathlib import Path

# Keep in sync with [tool.pytest.ini_options] markers in pyproject.toml
STANDARD_MARKERS = {
    "unit",
    "integration",
    "services",
    "domain",
    "presenters",
}


def _marker_name(decorator: ast.expr) -> str | None:
    """Return 'foo' for @pytest.mark.foo or @pytest.mark.foo(...)."""
    if isinstance(decorator, ast.Call):
        decorator = decorator.func
    if (
        isinstance(decorator, ast.Attribute)
        and isinstance(decorator.value, ast.Attribute)
        and decorator.value.attr == "mark"
    ):
        return decorator.attr
    return None


def _has_module_marker(tree: ast.Module) -> bool:
    for node in tree.body:
        if isinstance(node, ast.Assign):
            for target in node.targets:
                if isinstance(target, ast.Name) and target.id == "pytestmark":
                    return True
    return False


def _has_standard_marker(tree: ast.Module) -> bool:
    for node in tree.body:
        if not isinstance(node, (ast.FunctionDef, ast.ClassDef)):
            continue
        if not (node.name.startswith("Test") or node.name.startswith("test_")):
            continue
        if any(_marker_name(d) in STANDARD_MARKERS for d in node.decorator_list):
            return True
    return False


def audit_markers(test_dir: str) -> list[str]:
    """Scan test files for pytest markers and return files without one."""
    missing_markers = []
    total_files = 0

    for root, _, files in os.walk(test_dir):
        for file in sorted(files):
            if not file.startswith("test_") or not file.endswith(".py"):
                continue

            total_files += 1
            file_path = Path(root) / file

            try:
                tree = ast.parse(file_path.read_text())
            except SyntaxError:
                print(f"Syntax error in {file_path}")
                continue

            if not (_has_module_marker(tree) or _has_standard_marker(tree)):
                missing_markers.append(str(file_path))

    print(f"Scanned {total_files} test files.")
    print(f"Found {len(missing_markers)} files potentially missing standard markers.")
    for f in missing_markers:
        print(f"  - {f}")
    return missing_markers


if __name__ == "__main__":
    test_dir = sys.argv[1] if len(sys.argv) > 1 else "rebalancer/tests"
    sys.exit(1 if audit_markers(test_dir) else 0)
