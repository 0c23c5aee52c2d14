import ast
import re
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]

# Import name -> distribution name where the two differ.
DISTRIBUTIONS = {"apscheduler": "apscheduler", "dotenv": "python-dotenv"}


def _declared_dependencies() -> set:
    text = (ROOT / "pyproject.toml").read_text(encoding="utf-8")
    block = text.split("dependencies = [", 1)[1].split("]", 1)[0]
    return {re.split(r"[<>=!~ ]", name, 1)[0].lower() for name in re.findall(r'"([^"]+)"', block)}


def _third_party_imports() -> set:
    sources = list((ROOT / "screenshot_backup").glob("*.py"))
    sources += [ROOT / "main.py", ROOT / "manage_backups.py", ROOT / "run_scheduler_cli.py"]
    names = set()
    for path in sources:
        tree = ast.parse(path.read_text(encoding="utf-8"))
        for node in ast.walk(tree):
            if isinstance(node, ast.Import):
                names.update(alias.name.split(".")[0] for alias in node.names)
            elif isinstance(node, ast.ImportFrom) and node.level == 0 and node.module:
                names.add(node.module.split(".")[0])
    stdlib = set(sys.stdlib_module_names)
    stdlib.update({"__future__", "screenshot_backup"})
    return {name for name in names if name not in stdlib}


@pytest.mark.skipif(not hasattr(sys, "stdlib_module_names"), reason="needs Python 3.10+")
def test_every_imported_library_is_declared() -> None:
    declared = _declared_dependencies()
    imported = {DISTRIBUTIONS.get(name, name).lower() for name in _third_party_imports()}

    assert "botocore" in imported
    assert imported <= declared, imported - declared
