"""Docstring coverage tests for the package sources."""

from __future__ import annotations

import ast
from pathlib import Path

import pytest

SOURCE_ROOT = Path(__file__).resolve().parents[1] / "src" / "dane_check"
SOURCE_FILES = sorted(SOURCE_ROOT.rglob("*.py"))


def _undocumented(tree: ast.Module) -> list[str]:
    names = [] if ast.get_docstring(tree) else ["<module>"]
    for node in ast.walk(tree):
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            if not ast.get_docstring(node):
                names.append(f"{node.lineno}:{node.name}")
    return names


@pytest.mark.parametrize("path", SOURCE_FILES, ids=lambda path: str(path.relative_to(SOURCE_ROOT)))
def test_every_definition_has_a_docstring(path: Path) -> None:
    tree = ast.parse(path.read_text(encoding="utf-8"))

    assert _undocumented(tree) == []
