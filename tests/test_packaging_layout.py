"""Packaging layout regression tests."""

from __future__ import annotations

import tomllib
from pathlib import Path

import pytest


@pytest.fixture(scope="module")
def pyproject() -> dict:
    """Load pyproject.toml from the repository root."""
    pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
    with pyproject_path.open("rb") as handle:
        return tomllib.load(handle)


def test_packages_install_from_src_only(pyproject) -> None:
    """Ensure setuptools installs packages from src/ only."""
    setuptools = pyproject["tool"]["setuptools"]
    assert setuptools["package-dir"] == {"": "src"}
    assert setuptools["packages"]["find"]["where"] == ["src"]


def test_schema_and_templates_ship_as_package_data(pyproject) -> None:
    """Ship the config schema and summary template with the package."""
    package_data = pyproject["tool"]["setuptools"]["package-data"]
    assert package_data["dane_check.resources.schema"] == ["*.json"]
    assert package_data["dane_check.resources.templates"] == ["*.j2"]


def test_console_script_points_at_cli(pyproject) -> None:
    """Expose the CLI as the dane-check console script."""
    assert pyproject["project"]["scripts"] == {"dane-check": "dane_check.cli:main"}
