"""
Shared test fixtures and configuration.
"""

import copy
import json
from pathlib import Path

import pytest

from gearbox.core.config.settings import GearboxSettings
from gearbox.core.models.catalog import Catalog
from gearbox.core.persistence.manifest_store import ManifestStore
from gearbox.core.services.tool_install.execution.mock_backend import MockBackend


def _tool(name, *, binary=None, category="core", language="rust", deps=(), shell=False):
    return {
        "name": name,
        "binary_name": binary or name,
        "description": f"{name} test tool",
        "category": category,
        "repository": f"https://github.com/example/{name}",
        "language": language,
        "build_types": {
            "minimal": "-m",
            "standard": "-r",
            "maximum": "-o",
        },
        "dependencies": list(deps),
        "test_command": f"{binary or name} --version",
        "shell_integration": shell,
    }


CATALOG_DATA = {
    "schema_version": "1.0",
    "default_build_type": "standard",
    "tools": [
        _tool("fd"),
        _tool("ripgrep", binary="rg"),
        _tool("delta", category="development"),
        _tool("uses-fd", deps=["fd", "build-essential"], language="go"),
        _tool("zoxide", category="navigation", shell=True),
    ],
    "categories": {"core": "Core Tools", "development": "Development Tools"},
    "languages": {"rust": {"min_version": "1.88.0", "build_tool": "cargo"}},
    "bundles": [
        {
            "name": "essential",
            "description": "Everyday search tools",
            "tools": ["fd", "ripgrep"],
            "system_packages": ["pkg-config"],
        },
        {
            "name": "developer",
            "description": "Essential plus git tooling",
            "tools": ["delta"],
            "includes_bundles": ["essential"],
        },
    ],
}


@pytest.fixture
def catalog_data() -> dict:
    """A fresh copy of the test catalog as raw data."""
    return copy.deepcopy(CATALOG_DATA)


@pytest.fixture
def catalog(catalog_data: dict) -> Catalog:
    return Catalog.model_validate(catalog_data)


@pytest.fixture
def catalog_file(tmp_path: Path, catalog_data: dict) -> Path:
    """The test catalog written to ``<repo>/config/tools.json``."""
    path = tmp_path / "repo" / "config" / "tools.json"
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps(catalog_data, indent=2))
    return path


@pytest.fixture
def settings(tmp_path: Path) -> GearboxSettings:
    return GearboxSettings(
        home=tmp_path / "home",
        build_dir=tmp_path / "build",
        scripts_dir=tmp_path / "scripts",
    )


@pytest.fixture
def store(settings: GearboxSettings) -> ManifestStore:
    return ManifestStore(settings.manifest_path, settings.backups_dir)


@pytest.fixture
def mock_backend() -> MockBackend:
    return MockBackend()
