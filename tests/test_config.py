"""
Tests for configuration — settings resolution and the catalog loader.
"""

import json
from pathlib import Path

import pytest
import yaml

from gearbox.core.config.loader import (
    find_catalog_file,
    load_bundles,
    load_catalog,
    validate_catalog,
)
from gearbox.core.config.settings import GearboxSettings
from gearbox.core.errors import ConfigError
from gearbox.core.models.catalog import Catalog


class TestSettings:
    def test_defaults(self):
        settings = GearboxSettings.from_env(environ={})
        assert settings.home == Path("~/.gearbox").expanduser()
        assert settings.build_dir == Path("~/tools/build").expanduser()
        assert settings.catalog_path is None
        assert settings.log_level == "WARNING"

    def test_environment(self, tmp_path: Path):
        env = {
            "GEARBOX_HOME": str(tmp_path / "state"),
            "GEARBOX_CATALOG": str(tmp_path / "tools.json"),
            "GEARBOX_BUILD_DIR": str(tmp_path / "build"),
            "GEARBOX_LOG_LEVEL": "DEBUG",
        }
        settings = GearboxSettings.from_env(environ=env)
        assert settings.home == tmp_path / "state"
        assert settings.catalog_path == tmp_path / "tools.json"
        assert settings.build_dir == tmp_path / "build"
        assert settings.log_level == "DEBUG"

    def test_overrides_beat_environment(self, tmp_path: Path):
        env = {"GEARBOX_HOME": str(tmp_path / "env")}
        settings = GearboxSettings.from_env(environ=env, home=tmp_path / "flag")
        assert settings.home == tmp_path / "flag"

    def test_none_override_falls_through(self, tmp_path: Path):
        env = {"GEARBOX_HOME": str(tmp_path / "env")}
        settings = GearboxSettings.from_env(environ=env, home=None, log_level=None)
        assert settings.home == tmp_path / "env"
        assert settings.log_level == "WARNING"

    def test_derived_paths(self, tmp_path: Path):
        settings = GearboxSettings(home=tmp_path)
        assert settings.manifest_path == tmp_path / "manifest.json"
        assert settings.backups_dir == tmp_path / "backups"
        assert settings.audit_path == tmp_path / "audit.ndjson"

    def test_scripts_dir_next_to_config(self, catalog_file: Path):
        settings = GearboxSettings()
        assert settings.resolve_scripts_dir(catalog_file) == catalog_file.parent.parent / "scripts"

    def test_explicit_scripts_dir_wins(self, tmp_path: Path, catalog_file: Path):
        settings = GearboxSettings(scripts_dir=tmp_path / "custom")
        assert settings.resolve_scripts_dir(catalog_file) == tmp_path / "custom"


class TestFindCatalog:
    def test_walks_up(self, catalog_file: Path):
        nested = catalog_file.parent.parent / "a" / "b"
        nested.mkdir(parents=True)
        assert find_catalog_file(nested) == catalog_file.resolve()

    def test_home_fallback(self, tmp_path: Path):
        home = tmp_path / "home"
        home.mkdir()
        (home / "tools.json").write_text("{}")
        empty = tmp_path / "empty"
        empty.mkdir()
        found = find_catalog_file(empty, home=home)
        assert found == home / "tools.json"


class TestLoadCatalog:
    def test_load_json(self, catalog_file: Path):
        catalog = load_catalog(catalog_file)
        assert isinstance(catalog, Catalog)
        assert catalog.tool_names[:2] == ["fd", "ripgrep"]
        assert catalog.is_bundle("essential")

    def test_load_yaml(self, tmp_path: Path, catalog_data: dict):
        path = tmp_path / "tools.yml"
        path.write_text(yaml.safe_dump(catalog_data))
        catalog = load_catalog(path)
        assert catalog.has_tool("delta")

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_catalog(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path: Path):
        path = tmp_path / "tools.json"
        path.write_text("{ not: valid: [")
        with pytest.raises(ConfigError):
            load_catalog(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "tools.json"
        path.write_text("[1, 2, 3]")
        with pytest.raises(ConfigError, match="Expected a mapping"):
            load_catalog(path)

    def test_sibling_bundle_file(self, catalog_file: Path, catalog_data: dict):
        bundles = catalog_data.pop("bundles")
        catalog_file.write_text(json.dumps(catalog_data))
        (catalog_file.parent / "bundles.json").write_text(
            json.dumps({"schema_version": "1.0", "bundles": bundles})
        )
        catalog = load_catalog(catalog_file)
        assert [b.name for b in catalog.bundles] == ["essential", "developer"]

    def test_no_bundle_file(self, tmp_path: Path):
        assert load_bundles(tmp_path / "tools.json") == []

    @pytest.mark.parametrize(
        "field, value",
        [
            ("category", "games"),
            ("language", "cobol"),
            ("repository", "not-a-url"),
            ("build_types", {}),
            ("build_types", {"turbo": "-t"}),
            ("test_command", "   "),
            ("name", "x"),
            ("dependencies", ["bad name!"]),
        ],
    )
    def test_invalid_tool_field(self, tmp_path: Path, catalog_data: dict, field, value):
        catalog_data["tools"][0][field] = value
        path = tmp_path / "tools.json"
        path.write_text(json.dumps(catalog_data))
        with pytest.raises(ConfigError, match="Invalid tool catalog"):
            load_catalog(path)

    def test_duplicate_tool_name(self, tmp_path: Path, catalog_data: dict):
        dup = dict(catalog_data["tools"][0], binary_name="fd2")
        catalog_data["tools"].append(dup)
        path = tmp_path / "tools.json"
        path.write_text(json.dumps(catalog_data))
        with pytest.raises(ConfigError, match="duplicate tool name"):
            load_catalog(path)

    def test_no_tools(self, tmp_path: Path, catalog_data: dict):
        catalog_data["tools"] = []
        path = tmp_path / "tools.json"
        path.write_text(json.dumps(catalog_data))
        with pytest.raises(ConfigError):
            load_catalog(path)

    def test_bundle_cycle_rejected(self, tmp_path: Path, catalog_data: dict):
        catalog_data["bundles"][0]["includes_bundles"] = ["developer"]
        path = tmp_path / "tools.json"
        path.write_text(json.dumps(catalog_data))
        with pytest.raises(ConfigError, match="Circular bundle reference"):
            load_catalog(path)


class TestValidateCatalog:
    def test_valid(self, catalog: Catalog):
        assert validate_catalog(catalog) == []

    def test_bad_schema_version(self, catalog: Catalog):
        catalog.schema_version = "one"
        assert any("schema version" in e for e in validate_catalog(catalog))

    def test_unknown_references(self, catalog_data: dict):
        catalog_data["bundles"][0]["tools"].append("ghost")
        catalog_data["bundles"][1]["includes_bundles"].append("missing")
        errors = validate_catalog(Catalog.model_validate(catalog_data))
        assert any("unknown tool 'ghost'" in e for e in errors)
        assert any("unknown bundle 'missing'" in e for e in errors)

    def test_bundle_named_like_tool(self, catalog_data: dict):
        catalog_data["bundles"][0]["name"] = "fd"
        catalog_data["bundles"][1]["includes_bundles"] = ["fd"]
        errors = validate_catalog(Catalog.model_validate(catalog_data))
        assert any("same name as a tool" in e for e in errors)
