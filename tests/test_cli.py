"""
Tests for CLI commands — install, status, list, uninstall, manifest.
"""

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from gearbox.core.models.manifest import InstallationRecord, Manifest
from gearbox.core.persistence.manifest_store import ManifestStore
from gearbox.core.services.tool_install.detection import tool_version
from gearbox.main import cli


@pytest.fixture
def home(tmp_path: Path) -> Path:
    return tmp_path / "home"


@pytest.fixture
def invoke(catalog_file: Path, home: Path):
    """Run the CLI against the test catalog and a temporary home."""
    runner = CliRunner()

    def _invoke(*args: str, input: str | None = None):
        return runner.invoke(
            cli,
            ["--catalog", str(catalog_file), "--home", str(home), *args],
            input=input,
        )

    return _invoke


@pytest.fixture
def nothing_on_path():
    with patch.object(tool_version, "find_binary", return_value=None):
        yield


@pytest.fixture
def installed(home: Path, tmp_path: Path) -> ManifestStore:
    store = ManifestStore(home / "manifest.json")
    m = Manifest()
    for name, deps in (("fd", []), ("uses-fd", ["fd"]), ("ripgrep", [])):
        binary = tmp_path / "bin" / name
        binary.parent.mkdir(exist_ok=True)
        binary.write_text("#!/bin/sh\n")
        m.add_installation(
            name,
            InstallationRecord(version="1.0.0", binary_paths=[str(binary)], dependencies=deps),
        )
    store.save(m)
    return store


class TestCLIGlobal:
    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Gearbox" in result.output
        for command in ("install", "uninstall", "uninstall-plan", "status", "list", "show", "doctor"):
            assert command in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_missing_catalog(self, tmp_path: Path):
        result = CliRunner().invoke(cli, ["--catalog", str(tmp_path / "nope.json"), "list"])
        assert result.exit_code == 1
        assert "Catalog file not found" in result.output


class TestList:
    def test_tools(self, invoke):
        result = invoke("list")
        assert result.exit_code == 0
        assert "Core Tools" in result.output
        assert "ripgrep" in result.output

    def test_category(self, invoke):
        result = invoke("list", "--category", "development")
        assert "delta" in result.output
        assert "ripgrep" not in result.output

    def test_bundles(self, invoke):
        result = invoke("list", "--bundles")
        assert result.exit_code == 0
        assert "developer" in result.output
        assert "(3 tools)" in result.output

    def test_json(self, invoke):
        result = invoke("-q", "list", "--json")
        data = json.loads(result.output)
        assert [t["name"] for t in data["core"]] == ["fd", "ripgrep", "uses-fd"]


class TestInstall:
    def test_mock_install(self, invoke, home: Path):
        result = invoke("install", "--mock", "-j", "2", "ripgrep", "delta")
        assert result.exit_code == 0, result.output
        assert "Result: 2/2 installed" in result.output
        assert (home / "audit.ndjson").is_file()
        # mock builds are not recorded as installations
        assert not (home / "manifest.json").exists()

    def test_mock_install_json(self, invoke):
        result = invoke("-q", "install", "--mock", "--json", "uses-fd")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["order"] == ["fd", "uses-fd"]
        assert data["succeeded"] == ["fd", "uses-fd"]

    def test_dry_run_prints_script_commands(self, invoke, catalog_file: Path):
        result = invoke("install", "--dry-run", "--maximum", "uses-fd")
        assert result.exit_code == 0
        scripts = catalog_file.resolve().parent.parent / "scripts"
        assert f"$ bash {scripts / 'install-fd.sh'} -o --skip-deps" in result.output
        assert "Dependencies: fd" in result.output

    def test_failed_build_exits_nonzero(self, invoke):
        result = invoke("install", "--skip-common-deps", "fd")
        assert result.exit_code == 1
        assert "installation script not found" in result.output

    def test_unknown_tool(self, invoke):
        result = invoke("install", "--mock", "ghost")
        assert result.exit_code == 1
        assert "Unknown tool: ghost" in result.output


class TestStatus:
    def test_status(self, invoke, installed, nothing_on_path):
        result = invoke("status")
        assert result.exit_code == 0
        assert "3/5 installed" in result.output
        assert "managed" in result.output

    def test_status_json(self, invoke, installed, nothing_on_path):
        result = invoke("-q", "status", "--json", "fd")
        data = json.loads(result.output)
        fd = data["tools"]["fd"]
        assert fd["source"] == "gearbox-managed"
        assert fd["needs_sync"] is True

    def test_sync(self, invoke, home: Path):
        def found_rg(name):
            return "/usr/bin/rg" if name == "rg" else None

        with patch.object(tool_version, "find_binary", side_effect=found_rg), patch.object(
            tool_version, "_run_test_command"
        ) as run:
            run.return_value.returncode = 0
            run.return_value.stdout = "ripgrep 14.1.0"
            run.return_value.stderr = ""
            result = invoke("status", "--sync")

        assert result.exit_code == 0
        assert "Synced 1 pre-existing tools: ripgrep" in result.output
        manifest = ManifestStore(home / "manifest.json").load()
        assert manifest.installations["ripgrep"].method == "pre_existing"

    def test_show(self, invoke, installed, nothing_on_path):
        result = invoke("show", "uses-fd")
        assert result.exit_code == 0
        assert "Depends on:   fd, build-essential" in result.output
        assert "Installed 1.0.0" in result.output


class TestUninstall:
    def test_plan_blocked(self, invoke, installed):
        result = invoke("uninstall-plan", "fd")
        assert result.exit_code == 1
        assert "required by uses-fd" in result.output

    def test_plan_json(self, invoke, installed):
        result = invoke("-q", "uninstall-plan", "--json", "--cascade", "uses-fd")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [a["target"] for a in data["to_remove"]] == ["uses-fd", "fd"]
        assert data["summary"]["will_remove"] == 2

    def test_plan_describes_removal(self, invoke, installed):
        result = invoke("uninstall-plan", "ripgrep")
        assert result.exit_code == 0
        assert "Remove binaries and build artifacts" in result.output

    def test_uninstall(self, invoke, installed: ManifestStore, tmp_path: Path):
        result = invoke("uninstall", "--yes", "ripgrep")
        assert result.exit_code == 0, result.output
        assert "Removed: ripgrep" in result.output
        assert not (tmp_path / "bin" / "ripgrep").exists()
        assert not installed.load().is_installed("ripgrep")
        assert len(installed.list_backups()) == 1

    def test_uninstall_confirm_abort(self, invoke, installed: ManifestStore):
        result = invoke("uninstall", "ripgrep", input="n\n")
        assert result.exit_code == 1
        assert installed.load().is_installed("ripgrep")

    def test_uninstall_blocked(self, invoke, installed: ManifestStore, tmp_path: Path):
        result = invoke("uninstall", "--yes", "fd")
        assert result.exit_code == 1
        assert (tmp_path / "bin" / "fd").exists()

    def test_uninstall_dry_run(self, invoke, installed: ManifestStore):
        result = invoke("uninstall", "--dry-run", "--no-backup", "ripgrep")
        assert result.exit_code == 0
        assert "Would remove: ripgrep" in result.output
        assert installed.load().is_installed("ripgrep")


class TestManifestCommands:
    def test_backup_and_restore(self, invoke, installed: ManifestStore):
        result = invoke("manifest", "backup", "--suffix", "manual")
        assert result.exit_code == 0
        [name] = installed.list_backups()
        assert name.endswith("-manual.json")

        invoke("uninstall", "--yes", "--no-backup", "ripgrep")
        assert not installed.load().is_installed("ripgrep")

        result = invoke("manifest", "restore", "--yes", name)
        assert result.exit_code == 0
        assert installed.load().is_installed("ripgrep")
        assert len(installed.list_backups()) == 2

        listing = invoke("manifest", "backups")
        assert name in listing.output

    def test_restore_missing(self, invoke, installed):
        result = invoke("manifest", "restore", "--yes", "manifest-nope.json")
        assert result.exit_code == 1
        assert "Backup file does not exist" in result.output

    def test_restore_outside_backups_dir_refused(self, invoke, installed: ManifestStore, home: Path):
        (home / "other.json").write_text(Manifest().model_dump_json())
        result = invoke("manifest", "restore", "--yes", "../other.json")
        assert result.exit_code == 1
        assert "Backup file does not exist" in result.output
        assert "Traceback" not in result.output
        assert installed.load().is_installed("ripgrep")

    def test_backup_suffix_with_separator_refused(self, invoke, installed: ManifestStore):
        result = invoke("manifest", "backup", "--suffix", "a/b")
        assert result.exit_code == 1
        assert "Invalid backup suffix" in result.output
        assert installed.list_backups() == []

    def test_show(self, invoke, installed):
        result = invoke("manifest", "show")
        assert result.exit_code == 0
        assert "Installations: 3" in result.output

    def test_corrupt_manifest_reported(self, invoke, home: Path):
        home.mkdir(parents=True)
        (home / "manifest.json").write_text("{{{")
        result = invoke("manifest", "show")
        assert result.exit_code == 1
        assert "is corrupt" in result.output


class TestDoctorAndHistory:
    def test_doctor_missing_tool(self, invoke, nothing_on_path):
        result = invoke("doctor", "ripgrep")
        assert result.exit_code == 1
        assert "rg not found on PATH" in result.output

    def test_doctor_nothing_found(self, invoke, nothing_on_path):
        result = invoke("doctor")
        assert result.exit_code == 0
        assert "Checked 0 tools" in result.output

    def test_history(self, invoke):
        invoke("install", "--mock", "fd")
        result = invoke("history")
        assert result.exit_code == 0
        assert "install" in result.output
        assert "ok" in result.output
