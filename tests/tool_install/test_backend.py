"""
Tests for the script backend — lookup, invocation and live output.
"""

import shutil
import subprocess
import threading
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from gearbox.core.models.catalog import Catalog
from gearbox.core.models.options import InstallationOptions
from gearbox.core.services.tool_install.execution.backend import BuildContext, BuildResult
from gearbox.core.services.tool_install.execution import script_backend
from gearbox.core.services.tool_install.execution.script_backend import ScriptBackend

needs_bash = pytest.mark.skipif(shutil.which("bash") is None, reason="bash not available")


def _script(path: Path, body: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/usr/bin/env bash\n" + body + "\n")
    path.chmod(0o755)
    return path


@pytest.fixture
def scripts_dir(tmp_path: Path) -> Path:
    d = tmp_path / "scripts"
    d.mkdir()
    return d


@pytest.fixture
def lines() -> list[str]:
    return []


@pytest.fixture
def backend(scripts_dir: Path, tmp_path: Path, lines: list[str]) -> ScriptBackend:
    return ScriptBackend(scripts_dir, tmp_path / "build", sink=lines.append)


class TestScriptLookup:
    def test_category_directory_first(self, backend: ScriptBackend, scripts_dir: Path):
        _script(scripts_dir / "install-fd.sh", "exit 0")
        nested = _script(
            scripts_dir / "installation" / "categories" / "core" / "install-fd.sh", "exit 0"
        )
        assert backend.script_path("fd") == nested

    def test_flat_fallback(self, backend: ScriptBackend, scripts_dir: Path):
        assert backend.script_path("fd") == scripts_dir / "install-fd.sh"

    def test_common_deps(self, backend: ScriptBackend, scripts_dir: Path):
        common = _script(
            scripts_dir / "installation" / "common" / "install-common-deps.sh", "exit 0"
        )
        assert backend.common_deps_path() == common

    def test_available(self, backend: ScriptBackend, tmp_path: Path):
        assert backend.is_available()
        assert not ScriptBackend(tmp_path / "missing", tmp_path).is_available()


class TestCommand:
    def test_flags(self, backend: ScriptBackend, catalog: Catalog, scripts_dir: Path):
        ctx = BuildContext(build_flag="-r", skip_deps=True)
        opts = InstallationOptions(run_tests=True, force=True, no_cache=True)
        cmd = backend.command(ctx, catalog.get_tool("fd"), opts)
        assert cmd == [
            "bash",
            str(scripts_dir / "install-fd.sh"),
            "-r",
            "--skip-deps",
            "--run-tests",
            "--force",
            "--no-cache",
        ]

    def test_no_shell_only_for_shell_tools(self, backend: ScriptBackend, catalog: Catalog):
        ctx = BuildContext(build_flag=None, skip_deps=False)
        opts = InstallationOptions(skip_shell_integration=True)
        assert "--no-shell" in backend.command(ctx, catalog.get_tool("zoxide"), opts)
        assert "--no-shell" not in backend.command(ctx, catalog.get_tool("fd"), opts)
        assert "--skip-deps" not in backend.command(ctx, catalog.get_tool("fd"), opts)


class TestBuild:
    def test_missing_script(self, backend: ScriptBackend, catalog: Catalog):
        result = backend.build(BuildContext(), catalog.get_tool("fd"), InstallationOptions())
        assert result.failed
        assert "installation script not found" in result.error

    @needs_bash
    def test_success_streams_output(
        self, backend: ScriptBackend, catalog: Catalog, scripts_dir: Path, lines: list[str]
    ):
        _script(scripts_dir / "install-fd.sh", 'echo "building with $*"\necho done >&2')
        result = backend.build(
            BuildContext(build_flag="-r"), catalog.get_tool("fd"), InstallationOptions()
        )
        assert result.ok
        assert result.returncode == 0
        assert lines == ["[fd] building with -r --skip-deps", "[fd] done"]

    @needs_bash
    def test_failure_keeps_output_tail(
        self, backend: ScriptBackend, catalog: Catalog, scripts_dir: Path
    ):
        _script(scripts_dir / "install-fd.sh", "echo 'cargo: error'\nexit 3")
        result = backend.build(BuildContext(), catalog.get_tool("fd"), InstallationOptions())
        assert isinstance(result, BuildResult)
        assert result.failed
        assert result.returncode == 3
        assert result.error == "Command failed (exit 3)"
        assert "cargo: error" in result.output

    def test_cancelled_context_skips(self, backend: ScriptBackend, catalog: Catalog, scripts_dir: Path):
        _script(scripts_dir / "install-fd.sh", "exit 0")
        event = threading.Event()
        event.set()
        result = backend.build(
            BuildContext(cancel_event=event), catalog.get_tool("fd"), InstallationOptions()
        )
        assert result.status == "skipped"

    @needs_bash
    def test_prepare_passes_packages(
        self, backend: ScriptBackend, scripts_dir: Path, lines: list[str]
    ):
        _script(
            scripts_dir / "installation" / "common" / "install-common-deps.sh",
            'echo "deps: $*"',
        )
        result = backend.prepare(BuildContext(), ["pkg-config", "cmake"], InstallationOptions())
        assert result.ok
        assert lines == ["[common-deps] deps: pkg-config cmake"]

    def test_prepare_missing_script(self, backend: ScriptBackend):
        result = backend.prepare(BuildContext(), [], InstallationOptions())
        assert result.failed


def _wait_for(predicate, timeout: float = 10.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.02)


@needs_bash
class TestCancel:
    def _build_in_thread(self, backend: ScriptBackend, catalog: Catalog) -> tuple[threading.Thread, list]:
        results: list[BuildResult] = []
        thread = threading.Thread(
            target=lambda: results.append(
                backend.build(BuildContext(), catalog.get_tool("fd"), InstallationOptions())
            )
        )
        thread.start()
        return thread, results

    def test_terminates_running_script(
        self, backend: ScriptBackend, catalog: Catalog, scripts_dir: Path, tmp_path: Path, lines: list[str]
    ):
        marker = tmp_path / "finished"
        _script(scripts_dir / "install-fd.sh", f"echo started\nsleep 30\ntouch {marker}")
        thread, results = self._build_in_thread(backend, catalog)
        _wait_for(lambda: "[fd] started" in lines)

        backend.cancel()
        thread.join(timeout=10)

        assert not thread.is_alive()
        [result] = results
        assert result.failed
        assert result.error == "cancelled"
        assert result.returncode is not None and result.returncode < 0
        assert not marker.exists()

    def test_kills_script_ignoring_sigterm(
        self,
        backend: ScriptBackend,
        catalog: Catalog,
        scripts_dir: Path,
        lines: list[str],
        monkeypatch: pytest.MonkeyPatch,
    ):
        monkeypatch.setattr(script_backend, "TERMINATE_GRACE", 0.3)
        _script(scripts_dir / "install-fd.sh", "trap '' TERM\necho started\nsleep 30")
        thread, results = self._build_in_thread(backend, catalog)
        _wait_for(lambda: "[fd] started" in lines)

        backend.cancel()
        thread.join(timeout=10)

        assert not thread.is_alive()
        [result] = results
        assert result.error == "cancelled"
        assert result.returncode == -9

    def test_cancel_racing_spawn_still_terminates(
        self, backend: ScriptBackend, catalog: Catalog, scripts_dir: Path, tmp_path: Path
    ):
        marker = tmp_path / "finished"
        _script(scripts_dir / "install-fd.sh", f"sleep 1\ntouch {marker}")
        real_popen = subprocess.Popen

        def cancel_then_spawn(*args, **kwargs):
            backend.cancel()
            return real_popen(*args, **kwargs)

        with patch.object(script_backend.subprocess, "Popen", side_effect=cancel_then_spawn):
            result = backend.build(BuildContext(), catalog.get_tool("fd"), InstallationOptions())

        assert result.failed
        assert result.error == "cancelled"
        time.sleep(1.5)
        assert not marker.exists()

    def test_builds_after_cancel_are_skipped(
        self, backend: ScriptBackend, catalog: Catalog, scripts_dir: Path
    ):
        _script(scripts_dir / "install-fd.sh", "exit 0")
        backend.cancel()
        result = backend.build(BuildContext(), catalog.get_tool("fd"), InstallationOptions())
        assert result.status == "skipped"
