"""
Tests for live tool detection and version extraction.
"""

import subprocess
from unittest.mock import patch

import pytest

from gearbox.core.models.catalog import Catalog
from gearbox.core.services.tool_install.detection import tool_version
from gearbox.core.services.tool_install.detection.tool_version import (
    UNKNOWN_VERSION,
    detect_tool,
    extract_version,
    probe_args,
    verify_tool,
)


class TestExtractVersion:
    @pytest.mark.parametrize(
        "output, expected",
        [
            ("ripgrep 14.1.0\n-SIMD -AVX", "14.1.0"),
            ("fd 10.2.0", "10.2.0"),
            ("delta 0.18.2", "0.18.2"),
            ("zoxide v0.9.4", "0.9.4"),
            ("jq-1.7", "1.7"),
            ("Version: 2.3.1-beta.2", "2.3.1-beta.2"),
            ("tool build abc", "tool build abc"),
            ("", ""),
            ("\n\n  fzf   \n", "fzf"),
        ],
    )
    def test_patterns(self, output, expected):
        assert extract_version(output) == expected


class TestProbeArgs:
    def test_leading_binary_dropped(self, catalog: Catalog):
        assert probe_args(catalog.get_tool("ripgrep")) == ["--version"]

    def test_bare_args_kept(self, catalog: Catalog):
        tool = catalog.get_tool("fd").model_copy(update={"test_command": "--version --quiet"})
        assert probe_args(tool) == ["--version", "--quiet"]


def _completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestDetectTool:
    def test_not_on_path(self, catalog: Catalog):
        with patch.object(tool_version, "find_binary", return_value=None):
            live = detect_tool(catalog.get_tool("fd"))
        assert not live.found

    def test_found_with_version(self, catalog: Catalog):
        with patch.object(tool_version, "find_binary", return_value="/usr/bin/rg"), patch.object(
            tool_version.subprocess, "run", return_value=_completed(stdout="ripgrep 14.1.0\n")
        ) as run:
            live = detect_tool(catalog.get_tool("ripgrep"))
        assert live.found
        assert live.path == "/usr/bin/rg"
        assert live.version == "14.1.0"
        assert run.call_args.args[0] == ["/usr/bin/rg", "--version"]

    def test_version_on_stderr(self, catalog: Catalog):
        with patch.object(tool_version, "find_binary", return_value="/usr/bin/fd"), patch.object(
            tool_version.subprocess, "run", return_value=_completed(stderr="fd 10.2.0")
        ):
            assert detect_tool(catalog.get_tool("fd")).version == "10.2.0"

    def test_failing_test_command(self, catalog: Catalog):
        with patch.object(tool_version, "find_binary", return_value="/usr/bin/fd"), patch.object(
            tool_version.subprocess, "run", return_value=_completed(returncode=2)
        ):
            live = detect_tool(catalog.get_tool("fd"))
        assert live.found
        assert live.version == UNKNOWN_VERSION

    def test_probe_timeout(self, catalog: Catalog):
        with patch.object(tool_version, "find_binary", return_value="/usr/bin/fd"), patch.object(
            tool_version.subprocess,
            "run",
            side_effect=subprocess.TimeoutExpired(cmd="fd", timeout=10),
        ):
            live = detect_tool(catalog.get_tool("fd"))
        assert live.found
        assert live.version == UNKNOWN_VERSION


class TestVerifyTool:
    def test_missing(self, catalog: Catalog):
        with patch.object(tool_version, "find_binary", return_value=None):
            result = verify_tool(catalog.get_tool("ripgrep"))
        assert not result.ok
        assert "rg not found" in result.error

    def test_pass(self, catalog: Catalog):
        with patch.object(tool_version, "find_binary", return_value="/usr/bin/fd"), patch.object(
            tool_version.subprocess, "run", return_value=_completed(stdout="fd 10.2.0")
        ):
            result = verify_tool(catalog.get_tool("fd"))
        assert result.ok
        assert result.tool == "fd"

    def test_fail(self, catalog: Catalog):
        with patch.object(tool_version, "find_binary", return_value="/usr/bin/fd"), patch.object(
            tool_version.subprocess, "run", return_value=_completed(returncode=1, stderr="bad")
        ):
            result = verify_tool(catalog.get_tool("fd"))
        assert not result.ok
