"""
L3 Detection — Live tool detection and version checking.

Read-only probes: resolves a tool's binary on the search path, runs
its ``test_command`` and parses the output. Nothing here writes to
the manifest.
"""

from __future__ import annotations

import logging
import re
import shlex
import shutil
import subprocess
from dataclasses import dataclass

from gearbox.core.models.catalog import ToolConfig

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 10

# Version reported when the binary exists but its test command fails
UNKNOWN_VERSION = "installed"

# Tried against each output line in order; first match wins
VERSION_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"version\s*:?\s*v?(\d+\.\d+\.\d+(?:-[\w.-]+)?)", re.IGNORECASE),
    re.compile(r"\bv?(\d+\.\d+\.\d+(?:-[\w.-]+)?)"),
    re.compile(r"\bv?(\d+\.\d+)\b"),
)


@dataclass
class LiveDetection:
    """What a live probe found for one tool."""

    found: bool
    path: str = ""
    version: str = ""


@dataclass
class VerificationResult:
    """Outcome of running a tool's test command."""

    tool: str
    ok: bool
    output: str = ""
    error: str = ""


def extract_version(output: str) -> str:
    """Pull a version string out of ``--version`` style output.

    Falls back to the first non-empty line when no pattern matches.
    """
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    for pattern in VERSION_PATTERNS:
        for line in lines:
            match = pattern.search(line)
            if match:
                return match.group(1)
    return lines[0] if lines else ""


def find_binary(binary_name: str) -> str | None:
    """Resolve a binary on the search path."""
    return shutil.which(binary_name)


def probe_args(tool: ToolConfig) -> list[str]:
    """Arguments to pass to the tool's binary for its test command.

    Catalogs write test commands either as bare arguments
    (``--version``) or with the binary in front (``rg --version``);
    a leading binary or tool name is dropped.
    """
    args = shlex.split(tool.test_command)
    if args and args[0] in (tool.binary_name, tool.name):
        args = args[1:]
    return args


def _run_test_command(tool: ToolConfig, binary: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        [binary, *probe_args(tool)],
        capture_output=True,
        text=True,
        timeout=PROBE_TIMEOUT,
        stdin=subprocess.DEVNULL,
    )


def detect_tool(tool: ToolConfig) -> LiveDetection:
    """Probe the live system for a catalog tool.

    Returns:
        ``found=False`` if the binary isn't on the search path.
        Otherwise the resolved path and the parsed version, or
        ``"installed"`` when the test command fails.
    """
    path = find_binary(tool.binary_name)
    if not path:
        return LiveDetection(found=False)

    try:
        result = _run_test_command(tool, path)
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("Version probe for %s failed: %s", tool.name, e)
        return LiveDetection(found=True, path=path, version=UNKNOWN_VERSION)

    if result.returncode != 0:
        return LiveDetection(found=True, path=path, version=UNKNOWN_VERSION)

    # Some tools print their version on stderr
    version = extract_version(result.stdout or result.stderr or "")
    return LiveDetection(found=True, path=path, version=version or UNKNOWN_VERSION)


def verify_tool(tool: ToolConfig) -> VerificationResult:
    """Run a tool's test command and report whether it passed."""
    path = find_binary(tool.binary_name)
    if not path:
        return VerificationResult(
            tool=tool.name,
            ok=False,
            error=f"{tool.binary_name} not found on PATH",
        )

    try:
        result = _run_test_command(tool, path)
    except subprocess.TimeoutExpired:
        return VerificationResult(
            tool=tool.name, ok=False, error=f"Test command timed out ({PROBE_TIMEOUT}s)"
        )
    except (OSError, subprocess.SubprocessError) as e:
        return VerificationResult(tool=tool.name, ok=False, error=str(e))

    output = (result.stdout or result.stderr or "").strip()
    if result.returncode != 0:
        return VerificationResult(
            tool=tool.name,
            ok=False,
            output=output,
            error=f"Test command failed (exit {result.returncode})",
        )
    return VerificationResult(tool=tool.name, ok=True, output=output)
