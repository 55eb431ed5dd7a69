"""
L4 Execution — Script backend.

Runs ``install-<tool>.sh`` scripts, the per-tool builders that fetch,
compile and install each tool. The SINGLE PLACE where build processes
are spawned. Output is forwarded live, one line at a time, prefixed
with the tool name so parallel builds stay readable.
"""

from __future__ import annotations

import collections
import logging
import os
import signal
import subprocess
import sys
import threading
import time
from collections.abc import Callable
from pathlib import Path

from gearbox.core.models.catalog import ToolConfig
from gearbox.core.models.options import InstallationOptions
from gearbox.core.services.tool_install.execution.backend import (
    SHARED_STEP,
    BuildBackend,
    BuildContext,
    BuildResult,
)

logger = logging.getLogger(__name__)

# Lines of output kept for the failure report
OUTPUT_TAIL_LINES = 40
# Seconds to wait after SIGTERM before SIGKILL
TERMINATE_GRACE = 5

SCRIPT_CATEGORIES = ("core", "development", "system", "text", "media", "ui")
COMMON_DEPS_SCRIPT = "install-common-deps.sh"


def _default_sink(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()


class ScriptBackend(BuildBackend):
    """Build tools by running their installation scripts under bash.

    Args:
        scripts_dir: Root of the installation scripts tree.
        build_dir: Working directory for builds (``~/tools/build``).
        sink: Receives every output line; defaults to stdout.
        shell: Interpreter used to run the scripts.
    """

    def __init__(
        self,
        scripts_dir: Path,
        build_dir: Path,
        sink: Callable[[str], None] | None = None,
        shell: str = "bash",
    ):
        self._scripts_dir = scripts_dir
        self._build_dir = build_dir
        self._sink = sink or _default_sink
        self._shell = shell
        self._lock = threading.Lock()
        self._running: dict[str, subprocess.Popen[str]] = {}
        self._cancelled = False

    @property
    def name(self) -> str:
        return "script"

    def is_available(self) -> bool:
        return self._scripts_dir.is_dir()

    # ── Script lookup ───────────────────────────────────────────

    def script_path(self, tool_name: str) -> Path:
        """Find a tool's script, searching category directories first."""
        script = f"install-{tool_name}.sh"
        for category in SCRIPT_CATEGORIES:
            candidate = self._scripts_dir / "installation" / "categories" / category / script
            if candidate.is_file():
                return candidate
        return self._scripts_dir / script

    def common_deps_path(self) -> Path:
        candidate = self._scripts_dir / "installation" / "common" / COMMON_DEPS_SCRIPT
        if candidate.is_file():
            return candidate
        return self._scripts_dir / COMMON_DEPS_SCRIPT

    # ── Invocation ──────────────────────────────────────────────

    def command(
        self,
        context: BuildContext,
        tool: ToolConfig,
        options: InstallationOptions,
    ) -> list[str]:
        cmd = [self._shell, str(self.script_path(tool.name))]
        if context.build_flag:
            cmd.append(context.build_flag)
        if context.skip_deps:
            cmd.append("--skip-deps")
        if options.run_tests:
            cmd.append("--run-tests")
        if options.force:
            cmd.append("--force")
        if options.no_cache:
            cmd.append("--no-cache")
        if options.skip_shell_integration and tool.shell_integration:
            cmd.append("--no-shell")
        return cmd

    def build(
        self,
        context: BuildContext,
        tool: ToolConfig,
        options: InstallationOptions,
    ) -> BuildResult:
        cmd = self.command(context, tool, options)
        script = Path(cmd[1])
        if not script.is_file():
            return BuildResult.failure(
                tool=tool.name,
                backend=self.name,
                error=f"installation script not found: {script}",
                command=cmd,
            )
        return self._run(tool.name, cmd, context)

    def prepare(
        self,
        context: BuildContext,
        packages: list[str],
        options: InstallationOptions,
    ) -> BuildResult:
        script = self.common_deps_path()
        if not script.is_file():
            return BuildResult.failure(
                tool=SHARED_STEP,
                backend=self.name,
                error=f"common dependencies script not found: {script}",
            )
        return self._run(SHARED_STEP, [self._shell, str(script), *packages], context)

    def _run(self, label: str, cmd: list[str], context: BuildContext) -> BuildResult:
        if context.cancelled or self._cancelled:
            return BuildResult.skip(tool=label, backend=self.name, reason="cancelled", command=cmd)

        try:
            self._build_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return BuildResult.failure(
                tool=label,
                backend=self.name,
                error=f"failed to create build directory: {e}",
                command=cmd,
            )

        logger.info("Running %s", " ".join(cmd))
        tail: collections.deque[str] = collections.deque(maxlen=OUTPUT_TAIL_LINES)
        start = time.monotonic()

        try:
            proc = subprocess.Popen(
                cmd,
                cwd=self._build_dir,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,
                start_new_session=True,
            )
        except OSError as e:
            return BuildResult.failure(tool=label, backend=self.name, error=str(e), command=cmd)

        # cancel() may have run between the check above and the spawn;
        # it only sees processes registered here.
        with self._lock:
            self._running[label] = proc
            if self._cancelled:
                logger.warning("Terminating build of %s (pid %d)", label, proc.pid)
                _signal_group(proc, signal.SIGTERM)

        try:
            assert proc.stdout is not None
            for line in proc.stdout:
                line = line.rstrip("\n")
                tail.append(line)
                self._sink(f"[{label}] {line}")
            returncode = proc.wait()
        finally:
            with self._lock:
                self._running.pop(label, None)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        output = "\n".join(tail)

        if returncode == 0:
            return BuildResult.success(
                tool=label,
                backend=self.name,
                output=output,
                command=cmd,
                returncode=0,
                duration_ms=elapsed_ms,
            )

        if context.cancelled or self._cancelled:
            error = "cancelled"
        else:
            error = f"Command failed (exit {returncode})"
        return BuildResult.failure(
            tool=label,
            backend=self.name,
            error=error,
            output=output,
            command=cmd,
            returncode=returncode,
            duration_ms=elapsed_ms,
        )

    # ── Cancellation ────────────────────────────────────────────

    def cancel(self) -> None:
        """Terminate every in-flight build process group."""
        with self._lock:
            self._cancelled = True
            running = list(self._running.items())

        for label, proc in running:
            logger.warning("Terminating build of %s (pid %d)", label, proc.pid)
            _signal_group(proc, signal.SIGTERM)

        for label, proc in running:
            try:
                proc.wait(timeout=TERMINATE_GRACE)
            except subprocess.TimeoutExpired:
                logger.warning("Killing build of %s (pid %d)", label, proc.pid)
                _signal_group(proc, signal.SIGKILL)


def _signal_group(proc: subprocess.Popen[str], sig: int) -> None:
    try:
        os.killpg(proc.pid, sig)
    except ProcessLookupError:
        pass
    except OSError as e:
        logger.debug("Cannot signal process group %d: %s", proc.pid, e)
        proc.send_signal(sig)
