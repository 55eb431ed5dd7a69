"""
Mock backend — in-process test double for the build backend.

Used by the test suite and by ``gearbox install --mock`` to exercise
planning and orchestration without running any build script. Builds
succeed by default; failures, delays and a start hook can be
configured per tool. Records every call and the peak number of
builds that were in flight at once.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass

from gearbox.core.models.catalog import ToolConfig
from gearbox.core.models.options import InstallationOptions
from gearbox.core.services.tool_install.execution.backend import (
    SHARED_STEP,
    BuildBackend,
    BuildContext,
    BuildResult,
)


@dataclass
class MockCall:
    """One recorded backend call."""

    tool: str
    context: BuildContext
    options: InstallationOptions
    command: list[str]


class MockBackend(BuildBackend):
    """Configurable build backend that never spawns a process.

    Args:
        delay: Seconds each build takes (interruptible by cancel).
        on_start: Called with the tool name as each build starts.
    """

    def __init__(
        self,
        delay: float = 0.0,
        on_start: Callable[[str], None] | None = None,
    ):
        self._delay = delay
        self._on_start = on_start
        self._failures: dict[str, str] = {}
        self._delays: dict[str, float] = {}
        self._prepare_error: str | None = None
        self._lock = threading.Lock()
        self._call_log: list[MockCall] = []
        self._prepare_calls: list[list[str]] = []
        self._events: list[tuple[str, str]] = []
        self._in_flight = 0
        self._max_in_flight = 0
        self._cancelled = threading.Event()

    @property
    def name(self) -> str:
        return "mock"

    # ── Introspection ───────────────────────────────────────────

    @property
    def call_log(self) -> list[MockCall]:
        """All build calls this mock has received, in start order."""
        return list(self._call_log)

    @property
    def built(self) -> list[str]:
        """Tool names in the order their builds started."""
        return [call.tool for call in self._call_log]

    @property
    def events(self) -> list[tuple[str, str]]:
        """``(event, tool)`` pairs, event being ``start`` or ``end``."""
        return list(self._events)

    @property
    def prepare_calls(self) -> list[list[str]]:
        return list(self._prepare_calls)

    @property
    def max_concurrency(self) -> int:
        """Highest number of builds that were running at the same time."""
        return self._max_in_flight

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    # ── Configuration ───────────────────────────────────────────

    def set_failure(self, tool: str, error: str = "Mock failure") -> None:
        """Configure a specific tool's build to fail."""
        self._failures[tool] = error

    def set_delay(self, tool: str, seconds: float) -> None:
        """Give one tool a build time different from the default."""
        self._delays[tool] = seconds

    def set_prepare_failure(self, error: str = "Mock shared step failure") -> None:
        self._prepare_error = error

    def reset(self) -> None:
        """Clear call log, configured failures and counters."""
        with self._lock:
            self._failures.clear()
            self._delays.clear()
            self._prepare_error = None
            self._call_log.clear()
            self._prepare_calls.clear()
            self._events.clear()
            self._in_flight = 0
            self._max_in_flight = 0
            self._cancelled.clear()

    # ── BuildBackend ────────────────────────────────────────────

    def command(
        self,
        context: BuildContext,
        tool: ToolConfig,
        options: InstallationOptions,
    ) -> list[str]:
        cmd = ["mock-build", tool.name]
        if context.build_flag:
            cmd.append(context.build_flag)
        if context.skip_deps:
            cmd.append("--skip-deps")
        if options.run_tests:
            cmd.append("--run-tests")
        if options.force:
            cmd.append("--force")
        return cmd

    def build(
        self,
        context: BuildContext,
        tool: ToolConfig,
        options: InstallationOptions,
    ) -> BuildResult:
        cmd = self.command(context, tool, options)
        with self._lock:
            self._call_log.append(MockCall(tool.name, context, options, cmd))
            self._events.append(("start", tool.name))
            self._in_flight += 1
            self._max_in_flight = max(self._max_in_flight, self._in_flight)

        try:
            if self._on_start is not None:
                self._on_start(tool.name)

            delay = self._delays.get(tool.name, self._delay)
            if delay and (context.cancel_event.wait(delay) or self._cancelled.is_set()):
                return BuildResult.failure(
                    tool=tool.name, backend=self.name, error="cancelled", command=cmd
                )

            if tool.name in self._failures:
                return BuildResult.failure(
                    tool=tool.name,
                    backend=self.name,
                    error=self._failures[tool.name],
                    command=cmd,
                    returncode=1,
                )
            return BuildResult.success(
                tool=tool.name,
                backend=self.name,
                output="[mock] built",
                command=cmd,
                returncode=0,
                metadata={"mock": True},
            )
        finally:
            with self._lock:
                self._in_flight -= 1
                self._events.append(("end", tool.name))

    def prepare(
        self,
        context: BuildContext,
        packages: list[str],
        options: InstallationOptions,
    ) -> BuildResult:
        with self._lock:
            self._prepare_calls.append(list(packages))
        if self._prepare_error:
            return BuildResult.failure(
                tool=SHARED_STEP, backend=self.name, error=self._prepare_error
            )
        return BuildResult.success(tool=SHARED_STEP, backend=self.name)

    def cancel(self) -> None:
        self._cancelled.set()
