"""
Build backend — the contract between the orchestrator and builders.

The orchestrator never compiles anything itself. Every build goes
through ``BuildBackend.build(context, tool, options)``, which returns
a BuildResult. Backends NEVER raise for a failed build; failures are
captured in the result.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field

from gearbox.core.models.catalog import ToolConfig
from gearbox.core.models.options import InstallationOptions

SHARED_STEP = "common-deps"


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class BuildContext:
    """Per-invocation facts the orchestrator hands to a backend.

    Attributes:
        index: 1-based position of this tool in the plan.
        total: Number of tools in the plan.
        build_flag: Flag for the requested variant, if the tool has one.
        skip_deps: Shared dependencies are already satisfied.
        build_dir: Working directory for builds.
        cancel_event: Set when the run is being cancelled.
    """

    index: int = 1
    total: int = 1
    build_flag: str | None = None
    skip_deps: bool = True
    build_dir: Path = Path(".")
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


class BuildResult(BaseModel):
    """Result of one backend invocation."""

    tool: str
    backend: str = ""
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    command: list[str] = Field(default_factory=list)
    returncode: int | None = None
    output: str = ""
    error: str | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @classmethod
    def success(cls, tool: str, backend: str, output: str = "", **kwargs: Any) -> BuildResult:
        """Create a success result."""
        return cls(tool=tool, backend=backend, status="ok", output=output, **kwargs)

    @classmethod
    def failure(cls, tool: str, backend: str, error: str, **kwargs: Any) -> BuildResult:
        """Create a failure result."""
        return cls(tool=tool, backend=backend, status="failed", error=error, **kwargs)

    @classmethod
    def skip(cls, tool: str, backend: str = "", reason: str = "", **kwargs: Any) -> BuildResult:
        """Create a skip result."""
        return cls(tool=tool, backend=backend, status="skipped", output=reason, **kwargs)


class BuildBackend(ABC):
    """Abstract base class for build backends.

    To create a new backend:
        1. Subclass BuildBackend
        2. Implement name, command and build
        3. Override prepare/cancel if the backend needs them
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The backend identifier (e.g., 'script', 'mock')."""

    def is_available(self) -> bool:
        """Whether the backend can run on this host. Never raises."""
        return True

    @abstractmethod
    def command(
        self,
        context: BuildContext,
        tool: ToolConfig,
        options: InstallationOptions,
    ) -> list[str]:
        """The invocation ``build`` would run, for dry-run output."""

    @abstractmethod
    def build(
        self,
        context: BuildContext,
        tool: ToolConfig,
        options: InstallationOptions,
    ) -> BuildResult:
        """Build and install one tool.

        MUST never raise. All failures are captured in the result
        with status='failed'. Called concurrently from worker threads.
        """

    def prepare(
        self,
        context: BuildContext,
        packages: list[str],
        options: InstallationOptions,
    ) -> BuildResult:
        """Satisfy shared dependencies once, before any build starts."""
        return BuildResult.success(tool=SHARED_STEP, backend=self.name)

    def cancel(self) -> None:
        """Terminate any in-flight builds. Safe to call more than once."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
