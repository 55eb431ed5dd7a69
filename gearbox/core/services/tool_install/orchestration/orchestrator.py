"""
L5 Orchestration — Build orchestrator.

Executes an InstallPlan with bounded concurrency. A tool is admitted
to the worker pool only once every in-plan dependency has finished
successfully, so two tools where one transitively depends on the other
never build at the same time. A failed build skips its transitive
dependents; independent branches carry on.

Cancellation (``cancel()`` or Ctrl-C during ``execute``) stops
admission, asks the backend to terminate in-flight builds and marks
every tool that never started as skipped.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from gearbox.core.errors import BuildFailure
from gearbox.core.models.catalog import Catalog
from gearbox.core.models.options import InstallationOptions
from gearbox.core.persistence.audit import AuditEntry, AuditWriter, summarize_status
from gearbox.core.persistence.manifest_store import ManifestStore
from gearbox.core.services.tool_install.detection.host_resources import resolve_jobs
from gearbox.core.services.tool_install.domain.dag import get_ready
from gearbox.core.services.tool_install.execution.backend import (
    BuildBackend,
    BuildContext,
    BuildResult,
)
from gearbox.core.services.tool_install.execution.tracking import InstallationTracker
from gearbox.core.services.tool_install.resolver.plan_resolution import (
    InstallPlan,
    resolve_install_plan,
)

logger = logging.getLogger(__name__)

ToolState = Literal["pending", "running", "done", "failed", "skipped"]


@dataclass
class ToolOutcome:
    """Where one planned tool ended up."""

    tool: str
    index: int
    state: ToolState = "pending"
    result: BuildResult | None = None
    reason: str = ""


@dataclass
class ProgressEvent:
    """A state transition, reported to the progress callback."""

    tool: str
    index: int
    total: int
    state: ToolState
    reason: str = ""


@dataclass
class OrchestratorReport:
    """Everything that happened during one run."""

    plan: InstallPlan
    outcomes: dict[str, ToolOutcome] = field(default_factory=dict)
    jobs: int = 1
    dry_run: bool = False
    cancelled: bool = False
    commands: list[list[str]] = field(default_factory=list)
    shared_step: BuildResult | None = None
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0

    def _names(self, state: ToolState) -> list[str]:
        return [name for name, o in self.outcomes.items() if o.state == state]

    @property
    def succeeded(self) -> list[str]:
        return self._names("done")

    @property
    def failed(self) -> list[str]:
        return self._names("failed")

    @property
    def skipped(self) -> list[str]:
        return self._names("skipped")

    @property
    def ok(self) -> bool:
        """No build failed, nothing was cancelled, the shared step held."""
        if self.shared_step is not None and self.shared_step.failed:
            return False
        return not self.failed and not self.cancelled

    @property
    def failures(self) -> list[BuildFailure]:
        """One BuildFailure per failed tool, naming the tool and the cause."""
        failures: list[BuildFailure] = []
        for name in self.failed:
            result = self.outcomes[name].result
            error = (result.error if result else None) or self.outcomes[name].reason
            returncode = result.returncode if result else None
            failures.append(BuildFailure(name, error or "unknown error", returncode=returncode))
        return failures


class BuildOrchestrator:
    """Plans and executes tool installations.

    Args:
        catalog: The validated tool catalog.
        backend: Performs the actual builds.
        store: Manifest store; successful builds are recorded there.
            None disables tracking.
        audit: Ledger for a one-line summary of each run.
        build_dir: Working directory handed to the backend.
        on_progress: Called (from the orchestrating thread) on every
            tool state transition.
    """

    def __init__(
        self,
        catalog: Catalog,
        backend: BuildBackend,
        *,
        store: ManifestStore | None = None,
        audit: AuditWriter | None = None,
        build_dir: Path = Path("."),
        on_progress: Callable[[ProgressEvent], None] | None = None,
    ):
        self._catalog = catalog
        self._backend = backend
        self._store = store
        self._audit = audit
        self._build_dir = build_dir
        self._on_progress = on_progress
        self._cancel_event = threading.Event()

    @property
    def backend(self) -> BuildBackend:
        return self._backend

    def plan(self, selection: list[str]) -> InstallPlan:
        """Resolve a selection of tools and bundles into an InstallPlan."""
        return resolve_install_plan(self._catalog, selection)

    def install(self, selection: list[str], options: InstallationOptions) -> OrchestratorReport:
        """Plan and execute in one go."""
        return self.execute(self.plan(selection), options)

    def cancel(self) -> None:
        """Stop admitting builds and terminate the ones in flight."""
        if not self._cancel_event.is_set():
            logger.warning("Cancelling installation")
        self._cancel_event.set()
        self._backend.cancel()

    # ── Execution ───────────────────────────────────────────────

    def execute(self, plan: InstallPlan, options: InstallationOptions) -> OrchestratorReport:
        """Execute a plan.

        Raises:
            ManifestCorrupt: If tracking is enabled and the manifest
                can't be read. Nothing is built in that case.
        """
        start = time.monotonic()
        jobs = resolve_jobs(options.jobs, options.build_type)
        report = OrchestratorReport(plan=plan, jobs=jobs, dry_run=options.dry_run)
        for index, name in enumerate(plan.order, start=1):
            report.outcomes[name] = ToolOutcome(tool=name, index=index)

        if options.dry_run:
            self._dry_run(plan, options, report)
            report.duration_ms = int((time.monotonic() - start) * 1000)
            return report

        tracker = InstallationTracker(self._store) if self._store is not None else None

        logger.info(
            "Installing %d tools (%s build, %d jobs)",
            len(plan), options.build_type, jobs,
        )

        if not options.skip_common_deps:
            shared = self._backend.prepare(self._context(0, len(plan), None), plan.system_packages, options)
            report.shared_step = shared
            if not shared.ok:
                reason = f"shared dependencies failed: {shared.error or shared.output}"
                report.errors.append(reason)
                for name in plan.order:
                    self._transition(report, name, "skipped", reason=reason)
                return self._finish(report, options, start)

        self._run_pool(plan, options, report, tracker)
        if tracker is not None:
            self._track_bundles(report, tracker)
        return self._finish(report, options, start)

    def _context(self, index: int, total: int, build_flag: str | None) -> BuildContext:
        return BuildContext(
            index=index,
            total=total,
            build_flag=build_flag,
            skip_deps=True,
            build_dir=self._build_dir,
            cancel_event=self._cancel_event,
        )

    def _dry_run(
        self,
        plan: InstallPlan,
        options: InstallationOptions,
        report: OrchestratorReport,
    ) -> None:
        for name in plan.order:
            tool = plan.tools[name]
            outcome = report.outcomes[name]
            ctx = self._context(outcome.index, len(plan), tool.build_flag(options.build_type))
            cmd = self._backend.command(ctx, tool, options)
            report.commands.append(cmd)
            logger.info("[dry-run] %s", " ".join(cmd))

    def _run_pool(
        self,
        plan: InstallPlan,
        options: InstallationOptions,
        report: OrchestratorReport,
        tracker: InstallationTracker | None,
    ) -> None:
        pending = list(plan.order)
        completed: set[str] = set()
        # A future stays here until its result has been collected.
        running: dict[Future[BuildResult], str] = {}

        with ThreadPoolExecutor(max_workers=report.jobs, thread_name_prefix="build") as pool:
            try:
                while pending or running:
                    if not self._cancel_event.is_set():
                        free = report.jobs - len(running)
                        for name in get_ready(pending, plan.graph, completed)[:free]:
                            pending.remove(name)
                            self._submit(pool, plan, name, options, report, running)

                    if not running:
                        break

                    done, _ = wait(running, return_when=FIRST_COMPLETED)
                    for future in done:
                        name = running[future]
                        if self._collect(report, name, future, tracker):
                            completed.add(name)
                        else:
                            pending = self._skip_dependents(report, plan, name, pending)
                        del running[future]
            except KeyboardInterrupt:
                self.cancel()
                for future, name in running.items():
                    if report.outcomes[name].state == "running":
                        self._collect(report, name, future, tracker)

        if self._cancel_event.is_set():
            report.cancelled = True
            for name, outcome in report.outcomes.items():
                if outcome.state in ("pending", "running"):
                    self._transition(report, name, "skipped", reason="cancelled")

    def _submit(
        self,
        pool: ThreadPoolExecutor,
        plan: InstallPlan,
        name: str,
        options: InstallationOptions,
        report: OrchestratorReport,
        running: dict[Future[BuildResult], str],
    ) -> None:
        tool = plan.tools[name]
        outcome = report.outcomes[name]
        ctx = self._context(outcome.index, len(plan), tool.build_flag(options.build_type))
        running[pool.submit(self._backend.build, ctx, tool, options)] = name
        self._transition(report, name, "running")

    def _collect(
        self,
        report: OrchestratorReport,
        name: str,
        future: Future[BuildResult],
        tracker: InstallationTracker | None,
    ) -> bool:
        try:
            result = future.result()
        except Exception as e:
            # A backend broke its contract; treat it as a failed build.
            logger.exception("Backend raised while building %s", name)
            result = BuildResult.failure(tool=name, backend=self._backend.name, error=str(e))

        report.outcomes[name].result = result
        if result.status == "skipped":
            self._transition(report, name, "skipped", reason=result.output)
            return False
        if not result.ok:
            self._transition(report, name, "failed", reason=result.error or "")
            logger.error("Failed to install %s: %s", name, result.error)
            return False

        if tracker is not None:
            plan = report.plan
            try:
                tracker.track_build(
                    plan.tools[name],
                    build_dir=self._build_dir,
                    bundle=plan.bundle_origin.get(name, ""),
                    user_requested=name in plan.user_requested,
                    system_packages=plan.system_packages_of(name),
                )
            except OSError as e:
                logger.error("Built %s but could not record it in the manifest: %s", name, e)
                report.errors.append(f"{name}: manifest update failed: {e}")

        self._transition(report, name, "done")
        return True

    def _track_bundles(self, report: OrchestratorReport, tracker: InstallationTracker) -> None:
        """Record each selected bundle whose every member tool was built."""
        succeeded = set(report.succeeded)
        for bundle, members in report.plan.bundles.items():
            if not set(members) <= succeeded:
                logger.info("Not recording bundle %s: some of its tools were not built", bundle)
                continue
            try:
                tracker.track_bundle(bundle, members)
            except OSError as e:
                logger.error("Could not record bundle %s in the manifest: %s", bundle, e)
                report.errors.append(f"{bundle}: manifest update failed: {e}")

    def _skip_dependents(
        self,
        report: OrchestratorReport,
        plan: InstallPlan,
        failed: str,
        pending: list[str],
    ) -> list[str]:
        dependents = plan.dependents_of(failed)
        for name in pending:
            if name in dependents:
                self._transition(report, name, "skipped", reason=f"dependency {failed} failed")
        return [name for name in pending if name not in dependents]

    def _transition(
        self,
        report: OrchestratorReport,
        name: str,
        state: ToolState,
        reason: str = "",
    ) -> None:
        outcome = report.outcomes[name]
        outcome.state = state
        outcome.reason = reason
        if state == "skipped":
            logger.warning("Skipping %s: %s", name, reason)
        else:
            logger.info("[%d/%d] %s %s", outcome.index, len(report.outcomes), name, state)
        if self._on_progress is not None:
            self._on_progress(
                ProgressEvent(
                    tool=name,
                    index=outcome.index,
                    total=len(report.outcomes),
                    state=state,
                    reason=reason,
                )
            )

    def _finish(
        self,
        report: OrchestratorReport,
        options: InstallationOptions,
        start: float,
    ) -> OrchestratorReport:
        report.duration_ms = int((time.monotonic() - start) * 1000)
        report.errors.extend(str(f) for f in report.failures)

        if self._audit is not None:
            failed = len(report.failed) + (1 if report.shared_step and report.shared_step.failed else 0)
            self._audit.write(
                AuditEntry(
                    operation_type="install",
                    tools=list(report.plan.order),
                    status=summarize_status(len(report.succeeded), failed),
                    tools_total=len(report.plan),
                    tools_succeeded=len(report.succeeded),
                    tools_failed=len(report.failed),
                    tools_skipped=len(report.skipped),
                    duration_ms=report.duration_ms,
                    errors=list(report.errors),
                    context={
                        "build_type": options.build_type,
                        "jobs": report.jobs,
                        "backend": self._backend.name,
                        "cancelled": report.cancelled,
                    },
                )
            )
        return report
