"""
Uninstall execution — carry out an UninstallPlan.

Removal is best-effort per tool: one tool failing to uninstall never
stops the rest. The manifest is backed up before anything is touched,
records of removed tools are dropped, and the manifest is saved once
at the end.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from collections.abc import Callable
from pathlib import Path

from pydantic import BaseModel, Field

from gearbox.core.persistence.audit import AuditEntry, AuditWriter, summarize_status
from gearbox.core.persistence.manifest_store import ManifestStore
from gearbox.core.services.uninstall.planning import RemovalAction, UninstallPlan

logger = logging.getLogger(__name__)

COMMAND_TIMEOUT = 300
PACKAGE_MANAGERS: tuple[str, ...] = ("apt-get", "dnf", "yum")

Runner = Callable[[list[str]], subprocess.CompletedProcess]


def run_command(cmd: list[str]) -> subprocess.CompletedProcess:
    """Run an uninstall command, capturing its output."""
    return subprocess.run(
        cmd,
        capture_output=True,
        text=True,
        timeout=COMMAND_TIMEOUT,
        stdin=subprocess.DEVNULL,
    )


def format_bytes(size: int) -> str:
    """Human-readable byte count (1024-based)."""
    if size < 1024:
        return f"{size} B"
    value = float(size)
    for unit in ("KB", "MB", "GB", "TB"):
        value /= 1024
        if value < 1024 or unit == "TB":
            return f"{value:.1f} {unit}"
    return f"{size} B"


def path_size(path: Path) -> int:
    """Bytes used by a file, or by everything under a directory."""
    if path.is_symlink() or path.is_file():
        return path.lstat().st_size
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            try:
                total += (Path(root) / name).lstat().st_size
            except OSError:
                continue
    return total


class RemovalFailure(BaseModel):
    target: str
    error: str


class RemovalResult(BaseModel):
    """What an uninstall actually did."""

    removed: list[str] = Field(default_factory=list)
    failed: list[RemovalFailure] = Field(default_factory=list)
    # Shared system packages whose records were dropped; the packages stay
    untracked: list[str] = Field(default_factory=list)
    bytes_freed: int = 0
    backup_created: str = ""
    dry_run: bool = False
    blocked: bool = False
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return not self.failed and not self.blocked

    @property
    def space_freed(self) -> str:
        return format_bytes(self.bytes_freed)


class RemovalExecutor:
    """Executes uninstall plans against one manifest store.

    Args:
        store: Manifest store; backed up before and saved after removal.
        audit: Ledger that receives an entry for each executed plan.
        runner: Runs package-manager commands (default: subprocess).
    """

    def __init__(
        self,
        store: ManifestStore,
        *,
        audit: AuditWriter | None = None,
        runner: Runner = run_command,
    ):
        self._store = store
        self._audit = audit
        self._runner = runner

    def execute(self, plan: UninstallPlan) -> RemovalResult:
        """Remove every tool in ``plan.to_remove``.

        A blocked plan is refused: nothing is removed and the result
        carries ``blocked=True``. A dry run reports what would be
        removed without touching the filesystem or the manifest.
        """
        options = plan.options
        result = RemovalResult(dry_run=options.dry_run)

        if plan.blocked:
            result.blocked = True
            logger.warning("Refusing blocked uninstall plan for %s", ", ".join(plan.targets))
            return result

        if options.dry_run:
            result.removed = plan.tools_to_remove
            logger.info("Dry run: would remove %s", ", ".join(result.removed) or "nothing")
            return result

        if not plan.to_remove:
            return result

        start = time.monotonic()
        manifest = self._store.load()

        if options.backup:
            backup = self._store.backup(options.backup_suffix)
            if backup is not None:
                result.backup_created = str(backup)

        for action in plan.to_remove:
            try:
                freed = self._remove(action)
            except (OSError, subprocess.SubprocessError, RuntimeError) as e:
                logger.error("Failed to remove %s: %s", action.target, e)
                result.failed.append(RemovalFailure(target=action.target, error=str(e)))
                continue
            manifest.remove_installation(action.target)
            result.removed.append(action.target)
            result.bytes_freed += freed
            logger.info("Removed %s (%s)", action.target, format_bytes(freed))

        for dep in plan.dependencies:
            if dep.action != "untrack" or manifest.shared_dependents(dep.dependency):
                continue
            if manifest.remove_dependency(dep.dependency) is not None:
                result.untracked.append(dep.dependency)

        if result.removed or result.untracked:
            self._store.save(manifest)

        result.duration_ms = int((time.monotonic() - start) * 1000)
        self._record(plan, result)
        return result

    # ── Dispatch ────────────────────────────────────────────────

    def _remove(self, action: RemovalAction) -> int:
        """Remove one tool; returns the bytes freed."""
        method = action.method
        if method == "bundle":
            return 0
        if method in ("source_build", "manual_delete"):
            return self._remove_files(action.paths)
        if method == "go_clean":
            freed = self._remove_files(action.paths)
            if shutil.which("go"):
                # Module cache cleanup is shared across tools; failure is not fatal.
                proc = self._runner(["go", "clean", "-modcache"])
                if proc.returncode != 0:
                    logger.warning("go clean -modcache failed: %s", (proc.stderr or "").strip())
            return freed
        if method == "cargo_uninstall":
            self._run(action.target, ["cargo", "uninstall", action.target])
            return 0
        if method == "pipx_uninstall":
            self._run(action.target, ["pipx", "uninstall", action.target])
            return 0
        if method == "npm_uninstall":
            self._run(action.target, ["npm", "uninstall", "-g", action.target])
            return 0
        if method == "system_uninstall":
            self._run(action.target, self._system_uninstall_command(action.target))
            return 0
        raise RuntimeError(f"unsupported removal method: {method}")

    def _run(self, target: str, cmd: list[str]) -> None:
        logger.debug("Running %s", " ".join(cmd))
        proc = self._runner(cmd)
        if proc.returncode != 0:
            detail = (proc.stderr or proc.stdout or "").strip()
            raise RuntimeError(f"{cmd[0]} exited {proc.returncode} removing {target}: {detail}")

    @staticmethod
    def _system_uninstall_command(package: str) -> list[str]:
        for manager in PACKAGE_MANAGERS:
            if shutil.which(manager):
                cmd = [manager, "remove", "-y", package]
                if os.geteuid() != 0:
                    cmd.insert(0, "sudo")
                return cmd
        raise RuntimeError("no supported package manager found (apt-get, dnf, yum)")

    @staticmethod
    def _remove_files(paths: list[str]) -> int:
        freed = 0
        for raw in paths:
            path = Path(raw).expanduser()
            if not path.exists() and not path.is_symlink():
                logger.debug("Already gone: %s", path)
                continue
            size = path_size(path)
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
            freed += size
        return freed

    def _record(self, plan: UninstallPlan, result: RemovalResult) -> None:
        if self._audit is None:
            return
        self._audit.write(
            AuditEntry(
                operation_type="uninstall",
                tools=plan.tools_to_remove,
                status=summarize_status(len(result.removed), len(result.failed)),
                tools_total=len(plan.to_remove),
                tools_succeeded=len(result.removed),
                tools_failed=len(result.failed),
                tools_skipped=len(plan.to_keep),
                duration_ms=result.duration_ms,
                errors=[f"{f.target}: {f.error}" for f in result.failed],
                context={
                    "safety": plan.options.safety,
                    "cascade": plan.options.cascade,
                    "bytes_freed": result.bytes_freed,
                    "backup": result.backup_created,
                    "untracked": result.untracked,
                },
            )
        )
