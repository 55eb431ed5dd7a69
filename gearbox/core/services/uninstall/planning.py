"""
Uninstall planning — decide what a removal request may safely delete.

Planning is side-effect free: it reads a manifest snapshot and the
catalog and returns an UninstallPlan. Execution is a separate step
(see ``execution.py``).

Safety levels decide which orphaned dependencies a cascade removes:

    aggressive    every orphan
    standard      orphans the user did not install explicitly
    conservative  as standard, and never a tool an installed bundle needs

Shared system packages recorded in the manifest follow the same
cascade rules, except that gearbox never uninstalls them from the host:
an orphaned package only loses its manifest record.
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field

from gearbox.core.errors import UnknownToolError
from gearbox.core.models.catalog import Catalog
from gearbox.core.models.manifest import InstallMethod, Manifest, bundle_key
from gearbox.core.services.tool_install.resolver.bundles import bundle_system_packages, expand_bundle

logger = logging.getLogger(__name__)

SafetyLevel = Literal["conservative", "standard", "aggressive"]
SAFETY_LEVELS: tuple[str, ...] = ("conservative", "standard", "aggressive")

RemovalMethod = Literal[
    "source_build",
    "cargo_uninstall",
    "go_clean",
    "system_uninstall",
    "pipx_uninstall",
    "npm_uninstall",
    "manual_delete",
    "bundle",
    "preserve",
]

REMOVAL_METHODS: dict[str, RemovalMethod] = {
    "source_build": "source_build",
    "cargo_install": "cargo_uninstall",
    "go_install": "go_clean",
    "system_package": "system_uninstall",
    "pipx": "pipx_uninstall",
    "npm_global": "npm_uninstall",
    "manual_download": "manual_delete",
    "bundle": "bundle",
    "pre_existing": "preserve",
}

REMOVAL_DESCRIPTIONS: dict[str, str] = {
    "source_build": "Remove binaries and build artifacts from source installation",
    "cargo_uninstall": "Use 'cargo uninstall' to remove Rust tool",
    "go_clean": "Remove Go tool binary",
    "system_uninstall": "Use system package manager to uninstall",
    "pipx_uninstall": "Use 'pipx uninstall' to remove Python tool",
    "npm_uninstall": "Use 'npm uninstall -g' to remove Node.js tool",
    "manual_delete": "Manually delete files and directories",
    "bundle": "Forget the bundle record; its tools are removed only if listed",
    "preserve": "Preserve pre-existing installation",
}

DEFAULT_BACKUP_SUFFIX = "pre-removal"


def removal_method(method: InstallMethod | str) -> RemovalMethod:
    """How a tool installed with ``method`` is removed."""
    return REMOVAL_METHODS.get(method, "manual_delete")


# ── Plan models ─────────────────────────────────────────────────


class RemovalOptions(BaseModel):
    """Knobs for one uninstall request."""

    safety: SafetyLevel = "standard"
    force: bool = False
    cascade: bool = False
    remove_config: bool = False
    remove_bundle_contents: bool = False
    dry_run: bool = False
    backup: bool = True
    backup_suffix: str = DEFAULT_BACKUP_SUFFIX


class RemovalAction(BaseModel):
    """One tool the plan will remove."""

    target: str
    method: RemovalMethod
    paths: list[str] = Field(default_factory=list)
    reason: str = ""
    dependencies: list[str] = Field(default_factory=list)
    is_safe: bool = True
    cascaded: bool = False

    @property
    def description(self) -> str:
        return REMOVAL_DESCRIPTIONS.get(self.method, "")


class KeepReason(BaseModel):
    """A requested tool the plan refuses to remove, and why."""

    target: str
    reasons: list[str] = Field(default_factory=list)


class SafetyWarning(BaseModel):
    target: str
    level: Literal["info", "warning", "error"] = "warning"
    message: str


class DependencyAction(BaseModel):
    """What happens to a dependency of a removed tool."""

    dependency: str
    # untrack: drop the manifest record, leave the system package installed
    action: Literal["remove", "preserve", "untrack"]
    reason: str
    affected: list[str] = Field(default_factory=list)


class DependentsBlockUninstall(BaseModel):
    """Installed tools still depend on a removal target.

    Blocks the whole plan unless cascade or force is given.
    """

    target: str
    dependents: list[str]

    @property
    def message(self) -> str:
        return (
            f"Cannot remove {self.target}: required by {', '.join(self.dependents)} "
            "(use --cascade or --force)"
        )


class UninstallPlan(BaseModel):
    """Everything an uninstall would do, computed without doing it."""

    targets: list[str] = Field(default_factory=list)
    options: RemovalOptions = Field(default_factory=RemovalOptions)
    to_remove: list[RemovalAction] = Field(default_factory=list)
    to_keep: list[KeepReason] = Field(default_factory=list)
    warnings: list[SafetyWarning] = Field(default_factory=list)
    dependencies: list[DependencyAction] = Field(default_factory=list)
    blocking: list[DependentsBlockUninstall] = Field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return bool(self.blocking)

    @property
    def tools_to_remove(self) -> list[str]:
        return [a.target for a in self.to_remove]

    @property
    def paths_to_delete(self) -> list[str]:
        paths: list[str] = []
        for action in self.to_remove:
            paths.extend(p for p in action.paths if p not in paths)
        return paths

    @property
    def will_backup(self) -> bool:
        """A pre-removal backup is taken before anything is deleted."""
        return self.options.backup and not self.options.dry_run and bool(self.to_remove)

    def summary(self) -> dict[str, object]:
        methods: dict[str, int] = {}
        for action in self.to_remove:
            methods[action.method] = methods.get(action.method, 0) + 1
        verdicts: dict[str, int] = {}
        for dep in self.dependencies:
            verdicts[dep.action] = verdicts.get(dep.action, 0) + 1
        return {
            "total_requested": len(self.targets),
            "will_remove": len(self.to_remove),
            "will_keep": len(self.to_keep),
            "warning_count": len(self.warnings),
            "blocked": self.blocked,
            "method_breakdown": methods,
            "dependency_actions": verdicts,
        }


# ── Planner ─────────────────────────────────────────────────────


class RemovalPlanner:
    """Computes UninstallPlans against one manifest snapshot.

    Args:
        catalog: Supplies catalog dependencies and bundle contents.
        manifest: The installed-tool snapshot; never modified.
    """

    def __init__(self, catalog: Catalog, manifest: Manifest):
        self._catalog = catalog
        self._manifest = manifest

    def _declared_dependencies(self, name: str) -> list[str]:
        deps: list[str] = []
        record = self._manifest.get_installation(name)
        if record is not None:
            deps.extend(record.dependencies)
            deps.extend(record.system_packages)
        tool = self._catalog.get_tool(name)
        if tool is not None:
            deps.extend(tool.dependencies)
        return [d for d in dict.fromkeys(deps) if d != name]

    def dependencies_of(self, name: str) -> list[str]:
        """Installed tools that ``name`` depends on (record ∪ catalog)."""
        tools = self._manifest.tools
        return [d for d in self._declared_dependencies(name) if d in tools]

    def shared_packages_of(self, name: str) -> list[str]:
        """Tracked shared system packages that ``name`` depends on."""
        tools = self._manifest.tools
        return [
            d
            for d in self._declared_dependencies(name)
            if d not in tools and self._manifest.get_dependency(d) is not None
        ]

    def dependents_of(self, name: str, excluding: set[str] | None = None) -> list[str]:
        """Installed tools that depend on ``name``."""
        excluding = excluding or set()
        return [
            other
            for other in self._manifest.tools
            if other != name and other not in excluding and name in self.dependencies_of(other)
        ]

    def plan(self, targets: list[str], options: RemovalOptions | None = None) -> UninstallPlan:
        """Plan the removal of ``targets``.

        Raises:
            UnknownToolError: If a target is not a catalog tool, a
                catalog bundle or a manifest entry.
        """
        options = options or RemovalOptions()
        plan = UninstallPlan(targets=list(targets), options=options)

        names = self._resolve_targets(targets, plan, options)
        candidates = [n for n in names if self._keep_pre_existing(n, plan)]
        candidate_set = set(candidates)

        for name in candidates:
            dependents = self.dependents_of(name, excluding=candidate_set)
            if dependents and not (options.cascade or options.force):
                plan.blocking.append(DependentsBlockUninstall(target=name, dependents=dependents))
                continue
            if dependents:
                plan.warnings.append(
                    SafetyWarning(
                        target=name,
                        level="error",
                        message=(
                            "Forcing removal despite dependents: "
                            f"{', '.join(dependents)} may stop working"
                        ),
                    )
                )
            if self._manifest.installations[name].is_bundle:
                reason = "User requested bundle removal"
            else:
                reason = "User requested removal"
            plan.to_remove.append(self._action(name, options, reason=reason, is_safe=not dependents))

        if plan.blocked:
            logger.info("Uninstall blocked by dependents: %s", [b.target for b in plan.blocking])
        else:
            self._analyze_dependencies(plan, options)
            self._analyze_shared_packages(plan, options)

        if options.safety == "conservative":
            for action in plan.to_remove:
                plan.warnings.append(
                    SafetyWarning(
                        target=action.target,
                        level="info",
                        message="Conservative mode: double-check removal is necessary",
                    )
                )
        return plan

    def _resolve_targets(
        self,
        targets: list[str],
        plan: UninstallPlan,
        options: RemovalOptions,
    ) -> list[str]:
        names: list[str] = []
        for target in targets:
            if self._manifest.is_installed(target):
                names.append(target)
            elif self._catalog.is_bundle(target):
                names.extend(self._resolve_bundle(target, plan, options))
            elif self._catalog.has_tool(target):
                plan.warnings.append(
                    SafetyWarning(
                        target=target,
                        level="info",
                        message="Tool is not tracked by gearbox - may not be installed or is pre-existing",
                    )
                )
            else:
                raise UnknownToolError(target)
        return list(dict.fromkeys(names))

    def _resolve_bundle(self, bundle: str, plan: UninstallPlan, options: RemovalOptions) -> list[str]:
        """The tracked bundle record, plus its installed tools when asked."""
        names: list[str] = []
        key = bundle_key(bundle)
        record = self._manifest.get_installation(key)
        if record is not None:
            names.append(key)

        members = expand_bundle(self._catalog, bundle) + (record.dependencies if record else [])
        installed = list(dict.fromkeys(t for t in members if t in self._manifest.tools))
        if options.remove_bundle_contents:
            names.extend(installed)
        elif installed or record is None:
            plan.warnings.append(
                SafetyWarning(
                    target=bundle,
                    level="info",
                    message=(
                        f"Bundle contains {len(installed)} installed tools that will remain installed"
                        + (f": {', '.join(installed)}" if installed else "")
                        + "; use --bundle-contents to remove them"
                    ),
                )
            )
        return names

    def _keep_pre_existing(self, name: str, plan: UninstallPlan) -> bool:
        record = self._manifest.get_installation(name)
        if record is not None and record.pre_existing:
            plan.to_keep.append(
                KeepReason(
                    target=name,
                    reasons=["Tool was pre-existing before gearbox installation"],
                )
            )
            return False
        return True

    def _action(
        self,
        name: str,
        options: RemovalOptions,
        *,
        reason: str,
        is_safe: bool = True,
        cascaded: bool = False,
    ) -> RemovalAction:
        record = self._manifest.installations[name]
        paths = list(record.binary_paths)
        if record.build_dir:
            paths.append(record.build_dir)
        if options.remove_config:
            paths.extend(record.config_files)
        return RemovalAction(
            target=name,
            method=removal_method(record.method),
            paths=paths,
            reason=reason,
            # Members of a bundle are never cascaded through its record
            dependencies=[] if record.is_bundle else self.dependencies_of(name),
            is_safe=is_safe,
            cascaded=cascaded,
        )

    def _analyze_dependencies(self, plan: UninstallPlan, options: RemovalOptions) -> None:
        """Decide the fate of each tool dependency of a removed tool.

        With cascade, orphaned dependencies join the removal set, and
        their own dependencies are considered in turn.
        """
        removing = set(plan.tools_to_remove)
        queue = list(plan.to_remove)
        decided: set[str] = set()

        while queue:
            action = queue.pop(0)
            for dep in action.dependencies:
                if dep in removing or dep in decided:
                    continue
                decided.add(dep)
                users = [u for u in self._manifest.tools if dep in self.dependencies_of(u)]
                remaining = [u for u in users if u not in removing]

                if remaining:
                    plan.dependencies.append(
                        DependencyAction(
                            dependency=dep,
                            action="preserve",
                            reason=f"Still needed by: {', '.join(remaining)}",
                            affected=users,
                        )
                    )
                    continue

                keep_reason = self._orphan_keep_reason(dep, removing, options)
                if keep_reason:
                    plan.dependencies.append(
                        DependencyAction(dependency=dep, action="preserve", reason=keep_reason, affected=users)
                    )
                    continue

                plan.dependencies.append(
                    DependencyAction(
                        dependency=dep,
                        action="remove",
                        reason="No remaining dependents - removing with cascade",
                        affected=users,
                    )
                )
                if len(users) > 1:
                    plan.warnings.append(
                        SafetyWarning(
                            target=dep,
                            level="warning",
                            message=f"Removing shared dependency used by {len(users)} tools",
                        )
                    )
                removing.add(dep)
                cascaded = self._action(
                    dep, options, reason=f"Orphaned dependency of {action.target}", cascaded=True
                )
                plan.to_remove.append(cascaded)
                queue.append(cascaded)

    def _analyze_shared_packages(self, plan: UninstallPlan, options: RemovalOptions) -> None:
        """Decide the fate of shared system packages of removed tools.

        Packages are never uninstalled from the host; an orphaned one
        only loses its manifest record, and only under cascade.
        """
        removing = set(plan.tools_to_remove)
        decided: set[str] = set()
        for action in plan.to_remove:
            for package in self.shared_packages_of(action.target):
                if package in decided:
                    continue
                decided.add(package)
                record = self._manifest.get_dependency(package)
                users = self._manifest.shared_dependents(package)
                remaining = [u for u in users if u not in removing]

                if remaining:
                    verdict, reason = "preserve", f"Still needed by: {', '.join(remaining)}"
                elif record is not None and record.pre_existing:
                    verdict, reason = "preserve", "Package was installed before gearbox needed it"
                elif not options.cascade:
                    verdict, reason = "preserve", "No remaining dependents but cascade not enabled - keeping"
                elif options.safety == "conservative" and (bundle := self._bundle_needing_package(package, removing)):
                    verdict, reason = "preserve", f"Still part of installed bundle {bundle}"
                else:
                    verdict, reason = "untrack", "No remaining dependents - dropping the record, package stays installed"

                plan.dependencies.append(
                    DependencyAction(dependency=package, action=verdict, reason=reason, affected=users)
                )

    def _orphan_keep_reason(
        self,
        dep: str,
        removing: set[str],
        options: RemovalOptions,
    ) -> str:
        """Why an orphaned dependency stays; empty if it may go."""
        record = self._manifest.installations[dep]
        if not options.cascade:
            return "No remaining dependents but cascade not enabled - keeping"
        if record.pre_existing:
            return "Tool was pre-existing before gearbox installation"
        if options.safety == "aggressive":
            return ""
        if record.user_requested:
            return "Installed explicitly by the user"
        if options.safety == "conservative":
            bundle = self._needing_bundle(dep, removing)
            if bundle:
                return f"Still part of installed bundle {bundle}"
        return ""

    def _installed_bundles(self, removing: set[str], exclude: str = "") -> list[str]:
        """Bundles that stay installed once ``removing`` is gone.

        A bundle is installed while its bundle record stays, or while
        any staying tool was installed through it.
        """
        bundles = {
            bundle
            for bundle in self._manifest.bundles
            if bundle_key(bundle) not in removing
        }
        bundles.update(
            record.installed_by_bundle
            for name, record in self._manifest.tools.items()
            if name not in removing and name != exclude and record.installed_by_bundle
        )
        return sorted(b for b in bundles if self._catalog.is_bundle(b))

    def _needing_bundle(self, dep: str, removing: set[str]) -> str:
        """An installed bundle that includes ``dep``, if any."""
        for bundle in self._installed_bundles(removing, exclude=dep):
            if dep in expand_bundle(self._catalog, bundle):
                return bundle
        return ""

    def _bundle_needing_package(self, package: str, removing: set[str]) -> str:
        """An installed bundle that lists ``package`` as a system package."""
        for bundle in self._installed_bundles(removing):
            if package in bundle_system_packages(self._catalog, bundle):
                return bundle
        return ""
