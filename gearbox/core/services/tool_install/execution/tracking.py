"""
L4 Execution — Installation tracking.

Turns successful builds and tools found already present into
InstallationRecords, plus one record per bundle installed as a whole,
and persists them through the manifest store.
"""

from __future__ import annotations

import logging
from pathlib import Path

from gearbox.core.models.catalog import ToolConfig
from gearbox.core.models.manifest import InstallationRecord, Manifest, bundle_key
from gearbox.core.persistence.manifest_store import ManifestStore
from gearbox.core.services.tool_install.detection.tool_version import detect_tool

logger = logging.getLogger(__name__)


def installation_context(bundle: str = "", user_requested: bool = False) -> list[str]:
    """Context tags for a record: ``bundle:<name>`` and/or ``user_request``."""
    context: list[str] = []
    if bundle:
        context.append(f"bundle:{bundle}")
    if user_requested:
        context.append("user_request")
    return context


class InstallationTracker:
    """Records installations in a manifest and saves it after each change."""

    def __init__(self, store: ManifestStore, manifest: Manifest | None = None):
        self._store = store
        self._manifest = manifest if manifest is not None else store.load()

    @property
    def manifest(self) -> Manifest:
        return self._manifest

    def track_build(
        self,
        tool: ToolConfig,
        *,
        build_dir: Path | None = None,
        bundle: str = "",
        user_requested: bool = False,
        system_packages: list[str] | None = None,
    ) -> InstallationRecord:
        """Record a successful source build of a catalog tool.

        The version and binary path come from probing the freshly
        installed binary. ``system_packages`` are the tool's non-catalog
        dependencies; the tool is recorded as one of their dependents.
        """
        live = detect_tool(tool)
        packages = list(system_packages or [])
        record = InstallationRecord(
            method="source_build",
            version=live.version,
            binary_paths=[live.path] if live.path else [],
            build_dir=str(build_dir / tool.name) if build_dir else "",
            source_repo=tool.repository,
            dependencies=list(tool.dependencies),
            installed_by_bundle=bundle,
            user_requested=user_requested,
            installation_context=installation_context(bundle, user_requested),
            system_packages=packages,
        )
        if not live.found:
            logger.warning(
                "%s built successfully but %s is not on PATH", tool.name, tool.binary_name
            )
        for package in packages:
            self._manifest.add_dependent(package, tool.name)
        return self.track(tool.name, record)

    def track_bundle(self, bundle: str, tools: list[str], user_requested: bool = True) -> InstallationRecord:
        """Record a bundle installed as a whole.

        Member tools already tracked gain ``bundle:<name>`` context, and
        ``installed_by_bundle`` unless another bundle claimed them first.
        """
        context = f"bundle:{bundle}"
        for name in tools:
            member = self._manifest.get_installation(name)
            if member is None:
                continue
            if not member.installed_by_bundle:
                member.installed_by_bundle = bundle
            if context not in member.installation_context:
                member.installation_context.append(context)
        record = InstallationRecord(
            method="bundle",
            dependencies=list(tools),
            user_requested=user_requested,
            installation_context=[context],
        )
        return self.track(bundle_key(bundle), record)

    def track_pre_existing(self, name: str, binary_path: str, version: str) -> InstallationRecord:
        """Record a tool that was installed before gearbox saw it."""
        record = InstallationRecord(
            method="pre_existing",
            version=version,
            binary_paths=[binary_path] if binary_path else [],
            user_requested=False,
            installation_context=["pre_existing"],
        )
        return self.track(name, record)

    def track(self, name: str, record: InstallationRecord) -> InstallationRecord:
        previous = self._manifest.get_installation(name)
        if previous is not None and previous.user_requested and not record.user_requested:
            record.user_requested = True
        self._manifest.add_installation(name, record)
        self._store.save(self._manifest)
        logger.info("Tracked %s (%s %s)", name, record.method, record.version)
        return record
