"""
Unified status — one answer to "is this tool installed?".

Merges two independent snapshots: what the manifest says gearbox
installed, and what live probing finds on the search path. The merge
is pure; ``sync_manifest_with_system`` is the only method that writes,
and it only ever adds records for tools found live but never tracked.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from gearbox.core.errors import UnknownToolError
from gearbox.core.models.catalog import Catalog, ToolConfig
from gearbox.core.models.manifest import InstallationRecord, Manifest
from gearbox.core.models.status import ToolStatus
from gearbox.core.persistence.audit import AuditEntry, AuditWriter, summarize_status
from gearbox.core.persistence.manifest_store import ManifestStore
from gearbox.core.services.tool_install.detection.tool_version import (
    LiveDetection,
    detect_tool,
)
from gearbox.core.services.tool_install.execution.tracking import InstallationTracker

logger = logging.getLogger(__name__)

# Concurrent live probes during a full status scan
PROBE_WORKERS = 8


def merge_status(
    name: str,
    record: InstallationRecord | None,
    live: LiveDetection,
    *,
    in_catalog: bool = True,
) -> ToolStatus:
    """Combine a manifest record and a live probe into a ToolStatus."""
    in_manifest = record is not None
    status = ToolStatus(
        name=name,
        in_manifest=in_manifest,
        live_detected=live.found,
        needs_sync=in_manifest != live.found,
        installed=in_manifest or live.found,
        in_catalog=in_catalog,
    )

    if record is not None:
        status.source = "gearbox-managed"
        status.binary_paths = list(record.binary_paths)
        status.manifest_version = record.version
        status.install_method = record.method
        status.installed_at = record.installed_at
    elif live.found:
        status.source = "system-detected"
        status.binary_paths = [live.path] if live.path else []

    if live.found:
        status.version = live.version
    elif record is not None:
        status.version = record.version
    return status


class UnifiedStatusService:
    """Tool status across the catalog, the manifest and the live system.

    Args:
        catalog: The validated tool catalog.
        store: Manifest store to read (and, on sync, write).
        detector: Live probe for one tool; replaceable in tests.
        audit: Ledger that receives an entry for each sync.
    """

    def __init__(
        self,
        catalog: Catalog,
        store: ManifestStore,
        *,
        detector: Callable[[ToolConfig], LiveDetection] = detect_tool,
        audit: AuditWriter | None = None,
    ):
        self._catalog = catalog
        self._store = store
        self._detector = detector
        self._audit = audit

    def _probe(self, name: str) -> LiveDetection:
        tool = self._catalog.get_tool(name)
        if tool is None:
            # Not in the catalog: no binary name to look for
            return LiveDetection(found=False)
        return self._detector(tool)

    def get_tool_status(self, name: str, manifest: Manifest | None = None) -> ToolStatus:
        """Status of one tool.

        Raises:
            UnknownToolError: If the tool is neither in the catalog nor
                in the manifest.
            ManifestCorrupt: If the manifest can't be read.
        """
        if manifest is None:
            manifest = self._store.load()
        record = manifest.tools.get(name)
        in_catalog = self._catalog.has_tool(name)
        if record is None and not in_catalog:
            raise UnknownToolError(name)
        return merge_status(name, record, self._probe(name), in_catalog=in_catalog)

    def get_all_tools_status(self, manifest: Manifest | None = None) -> dict[str, ToolStatus]:
        """Status of every catalog tool plus tracked tools no longer in it.

        Catalog tools come first, in catalog order.
        """
        if manifest is None:
            manifest = self._store.load()

        names = list(self._catalog.tool_names)
        names += sorted(n for n in manifest.tools if not self._catalog.has_tool(n))

        with ThreadPoolExecutor(max_workers=PROBE_WORKERS, thread_name_prefix="probe") as pool:
            probes = list(pool.map(self._probe, names))

        return {
            name: merge_status(
                name,
                manifest.get_installation(name),
                live,
                in_catalog=self._catalog.has_tool(name),
            )
            for name, live in zip(names, probes)
        }

    def get_installed_count(self) -> int:
        return sum(1 for s in self.get_all_tools_status().values() if s.installed)

    def sync_manifest_with_system(self) -> list[str]:
        """Record live-only tools in the manifest as pre-existing.

        Tools tracked in the manifest but missing live are left alone;
        they may be temporarily unavailable.

        Returns:
            Names of the tools that were added.
        """
        manifest = self._store.load()
        statuses = self.get_all_tools_status(manifest)
        tracker = InstallationTracker(self._store, manifest)

        added: list[str] = []
        errors: list[str] = []
        for name, status in statuses.items():
            if not status.needs_sync:
                continue
            if status.live_detected and not status.in_manifest:
                path = status.binary_paths[0] if status.binary_paths else ""
                try:
                    tracker.track_pre_existing(name, path, status.version)
                except OSError as e:
                    logger.error("Cannot record pre-existing %s: %s", name, e)
                    errors.append(f"{name}: {e}")
                    continue
                added.append(name)
            else:
                logger.info("%s is tracked but not found on PATH; leaving it tracked", name)

        logger.info("Sync added %d pre-existing tools", len(added))
        if self._audit is not None:
            self._audit.write(
                AuditEntry(
                    operation_type="sync",
                    tools=added,
                    status=summarize_status(len(added), len(errors)),
                    tools_total=len(added) + len(errors),
                    tools_succeeded=len(added),
                    tools_failed=len(errors),
                    errors=errors,
                )
            )
        return added
