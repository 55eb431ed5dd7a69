"""
Manifest — the durable record of what gearbox installed on this host.

Serialized to ``~/.gearbox/manifest.json`` by the manifest store.
Installation records are owned exclusively by the manifest; other
components read them but only mutate them through these methods.

Besides one record per tool, the manifest keeps:

- a ``<bundle>_bundle`` record (method ``bundle``) for each bundle
  installed as a whole, listing its member tools as dependencies;
- ``dependencies``: shared system packages (``build-essential``,
  ``pkg-config``, ...) and the tools that need them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

SCHEMA_VERSION = "1.0"
BUNDLE_SUFFIX = "_bundle"

InstallMethod = Literal[
    "source_build",
    "cargo_install",
    "go_install",
    "pipx",
    "npm_global",
    "system_package",
    "manual_download",
    "bundle",
    "pre_existing",
]


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


def bundle_key(bundle: str) -> str:
    """Manifest key of a bundle record."""
    return bundle + BUNDLE_SUFFIX


class InstallationRecord(BaseModel):
    """How and when one tool (or bundle) was installed."""

    method: InstallMethod = "source_build"
    version: str = ""
    installed_at: str = Field(default_factory=_now_iso)
    binary_paths: list[str] = Field(default_factory=list)

    build_dir: str = ""
    source_repo: str = ""
    # Tools this one needs; for a bundle record, its member tools
    dependencies: list[str] = Field(default_factory=list)
    installed_by_bundle: str = ""
    user_requested: bool = False
    installation_context: list[str] = Field(default_factory=list)
    config_files: list[str] = Field(default_factory=list)
    system_packages: list[str] = Field(default_factory=list)

    @property
    def pre_existing(self) -> bool:
        return self.method == "pre_existing"

    @property
    def is_bundle(self) -> bool:
        return self.method == "bundle"


class DependencyRecord(BaseModel):
    """A shared system package and the tools that need it."""

    installed_by: str = "gearbox"
    version: str = ""
    pre_existing: bool = False
    dependents: list[str] = Field(default_factory=list)
    install_path: str = ""
    installed_at: str = Field(default_factory=_now_iso)


class Manifest(BaseModel):
    """Root manifest model — serialized to manifest.json."""

    schema_version: str = SCHEMA_VERSION
    installations: dict[str, InstallationRecord] = Field(default_factory=dict)
    dependencies: dict[str, DependencyRecord] = Field(default_factory=dict)
    created_at: str = Field(default_factory=_now_iso)
    updated_at: str = Field(default_factory=_now_iso)

    def touch(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = _now_iso()

    # ── Installations ───────────────────────────────────────────

    def add_installation(self, name: str, record: InstallationRecord) -> None:
        """Add or replace the record for a tool."""
        self.installations[name] = record
        self.touch()

    def remove_installation(self, name: str) -> InstallationRecord | None:
        """Drop a record, returning it if it existed.

        The name is also struck from bundle member lists and from the
        dependents of shared system packages.
        """
        record = self.installations.pop(name, None)
        if record is None:
            return None
        for other in self.installations.values():
            if other.is_bundle and name in other.dependencies:
                other.dependencies.remove(name)
        for dep in self.dependencies.values():
            if name in dep.dependents:
                dep.dependents.remove(name)
        self.touch()
        return record

    def get_installation(self, name: str) -> InstallationRecord | None:
        return self.installations.get(name)

    def is_installed(self, name: str) -> bool:
        return name in self.installations

    @property
    def tools(self) -> dict[str, InstallationRecord]:
        """Tool records only, without bundle records."""
        return {name: r for name, r in self.installations.items() if not r.is_bundle}

    @property
    def bundles(self) -> dict[str, InstallationRecord]:
        """Bundle records, keyed by bundle name (without the suffix)."""
        return {
            name.removesuffix(BUNDLE_SUFFIX): r
            for name, r in self.installations.items()
            if r.is_bundle
        }

    def dependents_of(self, name: str) -> list[str]:
        """Tools whose recorded dependencies include ``name``."""
        return [
            tool
            for tool, record in self.tools.items()
            if tool != name and name in record.dependencies
        ]

    # ── Shared dependencies ─────────────────────────────────────

    def add_dependency(self, name: str, record: DependencyRecord) -> None:
        self.dependencies[name] = record
        self.touch()

    def get_dependency(self, name: str) -> DependencyRecord | None:
        return self.dependencies.get(name)

    def remove_dependency(self, name: str) -> DependencyRecord | None:
        record = self.dependencies.pop(name, None)
        if record is not None:
            self.touch()
        return record

    def add_dependent(self, dependency: str, dependent: str) -> DependencyRecord:
        """Note that ``dependent`` needs ``dependency``, creating its record."""
        record = self.dependencies.get(dependency)
        if record is None:
            record = DependencyRecord(dependents=[dependent])
            self.add_dependency(dependency, record)
        elif dependent not in record.dependents:
            record.dependents.append(dependent)
            self.touch()
        return record

    def shared_dependents(self, dependency: str) -> list[str]:
        """Tools recorded as needing a shared system package."""
        record = self.dependencies.get(dependency)
        return list(record.dependents) if record else []

    def installation_stats(self) -> dict[str, int]:
        """Count records by method, plus ``total``, ``tools`` and ``bundles``."""
        stats: dict[str, int] = {}
        bundles = 0
        for record in self.installations.values():
            stats[record.method] = stats.get(record.method, 0) + 1
            bundles += record.is_bundle
        stats["total"] = len(self.installations)
        stats["bundles"] = bundles
        stats["tools"] = len(self.installations) - bundles
        return stats
