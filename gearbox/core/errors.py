"""
Error taxonomy — every failure the engine reports to a user.

Structural errors (catalog, manifest, cycles) abort the whole
operation. Build failures are isolated to a branch of the plan and
are carried inside an orchestrator report rather than raised.

The blocked-uninstall case is not an exception at all: it is a
``DependentsBlockUninstall`` entry inside an ``UninstallPlan``.
"""

from __future__ import annotations


class GearboxError(Exception):
    """Base class for all gearbox errors.

    Attributes:
        tool: Name of the affected tool, when there is one.
        cause: The underlying exception, also chained as ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        *,
        tool: str | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.tool = tool
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class ConfigError(GearboxError):
    """The tool catalog or bundle configuration is missing or invalid."""


class UnknownToolError(GearboxError):
    """A selection names a tool (or bundle) that the catalog does not define."""

    def __init__(self, name: str, *, kind: str = "tool"):
        super().__init__(f"Unknown {kind}: {name}", tool=name)
        self.name = name


class CyclicDependencyError(GearboxError):
    """A dependency or bundle reference cycle.

    ``cycle`` lists the chain in traversal order with the repeated
    node at both ends, e.g. ``["a", "b", "a"]``.
    """

    def __init__(self, cycle: list[str], *, kind: str = "dependency"):
        self.cycle = list(cycle)
        chain = " -> ".join(self.cycle)
        super().__init__(
            f"Circular {kind} detected: {chain}",
            tool=self.cycle[0] if self.cycle else None,
        )


class BuildFailure(GearboxError):
    """A build backend finished with a non-zero exit status."""

    def __init__(self, tool: str, error: str, *, returncode: int | None = None):
        super().__init__(f"Failed to install {tool}: {error}", tool=tool)
        self.error = error
        self.returncode = returncode


class ManifestCorrupt(GearboxError):
    """The persisted manifest cannot be parsed or validated.

    Never recovered silently: the operator restores a backup or
    resets the manifest explicitly.
    """

    def __init__(self, path: object, cause: BaseException):
        super().__init__(f"Manifest at {path} is corrupt: {cause}", cause=cause)
        self.path = path


class BackupNotFound(GearboxError):
    """A restore named a backup file that does not exist."""

    def __init__(self, name: str):
        super().__init__(f"Backup file does not exist: {name}")
        self.name = name


class InvalidBackupSuffix(GearboxError):
    """A backup label that would not stay a plain file name."""

    def __init__(self, suffix: str):
        super().__init__(
            f"Invalid backup suffix {suffix!r}: use letters, digits, dots, hyphens or underscores"
        )
        self.suffix = suffix
