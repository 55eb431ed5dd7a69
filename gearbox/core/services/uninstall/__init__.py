"""
Uninstall — plan and execute safe removal of tracked tools.
"""

from gearbox.core.services.uninstall.execution import (  # noqa: F401
    RemovalExecutor,
    RemovalFailure,
    RemovalResult,
    format_bytes,
)
from gearbox.core.services.uninstall.planning import (  # noqa: F401
    DependencyAction,
    DependentsBlockUninstall,
    KeepReason,
    RemovalAction,
    RemovalOptions,
    RemovalPlanner,
    SafetyWarning,
    UninstallPlan,
    removal_method,
)
