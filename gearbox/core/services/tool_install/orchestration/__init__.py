"""
L5 Orchestration — ``__init__.py`` re-exports top-level coordinators.

These are the entry points that external code calls.
"""

from gearbox.core.services.tool_install.orchestration.orchestrator import (  # noqa: F401
    BuildOrchestrator,
    OrchestratorReport,
    ProgressEvent,
    ToolOutcome,
)
