"""
L4 Execution — ``__init__.py`` re-exports build backends and tracking.

Everything that spawns processes or writes the manifest lives here.
"""

from gearbox.core.services.tool_install.execution.backend import (  # noqa: F401
    BuildBackend,
    BuildContext,
    BuildResult,
)
from gearbox.core.services.tool_install.execution.mock_backend import MockBackend  # noqa: F401
from gearbox.core.services.tool_install.execution.script_backend import (  # noqa: F401
    ScriptBackend,
)
from gearbox.core.services.tool_install.execution.tracking import (  # noqa: F401
    InstallationTracker,
)
