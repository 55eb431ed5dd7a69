"""
L3 Detection — ``__init__.py`` re-exports read-only system probes.
"""

from gearbox.core.services.tool_install.detection.host_resources import (  # noqa: F401
    auto_jobs,
    read_available_memory_mb,
    resolve_jobs,
)
from gearbox.core.services.tool_install.detection.tool_version import (  # noqa: F401
    LiveDetection,
    VerificationResult,
    detect_tool,
    extract_version,
    find_binary,
    verify_tool,
)
