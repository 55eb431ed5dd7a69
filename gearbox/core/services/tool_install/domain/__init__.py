"""
L1 Domain — ``__init__.py`` re-exports all pure domain functions.

These functions have NO subprocess calls, NO filesystem access,
NO network calls. Pure input→output.
"""

from gearbox.core.services.tool_install.domain.dag import (  # noqa: F401
    find_cycle,
    get_ready,
    topological_order,
    transitive_dependencies,
    transitive_dependents,
)
