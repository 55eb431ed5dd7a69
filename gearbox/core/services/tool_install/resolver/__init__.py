"""
L2 Resolver — ``__init__.py`` re-exports all resolver functions.

These functions turn the catalog plus a user selection into
concrete install plans.
"""

from gearbox.core.services.tool_install.resolver.bundles import (  # noqa: F401
    bundle_system_packages,
    expand_bundle,
    expand_selection,
)
from gearbox.core.services.tool_install.resolver.plan_resolution import (  # noqa: F401
    InstallPlan,
    catalog_graph,
    check_catalog_cycles,
    resolve_install_plan,
)
