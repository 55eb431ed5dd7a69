"""
L2 Resolver — Plan resolution.

Combines bundle expansion, dependency collection and topological
ordering into an InstallPlan the orchestrator can execute.
No I/O: everything here is a function of the catalog and the selection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from gearbox.core.errors import CyclicDependencyError
from gearbox.core.models.catalog import Catalog, ToolConfig
from gearbox.core.services.tool_install.domain.dag import (
    find_cycle,
    topological_order,
    transitive_dependents,
)
from gearbox.core.services.tool_install.resolver.bundles import (
    bundle_system_packages,
    expand_bundle,
    expand_selection,
)

logger = logging.getLogger(__name__)


@dataclass
class InstallPlan:
    """An ordered, cycle-free set of tools to build.

    Attributes:
        order: Tool names, every dependency before its dependents.
        tools: The catalog entries for ``order``, keyed by name.
        graph: In-plan dependencies for each planned tool.
        requested: Tools the selection asked for (after bundle expansion).
        user_requested: Tools named directly rather than through a bundle.
        bundle_origin: Tool → bundle that brought it into the selection.
        bundles: Bundles named in the selection → their member tools.
        system_packages: Opaque (non-catalog) dependencies, satisfied by
            the one-time shared pre-install step.
    """

    order: list[str] = field(default_factory=list)
    tools: dict[str, ToolConfig] = field(default_factory=dict)
    graph: dict[str, list[str]] = field(default_factory=dict)
    requested: list[str] = field(default_factory=list)
    user_requested: list[str] = field(default_factory=list)
    bundle_origin: dict[str, str] = field(default_factory=dict)
    bundles: dict[str, list[str]] = field(default_factory=dict)
    system_packages: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.order)

    @property
    def pulled_in(self) -> list[str]:
        """Planned tools that are only there as dependencies."""
        requested = set(self.requested)
        return [name for name in self.order if name not in requested]

    def system_packages_of(self, name: str) -> list[str]:
        """The opaque system packages one planned tool depends on."""
        packages = set(self.system_packages)
        return [dep for dep in self.tools[name].dependencies if dep in packages]

    def dependents_of(self, name: str) -> set[str]:
        """Planned tools that transitively depend on ``name``."""
        return transitive_dependents(self.graph, name)


def catalog_graph(catalog: Catalog) -> dict[str, list[str]]:
    """Tool → catalog dependencies, dropping opaque system packages."""
    names = set(catalog.tool_names)
    return {
        tool.name: [dep for dep in tool.dependencies if dep in names]
        for tool in catalog.tools
    }


def check_catalog_cycles(catalog: Catalog) -> None:
    """Fail fast if any tools in the catalog depend on each other in a loop.

    Raises:
        CyclicDependencyError: Naming the offending chain.
    """
    cycle = find_cycle(catalog_graph(catalog))
    if cycle:
        raise CyclicDependencyError(cycle)


def resolve_install_plan(catalog: Catalog, selection: list[str]) -> InstallPlan:
    """Produce an ordered install plan for a selection of tools and bundles.

    Catalog dependencies of selected tools are pulled into the plan;
    non-catalog dependencies are collected as system packages. Ties
    between independent tools are broken by catalog order.

    Raises:
        UnknownToolError: If a selected name is not a tool or bundle.
        CyclicDependencyError: On a bundle or tool dependency cycle.
            No partial plan is returned.
    """
    requested, origin = expand_selection(catalog, selection)
    check_catalog_cycles(catalog)

    graph = catalog_graph(catalog)

    # Dependency closure, depth-first from each requested tool
    planned: list[str] = []
    seen: set[str] = set()
    stack = list(reversed(requested))
    while stack:
        name = stack.pop()
        if name in seen:
            continue
        seen.add(name)
        planned.append(name)
        stack.extend(reversed(graph[name]))

    plan_graph = {name: list(graph[name]) for name in planned}
    order = topological_order(plan_graph, rank=catalog.tool_order())

    tools = {tool.name: tool for tool in catalog.tools if tool.name in seen}

    packages: list[str] = []
    for name in selection:
        if catalog.is_bundle(name):
            packages.extend(bundle_system_packages(catalog, name))
    for name in order:
        tool = tools[name]
        packages.extend(dep for dep in tool.dependencies if not catalog.has_tool(dep))

    plan = InstallPlan(
        order=order,
        tools={name: tools[name] for name in order},
        graph=plan_graph,
        requested=requested,
        user_requested=[name for name in selection if catalog.has_tool(name)],
        bundle_origin=origin,
        bundles={name: expand_bundle(catalog, name) for name in selection if catalog.is_bundle(name)},
        system_packages=list(dict.fromkeys(packages)),
    )

    if plan.pulled_in:
        logger.info("Pulled in dependencies: %s", ", ".join(plan.pulled_in))
    logger.debug("Install order: %s", " -> ".join(order))
    return plan
