"""
L2 Resolver — Bundle expansion.

Turns a mixed selection of tool and bundle names into a flat,
de-duplicated tool list. Included bundles expand before a bundle's
own tools; first occurrence wins.
"""

from __future__ import annotations

import logging

from gearbox.core.errors import CyclicDependencyError, UnknownToolError
from gearbox.core.models.catalog import Catalog

logger = logging.getLogger(__name__)


def _dedupe(names: list[str]) -> list[str]:
    seen: set[str] = set()
    unique: list[str] = []
    for name in names:
        if name not in seen:
            seen.add(name)
            unique.append(name)
    return unique


def expand_bundle(
    catalog: Catalog,
    name: str,
    _path: tuple[str, ...] = (),
) -> list[str]:
    """Expand one bundle into its tools, recursively.

    The same bundle may be reached along two different include paths
    (a diamond); only a bundle that includes itself is an error.

    Raises:
        UnknownToolError: If ``name`` or an included bundle is undefined.
        CyclicDependencyError: If the bundle transitively includes itself.
    """
    if name in _path:
        cycle = list(_path[_path.index(name):]) + [name]
        raise CyclicDependencyError(cycle, kind="bundle reference")

    bundle = catalog.get_bundle(name)
    if bundle is None:
        raise UnknownToolError(name, kind="bundle")

    path = _path + (name,)
    tools: list[str] = []
    for included in bundle.includes_bundles:
        tools.extend(expand_bundle(catalog, included, path))
    tools.extend(bundle.tools)
    return _dedupe(tools)


def expand_selection(
    catalog: Catalog,
    names: list[str],
) -> tuple[list[str], dict[str, str]]:
    """Expand a user selection of tools and bundles.

    Returns:
        ``(tools, origin)`` where ``tools`` is the de-duplicated tool
        list in selection order and ``origin`` maps each tool that came
        in through a bundle (and was not also named directly) to the
        first bundle that supplied it.

    Raises:
        UnknownToolError: If a name is neither a tool nor a bundle.
    """
    tools: list[str] = []
    origin: dict[str, str] = {}
    direct: set[str] = set()

    for name in names:
        if catalog.is_bundle(name):
            expanded = expand_bundle(catalog, name)
            logger.debug("Bundle %s expands to %d tools", name, len(expanded))
            for tool in expanded:
                origin.setdefault(tool, name)
            tools.extend(expanded)
        elif catalog.has_tool(name):
            direct.add(name)
            tools.append(name)
        else:
            raise UnknownToolError(name)

    for tool in tools:
        if not catalog.has_tool(tool):
            raise UnknownToolError(tool)

    origin = {tool: bundle for tool, bundle in origin.items() if tool not in direct}
    return _dedupe(tools), origin


def bundle_system_packages(catalog: Catalog, name: str) -> list[str]:
    """System packages a bundle and its included bundles ask for."""
    packages: list[str] = []

    def _collect(bundle_name: str, path: tuple[str, ...]) -> None:
        if bundle_name in path:
            raise CyclicDependencyError(
                list(path[path.index(bundle_name):]) + [bundle_name],
                kind="bundle reference",
            )
        bundle = catalog.get_bundle(bundle_name)
        if bundle is None:
            raise UnknownToolError(bundle_name, kind="bundle")
        for included in bundle.includes_bundles:
            _collect(included, path + (bundle_name,))
        packages.extend(bundle.system_packages)

    _collect(name, ())
    return _dedupe(packages)
