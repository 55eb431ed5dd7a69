"""
L1 Domain — DAG utilities (pure).

Functions for tool dependency ordering, cycle detection,
and admission of ready tools during parallel builds.
No I/O, no subprocess.

Graphs are ``{node: [dependency, ...]}`` mappings: an edge points
from a tool to something it needs.
"""

from __future__ import annotations

import heapq
from collections.abc import Iterable, Mapping

from gearbox.core.errors import CyclicDependencyError


def find_cycle(graph: Mapping[str, Iterable[str]]) -> list[str] | None:
    """Find one dependency cycle, if the graph has any.

    Edges to nodes that are not keys of ``graph`` are ignored.

    Returns:
        The cycle in traversal order with the repeated node at both
        ends (``["a", "b", "a"]``), or None if the graph is acyclic.
    """
    visiting: set[str] = set()
    done: set[str] = set()
    path: list[str] = []

    def _visit(node: str) -> list[str] | None:
        visiting.add(node)
        path.append(node)
        for dep in graph.get(node, ()):
            if dep not in graph or dep in done:
                continue
            if dep in visiting:
                return path[path.index(dep):] + [dep]
            found = _visit(dep)
            if found:
                return found
        visiting.discard(node)
        path.pop()
        done.add(node)
        return None

    for node in graph:
        if node not in done:
            cycle = _visit(node)
            if cycle:
                return cycle
    return None


def topological_order(
    graph: Mapping[str, Iterable[str]],
    rank: Mapping[str, int] | None = None,
) -> list[str]:
    """Order nodes so that every dependency comes before its dependents.

    Kahn's algorithm. When several nodes are ready at once, the one
    with the lowest ``rank`` goes first (catalog order), falling back
    to the graph's own insertion order.

    Raises:
        CyclicDependencyError: If the graph has a cycle.
    """
    order_of = {node: i for i, node in enumerate(graph)}
    if rank is not None:
        order_of = {node: (rank.get(node, len(rank)), i) for node, i in order_of.items()}

    in_degree: dict[str, int] = {node: 0 for node in graph}
    adj: dict[str, list[str]] = {node: [] for node in graph}
    for node, deps in graph.items():
        for dep in set(deps):
            if dep in graph:
                in_degree[node] += 1
                adj[dep].append(node)

    heap = [(order_of[node], node) for node, deg in in_degree.items() if deg == 0]
    heapq.heapify(heap)

    ordered: list[str] = []
    while heap:
        _, node = heapq.heappop(heap)
        ordered.append(node)
        for successor in adj[node]:
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                heapq.heappush(heap, (order_of[successor], successor))

    if len(ordered) < len(in_degree):
        remaining = {n: list(graph[n]) for n in graph if n not in set(ordered)}
        raise CyclicDependencyError(find_cycle(remaining) or sorted(remaining))

    return ordered


def transitive_dependencies(
    graph: Mapping[str, Iterable[str]],
    node: str,
) -> set[str]:
    """Every node reachable from ``node`` along dependency edges."""
    seen: set[str] = set()
    stack = list(graph.get(node, ()))
    while stack:
        dep = stack.pop()
        if dep in seen:
            continue
        seen.add(dep)
        stack.extend(graph.get(dep, ()))
    return seen


def transitive_dependents(
    graph: Mapping[str, Iterable[str]],
    node: str,
) -> set[str]:
    """Every node that needs ``node``, directly or through others."""
    reverse: dict[str, list[str]] = {}
    for name, deps in graph.items():
        for dep in deps:
            reverse.setdefault(dep, []).append(name)
    return transitive_dependencies(reverse, node)


def get_ready(
    pending: Iterable[str],
    graph: Mapping[str, Iterable[str]],
    completed: set[str],
) -> list[str]:
    """Pending nodes whose in-graph dependencies have all completed.

    Args:
        pending: Nodes not yet started, in admission priority order.
        graph: Dependency mapping; only deps that are keys count.
        completed: Nodes that finished successfully.

    Returns:
        Ready nodes, preserving the order of ``pending``.
    """
    ready: list[str] = []
    for node in pending:
        deps = [d for d in graph.get(node, ()) if d in graph]
        if all(d in completed for d in deps):
            ready.append(node)
    return ready
