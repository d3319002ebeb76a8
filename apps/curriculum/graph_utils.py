"""Helpers for prerequisite graphs expressed as ``{node: [prerequisites]}``."""

from __future__ import annotations

from typing import List, Mapping, Sequence, Set

import networkx as nx

Graph = Mapping[str, Sequence[str]]


def to_digraph(graph: Graph) -> nx.DiGraph:
    """Build a ``prerequisite -> node`` digraph; edges to nodes outside ``graph`` are dropped."""

    digraph = nx.DiGraph()
    digraph.add_nodes_from(graph)
    for node, deps in graph.items():
        digraph.add_edges_from((dep, node) for dep in deps if dep in graph)
    return digraph


def has_self_dependency(graph: Graph) -> bool:
    return any(node in deps for node, deps in graph.items())


def _cyclic_components(digraph: nx.DiGraph, index: Mapping[str, int]) -> List[Set[str]]:
    components = [
        component
        for component in nx.strongly_connected_components(digraph)
        if len(component) > 1 or any(digraph.has_edge(node, node) for node in component)
    ]
    return sorted(components, key=lambda component: min(index[node] for node in component))


def find_cycles(graph: Graph) -> List[List[str]]:
    """Return one cycle per strongly connected component that contains a cycle.

    Each cycle lists nodes so that every node depends on the next one and the
    last depends on the first. Edges to nodes outside ``graph`` are ignored.
    Each cycle starts at its earliest node in input order, and cycles are
    ordered by the earliest input position of their component.
    """

    digraph = to_digraph(graph)
    index = {node: position for position, node in enumerate(graph)}
    cycles: List[List[str]] = []
    for component in _cyclic_components(digraph, index):
        start = min(component, key=index.__getitem__)
        edges = nx.find_cycle(digraph.subgraph(component), source=start)
        # edges run prerequisite -> dependent; reverse to list dependents first
        cycle = [u for u, _ in reversed(edges)]
        first = cycle.index(min(cycle, key=index.__getitem__))
        cycles.append(cycle[first:] + cycle[:first])
    return cycles


def has_cycles(graph: Graph) -> bool:
    return not nx.is_directed_acyclic_graph(to_digraph(graph))


def topological_order(graph: Graph) -> List[str]:
    """Kahn ordering with prerequisites first; nodes stuck in cycles are appended in input order.

    Ties are broken by input position. A node is stuck when it sits on a cycle
    or depends, directly or not, on a node that does.
    """

    digraph = to_digraph(graph)
    index = {node: position for position, node in enumerate(graph)}
    stuck: Set[str] = set()
    for component in _cyclic_components(digraph, index):
        stuck.update(component)
        for node in component:
            stuck.update(nx.descendants(digraph, node))

    acyclic = digraph.subgraph(node for node in digraph if node not in stuck)
    ordered = list(nx.lexicographical_topological_sort(acyclic, key=index.__getitem__))
    ordered.extend(node for node in graph if node in stuck)
    return ordered


def merge_intersecting(groups: Sequence[Sequence[str]]) -> List[List[str]]:
    """Merge node groups that share at least one node, preserving first-seen order."""

    merged: List[List[str]] = []
    for group in groups:
        current = list(dict.fromkeys(group))
        current_set = set(current)
        remaining: List[List[str]] = []
        for existing in merged:
            if current_set.intersection(existing):
                combined = list(dict.fromkeys([*existing, *current]))
                current, current_set = combined, set(combined)
            else:
                remaining.append(existing)
        remaining.append(current)
        merged = remaining
    return merged


__all__ = [
    "find_cycles",
    "has_cycles",
    "has_self_dependency",
    "merge_intersecting",
    "to_digraph",
    "topological_order",
]
