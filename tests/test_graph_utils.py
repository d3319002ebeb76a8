from apps.curriculum.graph_utils import (
    find_cycles,
    has_cycles,
    has_self_dependency,
    merge_intersecting,
    to_digraph,
    topological_order,
)


def test_acyclic_graph() -> None:
    graph = {"a": [], "b": ["a"], "c": ["a", "b"]}

    assert not has_cycles(graph)
    assert not has_self_dependency(graph)
    assert topological_order(graph) == ["a", "b", "c"]


def test_cycle_orientation() -> None:
    graph = {"a": ["b"], "b": ["c"], "c": ["a"]}

    cycles = find_cycles(graph)

    assert len(cycles) == 1
    cycle = cycles[0]
    for index, node in enumerate(cycle):
        assert cycle[(index + 1) % len(cycle)] in graph[node]


def test_unknown_prerequisites_ignored() -> None:
    graph = {"a": ["missing"], "b": ["a"]}

    assert find_cycles(graph) == []
    assert topological_order(graph) == ["a", "b"]


def test_self_dependency() -> None:
    graph = {"a": ["a"], "b": []}

    assert has_self_dependency(graph)
    assert find_cycles(graph) == [["a"]]


def test_cyclic_nodes_appended_in_input_order() -> None:
    graph = {"x": ["y"], "y": ["x"], "z": []}

    assert topological_order(graph) == ["z", "x", "y"]


def test_merge_intersecting_groups() -> None:
    merged = merge_intersecting([["a", "b"], ["c", "d"], ["b", "e"], ["f"]])

    assert sorted(sorted(group) for group in merged) == [["a", "b", "e"], ["c", "d"], ["f"]]


def test_digraph_edges_point_from_prerequisite() -> None:
    digraph = to_digraph({"a": [], "b": ["a", "missing"]})

    assert list(digraph.nodes) == ["a", "b"]
    assert list(digraph.edges) == [("a", "b")]


def test_cycle_starts_at_earliest_input_node() -> None:
    graph = {"b": ["c"], "a": ["b"], "c": ["a"], "d": []}

    assert find_cycles(graph) == [["b", "c", "a"]]


def test_one_cycle_per_cyclic_component() -> None:
    graph = {"a": ["b"], "b": ["a"], "c": ["d"], "d": ["c"], "e": ["a"]}

    cycles = find_cycles(graph)

    assert [sorted(cycle) for cycle in cycles] == [["a", "b"], ["c", "d"]]
    assert has_cycles(graph)


def test_dependents_of_a_cycle_are_appended_after_it() -> None:
    graph = {"x": ["y"], "y": ["x"], "w": ["x"], "z": []}

    assert topological_order(graph) == ["z", "x", "y", "w"]


def test_ties_follow_input_order() -> None:
    graph = {"c": [], "b": ["a"], "a": []}

    assert topological_order(graph) == ["c", "a", "b"]
