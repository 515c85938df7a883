"""
Tests for start/end detection and bounded path discovery.
"""

import logging
import time

from flowmap.graph_loader import parse_graph
from flowmap.path_enumerator import (
    PathLimits,
    find_all_paths,
    find_end_nodes,
    find_path,
    find_start_nodes,
)


def build_star_graph(leaves: int):
    """S fans out to `leaves` end steps."""
    return parse_graph("\n".join(f"S leaf{i}" for i in range(leaves)))


def build_chain(length: int):
    return parse_graph("\n".join(f"n{i} n{i + 1}" for i in range(length - 1)))


def build_layered_graph():
    """20 sources feed 5 fully connected layers of 10, plus 15 unrelated t->e pairs: 100 nodes."""
    lines = [f"s{i} l0_{j}" for i in range(20) for j in range(10)]
    for layer in range(4):
        lines += [f"l{layer}_{i} l{layer + 1}_{j}" for i in range(10) for j in range(10)]
    lines += [f"t{i} e{i}" for i in range(15)]
    return parse_graph("\n".join(lines))


def build_dead_end_maze():
    """S explores a 4x4 dense block ending in a cycle before its direct edge to E; T->U is trivial."""
    lines = [f"S a0_{j}" for j in range(4)]
    for layer in range(3):
        lines += [f"a{layer}_{i} a{layer + 1}_{j}" for i in range(4) for j in range(4)]
    lines += [f"a3_{i} C1" for i in range(4)]
    lines += ["C1 C2", "C2 C1", "S E", "T U"]
    return parse_graph("\n".join(lines))


class TestStartAndEndNodes:
    def test_chain(self):
        graph = parse_graph("A B\nB C\nC D")

        assert find_start_nodes(graph.node_ids, graph.edges) == ["A"]
        assert find_end_nodes(graph.node_ids, graph.edges) == ["D"]

    def test_cycle_has_no_start(self):
        graph = parse_graph("A B\nB A")

        assert find_start_nodes(graph.node_ids, graph.edges) == []


class TestFindPath:
    def test_start_equals_end(self):
        assert find_path("A", "A", {}) == ["A"]

    def test_follows_edge_order(self):
        """The first successor in edge order is explored first."""
        adjacency = {"A": ["B", "C"], "B": ["D"], "C": ["D"]}

        assert find_path("A", "D", adjacency) == ["A", "B", "D"]

    def test_unreachable(self):
        assert find_path("A", "Z", {"A": ["B"]}) is None

    def test_budget_exhausted(self):
        adjacency = {"A": ["B"], "B": ["C"], "C": ["D"]}

        assert find_path("A", "D", adjacency, max_expansions=1) is None
        assert find_path("A", "D", adjacency, max_expansions=10) == ["A", "B", "C", "D"]

    def test_long_chain(self):
        """Path length is not limited by the interpreter's recursion depth."""
        graph = build_chain(1500)

        paths = find_all_paths(graph, PathLimits(max_nodes=2000))

        assert len(paths) == 1
        assert paths[0][0] == "n0"
        assert paths[0][-1] == "n1499"
        assert len(paths[0]) == 1500

    def test_revisits_node_on_a_different_branch(self):
        adjacency = {"A": ["B", "C"], "B": ["D"], "C": ["B"], "D": []}

        assert find_path("A", "Z", adjacency) is None
        assert find_path("C", "D", adjacency) == ["C", "B", "D"]


class TestFindAllPaths:
    def test_chain(self):
        graph = parse_graph("A B\nB C\nC D")

        assert find_all_paths(graph) == [["A", "B", "C", "D"]]

    def test_branch(self):
        graph = parse_graph("X,Y\nX,Z", "csv")

        assert find_all_paths(graph) == [["X", "Y"], ["X", "Z"]]

    def test_pure_cycle_yields_nothing(self):
        assert find_all_paths(parse_graph("A B\nB C\nC A")) == []

    def test_inner_cycle_never_repeats_nodes(self):
        graph = parse_graph("A B\nB C\nC B\nC D")
        paths = find_all_paths(graph)

        assert paths == [["A", "B", "C", "D"]]
        for path in paths:
            assert len(path) == len(set(path))

    def test_self_loop_is_not_followed(self):
        graph = parse_graph("A B\nB B\nB C")

        assert find_all_paths(graph) == [["A", "B", "C"]]

    def test_max_paths(self):
        graph = build_star_graph(60)
        paths = find_all_paths(graph)

        assert len(paths) == 50
        assert paths[0] == ["S", "leaf0"]

    def test_custom_max_paths(self):
        assert len(find_all_paths(build_star_graph(10), PathLimits(max_paths=3))) == 3

    def test_max_nodes_truncates_graph(self):
        """Nodes past the cut are dropped together with their edges."""
        graph = parse_graph("A B\nB C\nC D\nD E")

        assert find_all_paths(graph, PathLimits(max_nodes=3)) == [["A", "B", "C"]]

    def test_unreachable_end_skipped(self):
        graph = parse_graph("A B\nC D")

        assert find_all_paths(graph) == [["A", "B"], ["C", "D"]]


class TestSearchBudget:
    def test_dense_layered_graph_is_fast(self):
        graph = build_layered_graph()
        assert len(graph.nodes) == 100

        started = time.perf_counter()
        paths = find_all_paths(graph)
        elapsed = time.perf_counter() - started

        assert len(paths) == 50
        assert paths[0] == ["s0", "l0_0", "l1_0", "l2_0", "l3_0", "l4_0"]
        assert elapsed < 1.0

    def test_dead_end_exploration_within_default_budget(self):
        assert find_all_paths(build_dead_end_maze()) == [["S", "E"], ["T", "U"]]

    def test_budget_is_shared_across_pairs(self, caplog, monkeypatch):
        """Once spent on S->E, later pairs are not searched and the stop is logged once."""
        monkeypatch.setattr(logging.getLogger("flowmap"), "propagate", True)
        caplog.set_level(logging.WARNING, logger="flowmap.path_enumerator")

        paths = find_all_paths(build_dead_end_maze(), PathLimits(max_expansions=200))

        assert paths == []
        warnings = [
            record
            for record in caplog.records
            if record.name == "flowmap.path_enumerator" and record.levelno == logging.WARNING
        ]
        assert len(warnings) == 1
        assert "200 expansions" in warnings[0].getMessage()
