"""
Tests for cycle time, variants, bottlenecks and the derived tables.
"""

import pytest

from flowmap.graph_loader import parse_graph
from flowmap.process_metrics import (
    BottleneckCategory,
    bottleneck_impact,
    build_metrics_payload,
    compute_bottleneck_table,
    compute_cycle_time,
    compute_overview,
    compute_path_length_distribution,
    compute_snapshot,
    compute_variant_count,
    compute_variants_table,
    count_bottlenecks,
    identify_bottlenecks,
)


class TestCycleTimeAndVariants:
    def test_empty(self):
        assert compute_cycle_time([]) == 0.0
        assert compute_variant_count([]) == 0

    def test_mean_length(self):
        paths = [["a", "b"], ["a", "b", "c", "d"]]

        assert compute_cycle_time(paths) == pytest.approx(3.0)
        assert compute_variant_count(paths) == 2

    def test_chain_snapshot(self):
        snapshot = compute_snapshot(parse_graph("A B\nB C\nC D"))

        assert snapshot.cycle_time == pytest.approx(4.0)
        assert snapshot.variant_count == 1
        assert snapshot.bottlenecks == ()
        assert snapshot.bottleneck_count == 0

    def test_branch_snapshot(self):
        snapshot = compute_snapshot(parse_graph("X,Y\nX,Z", "csv"))

        assert snapshot.variant_count == 2
        assert snapshot.cycle_time == pytest.approx(2.0)

    def test_snapshot_is_idempotent(self):
        graph = parse_graph("A B\nC B\nB D\nD E\nC E")

        assert compute_snapshot(graph) == compute_snapshot(graph)


class TestBottlenecks:
    def test_convergence(self):
        graph = parse_graph("A B\nC B\nD B")
        bottlenecks = identify_bottlenecks(graph)

        assert len(bottlenecks) == 1
        assert bottlenecks[0].node_id == "B"
        assert bottlenecks[0].incoming_count == 3
        assert bottlenecks[0].category == BottleneckCategory.MAIN_PROCESS

    def test_categories(self):
        assert BottleneckCategory.for_node("=Sync") == BottleneckCategory.MERGE_POINT
        assert BottleneckCategory.for_node("Approve") == BottleneckCategory.MAIN_PROCESS
        assert BottleneckCategory.for_node("pick") == BottleneckCategory.SUBPROCESS
        assert BottleneckCategory.for_node("7days") == BottleneckCategory.SUBPROCESS

    def test_ties_keep_first_seen_order(self):
        graph = parse_graph("A X\nC Y\nB X\nD Y")

        assert [b.node_id for b in identify_bottlenecks(graph)] == ["X", "Y"]

    def test_sorted_by_count(self):
        graph = parse_graph("A X\nB X\nA Y\nB Y\nC Y")

        assert [b.node_id for b in identify_bottlenecks(graph)] == ["Y", "X"]

    def test_top_five_but_full_count(self):
        lines = []
        for target in range(6):
            lines += [f"s{target}a t{target}", f"s{target}b t{target}"]
        graph = parse_graph("\n".join(lines))

        assert len(identify_bottlenecks(graph)) == 5
        assert count_bottlenecks(graph) == 6

    def test_parallel_edges_count(self):
        graph = parse_graph("A B\nA B")

        assert identify_bottlenecks(graph)[0].incoming_count == 2

    def test_impact_text(self):
        assert "consolidation" in bottleneck_impact(BottleneckCategory.MERGE_POINT, 2)
        assert "Critical" in bottleneck_impact(BottleneckCategory.MAIN_PROCESS, 11)
        assert "Moderate" in bottleneck_impact(BottleneckCategory.SUBPROCESS, 6)
        assert "Minor" in bottleneck_impact(BottleneckCategory.SUBPROCESS, 2)


class TestOverviewAndTables:
    def test_overview(self):
        graph = parse_graph("A B\nB C\nC D")
        overview = compute_overview(graph, [["A", "B", "C", "D"]])

        assert overview == {
            "nodes": 4,
            "edges": 3,
            "entry_points": 3,
            "exit_points": 3,
            "parallel_branches": 0,
            "max_depth": 4,
            "avg_branching": pytest.approx(0.75),
        }

    def test_variants_table(self):
        table = compute_variants_table([["X", "Y"], ["X", "Z"]])

        assert list(table.columns) == ["variant", "path", "steps"]
        assert table["path"].tolist() == ["X → Y", "X → Z"]
        assert compute_variants_table([["X", "Y"], ["X", "Z"]], top_n=1).shape[0] == 1

    def test_empty_tables_keep_columns(self):
        snapshot = compute_snapshot(parse_graph("A B"))

        assert list(compute_bottleneck_table(snapshot).columns) == ["step", "incoming", "category", "impact"]
        assert compute_variants_table([]).empty

    def test_path_length_distribution(self):
        table = compute_path_length_distribution([["a", "b"], ["c", "d"], ["a", "b", "c"]])

        assert table.to_dict("records") == [{"steps": 2, "paths": 2}, {"steps": 3, "paths": 1}]

    def test_metrics_payload(self):
        graph = parse_graph("A B 12 4\nC B\nD B")
        payload = build_metrics_payload(graph, compute_snapshot(graph))

        assert payload["metrics"]["bottlenecks"] == [{"id": "B", "incoming": 3, "category": "Main Process"}]
        assert payload["nodes"][1] == {"id": "B", "kind": "Main", "incoming": 3, "outgoing": 0, "duration": 12.0, "cost": 4.0}
        assert len(payload["edges"]) == 3
        assert payload["overview"]["nodes"] == 4
