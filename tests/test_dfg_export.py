"""
Tests for the directly-follows view of a process graph.
"""

import pytest

pytest.importorskip("pm4py")

from flowmap.dfg_export import build_dfg  # noqa: E402
from flowmap.graph_loader import parse_graph  # noqa: E402


def test_arc_frequencies_add_parallel_edges():
    dfg, _, _, _ = build_dfg(parse_graph("A B\nA B\nB C"))

    assert dfg == {("A", "B"): 2, ("B", "C"): 1}


def test_start_end_and_activity_counts():
    _, starts, ends, activities = build_dfg(parse_graph("A B\nC B\nB D"))

    assert starts == {"A": 1, "C": 1}
    assert ends == {"D": 1}
    assert activities == {"A": 1, "B": 2, "C": 1, "D": 1}
