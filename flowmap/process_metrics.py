from __future__ import annotations

import statistics
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from .graph_loader import ProcessGraph
from .path_enumerator import PathLimits, find_all_paths
from .settings import MERGE_PREFIX


class BottleneckCategory(str, Enum):
    MERGE_POINT = "Merge Point"
    MAIN_PROCESS = "Main Process"
    SUBPROCESS = "Subprocess"

    @classmethod
    def for_node(cls, node_id: str) -> "BottleneckCategory":
        if node_id.startswith(MERGE_PREFIX):
            return cls.MERGE_POINT
        if node_id[:1].isupper():
            return cls.MAIN_PROCESS
        return cls.SUBPROCESS


@dataclass(frozen=True)
class Bottleneck:
    node_id: str
    incoming_count: int
    category: BottleneckCategory


@dataclass(frozen=True)
class MetricsSnapshot:
    cycle_time: float
    variant_count: int
    bottlenecks: Tuple[Bottleneck, ...]
    bottleneck_count: int
    paths: Tuple[Tuple[str, ...], ...] = field(default=())


def compute_cycle_time(paths: Sequence[Sequence[str]]) -> float:
    if not paths:
        return 0.0
    return statistics.fmean(len(path) for path in paths)


def compute_variant_count(paths: Sequence[Sequence[str]]) -> int:
    return len(paths)


def _bottleneck_candidates(graph: ProcessGraph) -> List[Tuple[str, int]]:
    incoming = graph.incoming_counts()
    candidates = [(node_id, count) for node_id, count in incoming.items() if count > 1]
    # sorted() is stable, so ties keep first-seen order
    return sorted(candidates, key=lambda item: item[1], reverse=True)


def identify_bottlenecks(graph: ProcessGraph, top_n: int = 5) -> List[Bottleneck]:
    """
    Nodes with more than one incoming edge, busiest first.

    Counts use the full edge list with parallel edges counted individually. The category comes from
    the node's naming convention, not from the graph structure.
    """
    return [
        Bottleneck(node_id=node_id, incoming_count=count, category=BottleneckCategory.for_node(node_id))
        for node_id, count in _bottleneck_candidates(graph)[:top_n]
    ]


def count_bottlenecks(graph: ProcessGraph) -> int:
    return len(_bottleneck_candidates(graph))


def bottleneck_impact(category: BottleneckCategory, count: int) -> str:
    if category == BottleneckCategory.MERGE_POINT:
        return "Data consolidation point that may cause processing delays"
    if count > 10:
        return "Critical congestion point requiring immediate review"
    if count > 5:
        return "Moderate bottleneck with potential for queue formation"
    return "Minor convergence point to monitor"


def compute_snapshot(graph: ProcessGraph, limits: PathLimits = PathLimits(), top_n: int = 5) -> MetricsSnapshot:
    paths = find_all_paths(graph, limits)
    return MetricsSnapshot(
        cycle_time=compute_cycle_time(paths),
        variant_count=compute_variant_count(paths),
        bottlenecks=tuple(identify_bottlenecks(graph, top_n=top_n)),
        bottleneck_count=count_bottlenecks(graph),
        paths=tuple(tuple(path) for path in paths),
    )


def compute_overview(graph: ProcessGraph, paths: Sequence[Sequence[str]]) -> Dict[str, Any]:
    node_count = len(graph.nodes)
    edge_count = len(graph.edges)
    outgoing = graph.outgoing_counts()
    return {
        "nodes": node_count,
        "edges": edge_count,
        "entry_points": len({edge.source for edge in graph.edges}),
        "exit_points": len({edge.target for edge in graph.edges}),
        "parallel_branches": sum(1 for node_id in graph.nodes if outgoing.get(node_id, 0) > 1),
        "max_depth": max((len(path) for path in paths), default=0),
        "avg_branching": edge_count / (node_count or 1),
    }


def compute_variants_table(paths: Sequence[Sequence[str]], top_n: Optional[int] = None) -> pd.DataFrame:
    rows = []
    selected = list(paths) if top_n is None else list(paths)[:top_n]
    for idx, path in enumerate(selected, start=1):
        rows.append(
            {
                "variant": idx,
                "path": " → ".join(path),
                "steps": len(path),
            }
        )
    return pd.DataFrame(rows, columns=["variant", "path", "steps"])


def compute_bottleneck_table(snapshot: MetricsSnapshot) -> pd.DataFrame:
    rows = [
        {
            "step": bottleneck.node_id,
            "incoming": bottleneck.incoming_count,
            "category": bottleneck.category.value,
            "impact": bottleneck_impact(bottleneck.category, bottleneck.incoming_count),
        }
        for bottleneck in snapshot.bottlenecks
    ]
    return pd.DataFrame(rows, columns=["step", "incoming", "category", "impact"])


def compute_path_length_distribution(paths: Sequence[Sequence[str]]) -> pd.DataFrame:
    counts = Counter(len(path) for path in paths)
    rows = [{"steps": steps, "paths": counts[steps]} for steps in sorted(counts)]
    return pd.DataFrame(rows, columns=["steps", "paths"])


def build_metrics_payload(graph: ProcessGraph, snapshot: MetricsSnapshot) -> Dict[str, Any]:
    """
    JSON-ready description of a graph and its metrics, used by the export action and the CLI.
    """
    incoming = graph.incoming_counts()
    outgoing = graph.outgoing_counts()
    nodes = []
    for node in graph.nodes.values():
        entry: Dict[str, Any] = {
            "id": node.id,
            "kind": node.kind.value,
            "incoming": incoming.get(node.id, 0),
            "outgoing": outgoing.get(node.id, 0),
        }
        if node.metrics is not None:
            entry["duration"] = node.metrics.duration
            entry["cost"] = node.metrics.cost
        nodes.append(entry)

    return {
        "nodes": nodes,
        "edges": [{"source": edge.source, "target": edge.target} for edge in graph.edges],
        "metrics": {
            "cycle_time": snapshot.cycle_time,
            "variant_count": snapshot.variant_count,
            "bottleneck_count": snapshot.bottleneck_count,
            "bottlenecks": [
                {
                    "id": bottleneck.node_id,
                    "incoming": bottleneck.incoming_count,
                    "category": bottleneck.category.value,
                }
                for bottleneck in snapshot.bottlenecks
            ],
        },
        "overview": compute_overview(graph, snapshot.paths),
        "paths": [list(path) for path in snapshot.paths],
    }
