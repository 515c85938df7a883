from __future__ import annotations

from typing import Dict, Tuple

from pm4py.visualization.dfg import visualizer as dfg_visualizer

from .graph_loader import ProcessGraph
from .path_enumerator import find_end_nodes, find_start_nodes

DfgCounts = Dict[Tuple[str, str], int]


def build_dfg(graph: ProcessGraph) -> Tuple[DfgCounts, Dict[str, int], Dict[str, int], Dict[str, int]]:
    """
    Express the graph as a directly-follows graph: arc frequencies, start and end steps, step counts.

    Parallel edges add up to the arc frequency.
    """
    dfg: DfgCounts = {}
    for edge in graph.edges:
        key = (edge.source, edge.target)
        dfg[key] = dfg.get(key, 0) + 1

    incoming = graph.incoming_counts()
    outgoing = graph.outgoing_counts()
    starts = {node_id: outgoing.get(node_id, 1) for node_id in find_start_nodes(graph.node_ids, graph.edges)}
    ends = {node_id: incoming.get(node_id, 1) for node_id in find_end_nodes(graph.node_ids, graph.edges)}
    activities = {
        node_id: max(incoming.get(node_id, 0), outgoing.get(node_id, 0), 1) for node_id in graph.node_ids
    }
    return dfg, starts, ends, activities


def render_dfg_svg(graph: ProcessGraph) -> bytes:
    """
    Render the frequency DFG of `graph` as SVG bytes. Requires the Graphviz binaries on PATH.
    """
    dfg, starts, ends, activities = build_dfg(graph)
    frequency_variant = dfg_visualizer.Variants.FREQUENCY.value
    parameters = {
        frequency_variant.Parameters.FORMAT: "svg",
        frequency_variant.Parameters.START_ACTIVITIES: starts,
        frequency_variant.Parameters.END_ACTIVITIES: ends,
    }
    gviz = dfg_visualizer.apply(
        dfg,
        activities_count=activities,
        parameters=parameters,
        variant=dfg_visualizer.Variants.FREQUENCY,
    )
    return dfg_visualizer.serialize(gviz)
