from __future__ import annotations

import math
from typing import Dict, Tuple

import networkx as nx
import numpy as np

from .graph_loader import NodeKind, Position, ProcessGraph
from .settings import RenderSettings

LAYOUT_STRATEGIES = ("grid", "circular")
VIEWPORT_MARGIN = 40.0
NODE_GAP = 24.0


def _grid_positions(node_count: int, viewport_size: Tuple[float, float], min_spacing: float) -> np.ndarray:
    width, height = viewport_size
    columns = math.ceil(math.sqrt(node_count))
    rows = math.ceil(node_count / columns)
    spacing = max(max(width, height) / node_count, min_spacing)

    indices = np.arange(node_count)
    grid = np.column_stack([indices % columns, indices // columns]).astype(float) * spacing

    extent_x = (columns - 1) * spacing
    extent_y = (rows - 1) * spacing
    usable_x = max(width - 2 * VIEWPORT_MARGIN, 1.0)
    usable_y = max(height - 2 * VIEWPORT_MARGIN, 1.0)
    scale = min(
        1.0,
        usable_x / extent_x if extent_x else 1.0,
        usable_y / extent_y if extent_y else 1.0,
    )
    grid *= scale
    offset = np.array([(width - extent_x * scale) / 2, (height - extent_y * scale) / 2])
    return grid + offset


def _circular_positions(graph: ProcessGraph, viewport_size: Tuple[float, float]) -> np.ndarray:
    width, height = viewport_size
    radius = max(min(width, height) / 2 - VIEWPORT_MARGIN, 1.0)
    simple = nx.DiGraph()
    simple.add_nodes_from(graph.node_ids)
    layout = nx.circular_layout(simple, scale=radius, center=(width / 2, height / 2))
    return np.array([layout[node_id] for node_id in graph.node_ids], dtype=float)


def compute_layout(
    graph: ProcessGraph,
    viewport_size: Tuple[float, float],
    strategy: str = "grid",
    settings: RenderSettings = RenderSettings(),
) -> Dict[str, Position]:
    """
    Place every node of `graph` inside a viewport of `viewport_size` (width, height).

    `grid` arranges nodes row by row in `ceil(sqrt(n))` columns and shrinks the grid uniformly until it
    fits; `circular` spreads them evenly on a circle. Positions are in graph space at scale 1.
    """
    if strategy not in LAYOUT_STRATEGIES:
        raise ValueError(f"Unsupported layout strategy: {strategy}")
    node_count = len(graph.nodes)
    if node_count == 0:
        return {}

    if strategy == "circular":
        coords = _circular_positions(graph, viewport_size)
    else:
        min_spacing = 2 * settings.main_radius + NODE_GAP
        coords = _grid_positions(node_count, viewport_size, min_spacing)

    return {node_id: Position(float(x), float(y)) for node_id, (x, y) in zip(graph.node_ids, coords)}


def apply_layout(
    graph: ProcessGraph, positions: Dict[str, Position], settings: RenderSettings = RenderSettings()
) -> None:
    """Overwrite every node's position and radius; nodes missing from `positions` move to the origin."""
    for node in graph.nodes.values():
        position = positions.get(node.id, Position())
        node.position = Position(position.x, position.y)
        node.radius = settings.main_radius if node.kind == NodeKind.MAIN else settings.sub_radius
