from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Tuple, Union

from .graph_loader import Node, NodeKind, ProcessGraph
from .settings import RenderSettings
from .viewport import ViewportController

Point = Tuple[float, float]
LABEL_OFFSET = 14.0


@dataclass(frozen=True)
class EdgeCommand:
    source: str
    target: str
    start: Point
    end: Point
    arrow: Tuple[Point, Point, Point]
    colour: str


@dataclass(frozen=True)
class LoopCommand:
    node_id: str
    centre: Point
    radius: float
    colour: str


@dataclass(frozen=True)
class NodeCommand:
    node_id: str
    centre: Point
    radius: float
    kind: NodeKind
    colour: str
    highlight: bool


@dataclass(frozen=True)
class LabelCommand:
    text: str
    anchor: Point
    colour: str


DrawCommand = Union[EdgeCommand, LoopCommand, NodeCommand, LabelCommand]


def is_highlighted(node: Node, settings: RenderSettings) -> bool:
    metrics = node.metrics
    if metrics is None:
        return False
    if metrics.duration is not None and metrics.duration > settings.duration_threshold:
        return True
    return metrics.cost is not None and metrics.cost > settings.cost_threshold


def _arrow_head(tip: Point, direction: Point, size: float) -> Tuple[Point, Point, Point]:
    dx, dy = direction
    normal_x, normal_y = -dy, dx
    base_x = tip[0] - dx * size
    base_y = tip[1] - dy * size
    return (
        tip,
        (base_x + normal_x * size / 2, base_y + normal_y * size / 2),
        (base_x - normal_x * size / 2, base_y - normal_y * size / 2),
    )


def _edge_command(
    source: Node, target: Node, controller: ViewportController, settings: RenderSettings
) -> EdgeCommand:
    sx, sy = controller.graph_to_screen(source.position.x, source.position.y)
    tx, ty = controller.graph_to_screen(target.position.x, target.position.y)
    length = math.hypot(tx - sx, ty - sy)
    direction = ((tx - sx) / length, (ty - sy) / length) if length else (1.0, 0.0)
    source_r = source.radius * controller.scale
    target_r = target.radius * controller.scale
    start = (sx + direction[0] * source_r, sy + direction[1] * source_r)
    end = (tx - direction[0] * target_r, ty - direction[1] * target_r)
    return EdgeCommand(
        source=source.id,
        target=target.id,
        start=start,
        end=end,
        arrow=_arrow_head(end, direction, settings.arrow_size * controller.scale),
        colour=settings.edge_colour,
    )


def build_display_list(
    graph: ProcessGraph, controller: ViewportController, settings: RenderSettings = RenderSettings()
) -> List[DrawCommand]:
    """
    Turn the visible part of `graph` into screen-space draw commands.

    Edges come first, then node discs, then labels, so later commands paint over earlier ones.
    """
    commands: List[DrawCommand] = []
    for edge in graph.edges:
        if not edge.visible:
            continue
        source = graph.nodes[edge.source]
        target = graph.nodes[edge.target]
        if not (source.visible and target.visible):
            continue
        if edge.is_self_loop:
            cx, cy = controller.graph_to_screen(source.position.x, source.position.y)
            radius = source.radius * controller.scale
            commands.append(
                LoopCommand(node_id=source.id, centre=(cx, cy - radius), radius=radius * 0.6, colour=settings.edge_colour)
            )
            continue
        commands.append(_edge_command(source, target, controller, settings))

    visible_nodes = [node for node in graph.nodes.values() if node.visible]
    for node in visible_nodes:
        centre = controller.graph_to_screen(node.position.x, node.position.y)
        commands.append(
            NodeCommand(
                node_id=node.id,
                centre=centre,
                radius=node.radius * controller.scale,
                kind=node.kind,
                colour=settings.main_colour if node.kind == NodeKind.MAIN else settings.sub_colour,
                highlight=is_highlighted(node, settings),
            )
        )

    for node in visible_nodes:
        cx, cy = controller.graph_to_screen(node.position.x, node.position.y)
        commands.append(
            LabelCommand(
                text=node.id,
                anchor=(cx, cy + node.radius * controller.scale + LABEL_OFFSET),
                colour=settings.label_colour,
            )
        )
    return commands
