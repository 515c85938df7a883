from __future__ import annotations

import logging
import math
from collections import deque
from enum import Enum
from typing import List, Optional, Set, Tuple

from .graph_loader import NodeKind, Position, ProcessGraph
from .settings import DEFAULT_VIEWPORT, RenderSettings

logger = logging.getLogger(__name__)

CLICK_TOLERANCE = 3.0


class InteractionMode(str, Enum):
    IDLE = "idle"
    DRAGGING_NODE = "dragging_node"
    PANNING = "panning"


class ViewportController:
    """
    Owns the view state of one canvas: scale, pan offset, pointer interaction and node visibility.

    Screen coordinates are `graph * scale + offset`. The controller never paints; it only mutates the
    graph it was given and reports whether a redraw is needed.
    """

    def __init__(
        self,
        graph: Optional[ProcessGraph] = None,
        viewport_size: Tuple[float, float] = DEFAULT_VIEWPORT,
        settings: RenderSettings = RenderSettings(),
    ):
        self.settings = settings
        self.graph = graph
        self.viewport_size = viewport_size
        self.scale = 1.0
        self.offset = Position(0.0, 0.0)
        self.mode = InteractionMode.IDLE
        self.dragged_node: Optional[str] = None
        self._press_node: Optional[str] = None
        self._last_pointer: Optional[Tuple[float, float]] = None
        self._travel = 0.0

    def set_graph(self, graph: Optional[ProcessGraph]) -> None:
        self.graph = graph
        self.mode = InteractionMode.IDLE
        self.dragged_node = None
        self._press_node = None
        self._last_pointer = None

    def set_viewport_size(self, width: float, height: float) -> None:
        self.viewport_size = (float(width), float(height))

    def screen_to_graph(self, x: float, y: float) -> Tuple[float, float]:
        return (x - self.offset.x) / self.scale, (y - self.offset.y) / self.scale

    def graph_to_screen(self, x: float, y: float) -> Tuple[float, float]:
        return x * self.scale + self.offset.x, y * self.scale + self.offset.y

    def hit_test(self, x: float, y: float) -> Optional[str]:
        """Return the id of the topmost visible node under screen point (x, y)."""
        if self.graph is None:
            return None
        gx, gy = self.screen_to_graph(x, y)
        for node in reversed(list(self.graph.nodes.values())):
            if not node.visible:
                continue
            if math.hypot(gx - node.position.x, gy - node.position.y) <= node.radius:
                return node.id
        return None

    def zoom(self, factor: float, anchor: Optional[Tuple[float, float]] = None) -> bool:
        if factor <= 0:
            raise ValueError("Zoom factor must be positive")
        anchor_x, anchor_y = anchor if anchor is not None else self._centre()
        old_scale = self.scale
        new_scale = min(max(old_scale * factor, self.settings.min_scale), self.settings.max_scale)
        if new_scale == old_scale:
            return False
        ratio = new_scale / old_scale
        self.offset = Position(
            anchor_x - (anchor_x - self.offset.x) * ratio,
            anchor_y - (anchor_y - self.offset.y) * ratio,
        )
        self.scale = new_scale
        return True

    def zoom_in(self) -> bool:
        return self.zoom(self.settings.zoom_in_factor)

    def zoom_out(self) -> bool:
        return self.zoom(self.settings.zoom_out_factor)

    def reset_view(self) -> None:
        self.scale = 1.0
        self.offset = Position(0.0, 0.0)

    def _centre(self) -> Tuple[float, float]:
        width, height = self.viewport_size
        return width / 2, height / 2

    def pointer_down(self, x: float, y: float) -> InteractionMode:
        node_id = self.hit_test(x, y)
        self._press_node = node_id
        self._last_pointer = (x, y)
        self._travel = 0.0
        if node_id is not None:
            self.mode = InteractionMode.DRAGGING_NODE
            self.dragged_node = node_id
        else:
            self.mode = InteractionMode.PANNING
            self.dragged_node = None
        return self.mode

    def pointer_move(self, x: float, y: float) -> bool:
        """Apply the pointer delta; returns True when something moved on screen."""
        if self.mode == InteractionMode.IDLE or self._last_pointer is None:
            return False
        dx = x - self._last_pointer[0]
        dy = y - self._last_pointer[1]
        self._last_pointer = (x, y)
        self._travel += math.hypot(dx, dy)
        if dx == 0 and dy == 0:
            return False

        if self.mode == InteractionMode.DRAGGING_NODE and self.graph is not None:
            node = self.graph.nodes.get(self.dragged_node or "")
            if node is None:
                return False
            node.position = Position(node.position.x + dx / self.scale, node.position.y + dy / self.scale)
        else:
            self.offset = Position(self.offset.x + dx, self.offset.y + dy)
        return True

    def pointer_up(self) -> Optional[str]:
        """
        End the current interaction.

        Returns the node id when the press and release happened on a node without the pointer
        travelling, i.e. a click; otherwise None.
        """
        clicked = self._press_node if self._travel <= CLICK_TOLERANCE else None
        self.mode = InteractionMode.IDLE
        self.dragged_node = None
        self._press_node = None
        self._last_pointer = None
        self._travel = 0.0
        return clicked

    def subprocess_nodes(self, node_id: str) -> List[str]:
        """SUB nodes reachable from `node_id` through SUB nodes only, in discovery order."""
        if self.graph is None or node_id not in self.graph.nodes:
            return []
        found: List[str] = []
        seen: Set[str] = {node_id}
        queue = deque([node_id])
        while queue:
            current = queue.popleft()
            for successor in self.graph.successors(current):
                if successor in seen or self.graph.nodes[successor].kind != NodeKind.SUB:
                    continue
                seen.add(successor)
                found.append(successor)
                queue.append(successor)
        return found

    def toggle_subprocess(self, node_id: str) -> bool:
        """
        Collapse or expand the subprocess hanging off a MAIN node.

        If any of its subprocess nodes is visible they are all hidden, otherwise they are all shown.
        Returns False when nothing changed.
        """
        if self.graph is None:
            return False
        node = self.graph.nodes.get(node_id)
        if node is None or node.kind != NodeKind.MAIN:
            return False
        members = self.subprocess_nodes(node_id)
        if not members:
            return False
        show = not any(self.graph.nodes[member].visible for member in members)
        for member in members:
            self.graph.nodes[member].visible = show
        self.graph.refresh_edge_visibility()
        logger.debug("%s subprocess of %s (%d nodes).", "Expanded" if show else "Collapsed", node_id, len(members))
        return True


class FrameThrottle:
    """
    Coalesces redraw requests to at most one pending frame at `target_fps`.
    """

    def __init__(self, target_fps: float = 60.0):
        if target_fps <= 0:
            raise ValueError("target_fps must be positive")
        self.interval = 1.0 / target_fps
        self.pending = False
        self._last_drawn: Optional[float] = None

    def request(self, now: float) -> Optional[float]:
        if self.pending:
            return None
        self.pending = True
        if self._last_drawn is None:
            return 0.0
        return max(0.0, self._last_drawn + self.interval - now)

    def mark_drawn(self, now: float) -> None:
        self.pending = False
        self._last_drawn = now
