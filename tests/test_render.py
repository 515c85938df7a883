"""
Tests for the screen-space display list.
"""

import pytest

from flowmap.graph_loader import Position, parse_graph
from flowmap.render import EdgeCommand, LabelCommand, LoopCommand, NodeCommand, build_display_list
from flowmap.settings import RenderSettings
from flowmap.viewport import ViewportController


def build_pair(text="A B"):
    graph = parse_graph(text)
    for idx, node in enumerate(graph.nodes.values()):
        node.position = Position(100.0 * idx, 0.0)
        node.radius = 10.0
    return graph


class TestDisplayList:
    def test_edges_then_nodes_then_labels(self):
        graph = build_pair("A B\nB C\nC D")
        commands = build_display_list(graph, ViewportController(graph))

        kinds = [type(command) for command in commands]
        assert kinds == [EdgeCommand] * 3 + [NodeCommand] * 4 + [LabelCommand] * 4
        assert [command.text for command in commands[-4:]] == ["A", "B", "C", "D"]

    def test_edge_geometry(self):
        """Edges run boundary to boundary with the arrow tip on the target's rim."""
        graph = build_pair()
        edge = build_display_list(graph, ViewportController(graph))[0]

        assert edge.start == pytest.approx((10.0, 0.0))
        assert edge.end == pytest.approx((90.0, 0.0))
        assert edge.arrow[0] == pytest.approx((90.0, 0.0))
        assert edge.arrow[1] == pytest.approx((80.0, 5.0))
        assert edge.arrow[2] == pytest.approx((80.0, -5.0))

    def test_scaled_geometry(self):
        graph = build_pair()
        controller = ViewportController(graph)
        controller.zoom(2.0, (0, 0))
        commands = build_display_list(graph, controller)

        assert commands[0].end == pytest.approx((180.0, 0.0))
        node = next(command for command in commands if isinstance(command, NodeCommand))
        assert node.radius == pytest.approx(20.0)

    def test_self_loop(self):
        graph = build_pair("A A\nA B")
        commands = build_display_list(graph, ViewportController(graph))

        assert isinstance(commands[0], LoopCommand)
        assert commands[0].node_id == "A"
        assert isinstance(commands[1], EdgeCommand)

    def test_highlight_from_metrics(self):
        settings = RenderSettings(duration_threshold=60, cost_threshold=100)
        graph = build_pair("A B 75 0\nB C 10 150\nC D 10 10")
        nodes = {
            command.node_id: command
            for command in build_display_list(graph, ViewportController(graph), settings)
            if isinstance(command, NodeCommand)
        }

        assert nodes["B"].highlight is True
        assert nodes["C"].highlight is True
        assert nodes["D"].highlight is False
        assert nodes["A"].highlight is False

    def test_hidden_nodes_are_skipped(self):
        graph = build_pair("Order check\ncheck Ship")
        controller = ViewportController(graph)
        controller.toggle_subprocess("Order")
        commands = build_display_list(graph, controller)

        assert not any(isinstance(command, EdgeCommand) for command in commands)
        assert [command.node_id for command in commands if isinstance(command, NodeCommand)] == ["Order", "Ship"]

    def test_node_colours(self):
        settings = RenderSettings()
        graph = build_pair("Order check")
        nodes = [c for c in build_display_list(graph, ViewportController(graph), settings) if isinstance(c, NodeCommand)]

        assert nodes[0].colour == settings.main_colour
        assert nodes[1].colour == settings.sub_colour
