from __future__ import annotations

import logging
import time
from typing import List, Optional

from PyQt6 import QtCore, QtGui, QtWidgets

from .graph_loader import NodeKind, ProcessGraph
from .render import DrawCommand, EdgeCommand, LabelCommand, LoopCommand, NodeCommand, build_display_list
from .settings import RenderSettings
from .viewport import FrameThrottle, ViewportController

logger = logging.getLogger(__name__)


class RenderSetupError(Exception):
    """Raised when the drawing surface cannot be prepared."""


class ProcessCanvasWidget(QtWidgets.QWidget):
    """
    Interactive drawing surface for a `ProcessGraph`.

    Dragging a node moves it, dragging empty space pans, the wheel zooms around the cursor and a
    click on a main step collapses or expands its subprocess.
    """

    nodeToggled = QtCore.pyqtSignal(str)
    viewChanged = QtCore.pyqtSignal()

    def __init__(self, settings: RenderSettings = RenderSettings(), parent: Optional[QtWidgets.QWidget] = None):
        super().__init__(parent)
        self.settings = settings
        self.controller = ViewportController(settings=settings)
        self._throttle = FrameThrottle(settings.target_fps)
        self._drawing_enabled = True
        self._label_font = QtGui.QFont("Segoe UI", 9)

        self.setMouseTracking(False)
        self.setMinimumSize(320, 240)
        self.setSizePolicy(QtWidgets.QSizePolicy.Policy.Expanding, QtWidgets.QSizePolicy.Policy.Expanding)
        self.setAutoFillBackground(False)

    @property
    def drawing_enabled(self) -> bool:
        return self._drawing_enabled

    def set_graph(self, graph: Optional[ProcessGraph]) -> None:
        self.controller.set_graph(graph)
        self.controller.reset_view()
        self.request_redraw()

    def display_list(self) -> List[DrawCommand]:
        if self.controller.graph is None:
            return []
        return build_display_list(self.controller.graph, self.controller, self.settings)

    def zoom_in(self) -> None:
        if self.controller.zoom_in():
            self._view_changed()

    def zoom_out(self) -> None:
        if self.controller.zoom_out():
            self._view_changed()

    def reset_view(self) -> None:
        self.controller.reset_view()
        self._view_changed()

    def request_redraw(self) -> None:
        delay = self._throttle.request(time.monotonic())
        if delay is None:
            return
        QtCore.QTimer.singleShot(int(delay * 1000), self._flush_redraw)

    def _flush_redraw(self) -> None:
        self._throttle.mark_drawn(time.monotonic())
        self.update()

    def _view_changed(self) -> None:
        self.viewChanged.emit()
        self.request_redraw()

    def resizeEvent(self, event: QtGui.QResizeEvent) -> None:  # type: ignore[override]
        size = event.size()
        self.controller.set_viewport_size(size.width(), size.height())
        super().resizeEvent(event)
        self.request_redraw()

    def mousePressEvent(self, event: QtGui.QMouseEvent) -> None:  # type: ignore[override]
        if event.button() != QtCore.Qt.MouseButton.LeftButton:
            super().mousePressEvent(event)
            return
        pos = event.position()
        self.controller.pointer_down(pos.x(), pos.y())
        event.accept()

    def mouseMoveEvent(self, event: QtGui.QMouseEvent) -> None:  # type: ignore[override]
        pos = event.position()
        if self.controller.pointer_move(pos.x(), pos.y()):
            self.request_redraw()
        event.accept()

    def mouseReleaseEvent(self, event: QtGui.QMouseEvent) -> None:  # type: ignore[override]
        if event.button() != QtCore.Qt.MouseButton.LeftButton:
            super().mouseReleaseEvent(event)
            return
        clicked = self.controller.pointer_up()
        graph = self.controller.graph
        if clicked is not None and graph is not None and graph.nodes[clicked].kind == NodeKind.MAIN:
            if self.controller.toggle_subprocess(clicked):
                self.nodeToggled.emit(clicked)
                self.request_redraw()
        event.accept()

    def wheelEvent(self, event: QtGui.QWheelEvent) -> None:  # type: ignore[override]
        delta = event.angleDelta().y()
        if not delta:
            super().wheelEvent(event)
            return
        factor = self.settings.wheel_zoom_factor if delta > 0 else 1 / self.settings.wheel_zoom_factor
        pos = event.position()
        if self.controller.zoom(factor, (pos.x(), pos.y())):
            self._view_changed()
        event.accept()

    def paintEvent(self, event: QtGui.QPaintEvent) -> None:  # type: ignore[override]
        if not self._drawing_enabled:
            return
        painter = QtGui.QPainter(self)
        try:
            self._begin(painter)
            self._paint_commands(painter, self.display_list())
        except RenderSetupError:
            logger.exception("Canvas drawing disabled.")
            self._drawing_enabled = False
        finally:
            if painter.isActive():
                painter.end()

    def _begin(self, painter: QtGui.QPainter) -> None:
        if not painter.isActive():
            raise RenderSetupError("Could not open a painter on the canvas")
        painter.setRenderHint(QtGui.QPainter.RenderHint.Antialiasing, True)
        painter.fillRect(self.rect(), QtGui.QColor(self.settings.background_colour))

    def _paint_commands(self, painter: QtGui.QPainter, commands: List[DrawCommand]) -> None:
        for command in commands:
            if isinstance(command, EdgeCommand):
                colour = QtGui.QColor(command.colour)
                painter.setPen(QtGui.QPen(colour, 1.6))
                painter.drawLine(QtCore.QPointF(*command.start), QtCore.QPointF(*command.end))
                painter.setBrush(QtGui.QBrush(colour))
                painter.drawPolygon(QtGui.QPolygonF([QtCore.QPointF(*point) for point in command.arrow]))
            elif isinstance(command, LoopCommand):
                painter.setPen(QtGui.QPen(QtGui.QColor(command.colour), 1.6))
                painter.setBrush(QtCore.Qt.BrushStyle.NoBrush)
                painter.drawEllipse(QtCore.QPointF(*command.centre), command.radius, command.radius)
            elif isinstance(command, NodeCommand):
                if command.highlight:
                    painter.setPen(QtGui.QPen(QtGui.QColor(self.settings.highlight_colour), 3.0))
                else:
                    painter.setPen(QtGui.QPen(QtGui.QColor("#1a1f33"), 1.2))
                painter.setBrush(QtGui.QBrush(QtGui.QColor(command.colour)))
                painter.drawEllipse(QtCore.QPointF(*command.centre), command.radius, command.radius)
            elif isinstance(command, LabelCommand):
                painter.setFont(self._label_font)
                painter.setPen(QtGui.QColor(command.colour))
                x, y = command.anchor
                rect = QtCore.QRectF(x - 80, y - 9, 160, 18)
                painter.drawText(rect, int(QtCore.Qt.AlignmentFlag.AlignCenter), command.text)
