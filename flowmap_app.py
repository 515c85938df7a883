from __future__ import annotations

import asyncio
import functools
import json
import logging
import pathlib
import sys
import threading
from concurrent.futures import Future
from typing import Any, Callable, Coroutine, Dict, Optional

import numpy as np
import pandas as pd
import pyqtgraph as pg
from PyQt6 import QtCore, QtGui, QtSvgWidgets, QtWidgets

from flowmap import process_metrics
from flowmap.canvas import ProcessCanvasWidget
from flowmap.dfg_export import render_dfg_svg
from flowmap.graph_loader import ProcessGraph
from flowmap.layout import LAYOUT_STRATEGIES
from flowmap.narrator import AnalysisResult
from flowmap.session import LoadOutcome, ProcessSession
from flowmap.settings import SAMPLE_GRAPH_PATH, NarratorSettings, RenderSettings

LOG_NAME = "flowmap"
LOG_FILE_PATH = pathlib.Path.cwd() / "flowmap_app.log"
FILE_DIALOG_FILTER = "Edge lists (*.csv *.txt);;Spreadsheets (*.xls *.xlsx);;All files (*)"


def configure_logging() -> logging.Logger:
    logger = logging.getLogger(LOG_NAME)
    if not logger.handlers:
        logger.setLevel(logging.INFO)
        handler = logging.FileHandler(LOG_FILE_PATH, encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)
        logger.propagate = False
        logger.info("Logging initialised. Writing to %s", LOG_FILE_PATH)
    return logger


BASE_LOGGER = configure_logging()


class PandasTableModel(QtCore.QAbstractTableModel):
    """Read-only table model over a DataFrame; numeric cells are right aligned."""

    def __init__(self, dataframe: Optional[pd.DataFrame] = None):
        super().__init__()
        self._frame = pd.DataFrame() if dataframe is None else dataframe

    def set_dataframe(self, dataframe: pd.DataFrame) -> None:
        self.beginResetModel()
        self._frame = dataframe.reset_index(drop=True)
        self.endResetModel()

    def rowCount(self, parent: QtCore.QModelIndex = QtCore.QModelIndex()) -> int:  # type: ignore[override]
        return 0 if parent.isValid() else self._frame.shape[0]

    def columnCount(self, parent: QtCore.QModelIndex = QtCore.QModelIndex()) -> int:  # type: ignore[override]
        return 0 if parent.isValid() else self._frame.shape[1]

    def data(self, index: QtCore.QModelIndex, role: int = QtCore.Qt.ItemDataRole.DisplayRole):  # type: ignore[override]
        if not index.isValid():
            return None
        value = self._frame.iat[index.row(), index.column()]
        if role == QtCore.Qt.ItemDataRole.TextAlignmentRole:
            if isinstance(value, (int, float, np.number)):
                return int(QtCore.Qt.AlignmentFlag.AlignRight | QtCore.Qt.AlignmentFlag.AlignVCenter)
            return None
        if role in (QtCore.Qt.ItemDataRole.DisplayRole, QtCore.Qt.ItemDataRole.ToolTipRole):
            return "" if pd.isna(value) else str(value)
        return None

    def headerData(  # type: ignore[override]
        self, section: int, orientation: QtCore.Qt.Orientation, role: int = QtCore.Qt.ItemDataRole.DisplayRole
    ):
        if role != QtCore.Qt.ItemDataRole.DisplayRole:
            return None
        if orientation == QtCore.Qt.Orientation.Vertical:
            return str(section + 1)
        if 0 <= section < self._frame.shape[1]:
            return str(self._frame.columns[section]).replace("_", " ").title()
        return None


class StatsCard(QtWidgets.QFrame):
    """Headline metric tile. Clicking it emits `clicked` with the metric key."""

    clicked = QtCore.pyqtSignal(str)

    def __init__(self, key: str, title: str, *, accent: str = "#7F5AF0"):
        super().__init__()
        self.key = key
        self.setObjectName("StatsCard")
        self.setCursor(QtGui.QCursor(QtCore.Qt.CursorShape.PointingHandCursor))
        self.setMinimumWidth(170)
        self.setMaximumHeight(104)

        layout = QtWidgets.QVBoxLayout(self)
        layout.setContentsMargins(14, 12, 14, 12)
        layout.setSpacing(4)
        self.title_label = QtWidgets.QLabel(title.upper())
        self.title_label.setObjectName("StatsCardTitle")
        self.value_label = QtWidgets.QLabel("—")
        self.value_label.setObjectName("StatsCardValue")
        layout.addWidget(self.title_label)
        layout.addStretch(1)
        layout.addWidget(self.value_label)

        self.setStyleSheet(
            f"""
            QFrame#StatsCard {{
                border-radius: 14px;
                background-color: rgba(18, 21, 32, 0.9);
                border: 1px solid rgba(120, 130, 180, 0.12);
                border-top: 3px solid {accent};
            }}
            QLabel#StatsCardTitle {{ color: #8a93c9; font-size: 10px; letter-spacing: 0.8px; }}
            QLabel#StatsCardValue {{ color: #f4f6ff; font-size: 24px; font-weight: 600; }}
            """
        )

    def set_value(self, value: str) -> None:
        self.value_label.setText(value)

    def mouseReleaseEvent(self, event: QtGui.QMouseEvent) -> None:  # type: ignore[override]
        if event.button() == QtCore.Qt.MouseButton.LeftButton:
            self.clicked.emit(self.key)
        super().mouseReleaseEvent(event)


class AsyncLoopThread(threading.Thread):
    """
    Runs one asyncio event loop in a daemon thread so coroutines never block the Qt event loop.
    """

    def __init__(self):
        super().__init__(name="flowmap-async", daemon=True)
        self.loop = asyncio.new_event_loop()
        self._ready = threading.Event()

    def run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self._ready.set()
        self.loop.run_forever()
        self.loop.close()

    def submit(self, coro: Coroutine[Any, Any, Any]) -> Future:
        if not self.is_alive():
            self.start()
        self._ready.wait()
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def stop(self) -> None:
        if self.is_alive():
            self.loop.call_soon_threadsafe(self.loop.stop)
            self.join(timeout=2)


class NarrationBridge(QtCore.QObject):
    """Carries narration results from the loop thread back to the UI thread."""

    finished = QtCore.pyqtSignal(object, object)
    failed = QtCore.pyqtSignal(object, str)

    def deliver(self, graph: ProcessGraph, future: Future) -> None:
        try:
            self.finished.emit(graph, future.result())
        except Exception as exc:  # pylint: disable=broad-except
            self.failed.emit(graph, str(exc))


class FlowMapApp(QtWidgets.QMainWindow):
    def __init__(self, session: Optional[ProcessSession] = None):
        super().__init__()
        self.setWindowTitle("FlowMap Explorer")
        self.resize(1480, 940)

        self.logger = BASE_LOGGER.getChild("ui")
        self.logger.info("FlowMapApp initialising.")

        self._color_palette = ["#7F5AF0", "#2CB1BC", "#F25F5C", "#FFAD17", "#60D394"]
        self.render_settings = RenderSettings()
        self.session = session or ProcessSession(
            render_settings=self.render_settings, narrator_settings=NarratorSettings.from_env()
        )
        self._async_loop = AsyncLoopThread()
        self._bridge = NarrationBridge()
        self._bridge.finished.connect(self._on_narration_finished)
        self._bridge.failed.connect(self._on_narration_failed)
        self._dfg_svg: Optional[bytes] = None

        self._setup_palette()
        self._apply_theme()

        pg.setConfigOption("background", "transparent")
        pg.setConfigOption("foreground", "#E7EBFF")
        pg.setConfigOption("antialias", True)

        self._build_ui()
        self.logger.info("User interface initialised. Awaiting an edge list.")

    # UI construction -----------------------------------------------------
    def _setup_palette(self) -> None:
        palette = QtGui.QPalette()
        text = QtGui.QColor("#f4f6ff")
        palette.setColor(QtGui.QPalette.ColorRole.Window, QtGui.QColor(self.render_settings.background_colour))
        palette.setColor(QtGui.QPalette.ColorRole.Base, QtGui.QColor(self.render_settings.background_colour))
        palette.setColor(QtGui.QPalette.ColorRole.AlternateBase, QtGui.QColor("#161a28"))
        palette.setColor(QtGui.QPalette.ColorRole.Button, QtGui.QColor("#1c2032"))
        palette.setColor(QtGui.QPalette.ColorRole.WindowText, text)
        palette.setColor(QtGui.QPalette.ColorRole.ButtonText, text)
        palette.setColor(QtGui.QPalette.ColorRole.Text, text)
        palette.setColor(QtGui.QPalette.ColorRole.Highlight, QtGui.QColor(self.render_settings.main_colour))
        palette.setColor(QtGui.QPalette.ColorRole.HighlightedText, QtGui.QColor("#ffffff"))
        self.setPalette(palette)

    def _apply_theme(self) -> None:
        self.setStyleSheet(
            """
            QWidget {
                background-color: #0f111a;
                color: #f4f6ff;
                font-family: "Segoe UI", "Helvetica Neue", Arial;
                font-size: 12px;
            }
            QGroupBox {
                border: 1px solid rgba(127, 90, 240, 0.25);
                border-radius: 12px;
                margin-top: 16px;
                padding: 16px;
                background-color: rgba(24, 27, 42, 0.75);
            }
            QGroupBox::title {
                subcontrol-origin: margin;
                left: 14px;
                padding: 0 6px;
                color: #9aa5d9;
                font-weight: 600;
            }
            QPushButton {
                background: qlineargradient(x1:0, y1:0, x2:1, y2:1, stop:0 #5a6ef5, stop:1 #7f5af0);
                border: none;
                border-radius: 8px;
                padding: 8px 14px;
                color: #ffffff;
                font-weight: 600;
            }
            QPushButton:disabled { background: #2a2f45; color: #6e7392; }
            QComboBox, QTableView {
                background-color: rgba(18, 21, 32, 0.85);
                border: 1px solid rgba(127, 90, 240, 0.2);
                border-radius: 8px;
                padding: 4px 6px;
            }
            QTabBar::tab {
                background-color: rgba(26, 30, 45, 0.65);
                color: #9aa5d9;
                padding: 10px 20px;
                border-top-left-radius: 10px;
                border-top-right-radius: 10px;
                margin-right: 4px;
                font-weight: 600;
            }
            QTabBar::tab:selected { background-color: rgba(40, 45, 70, 0.95); color: #f4f6ff; }
            QHeaderView::section { background-color: rgba(24, 27, 40, 0.9); color: #9aa5d9; border: none; padding: 6px; }
            QLabel#HeaderTitle { font-size: 28px; font-weight: 700; }
            QLabel#HeaderSubtitle { color: #8a93c9; font-size: 14px; }
            """
        )

    def _build_ui(self) -> None:
        central_widget = QtWidgets.QWidget()
        self.setCentralWidget(central_widget)
        root_layout = QtWidgets.QVBoxLayout(central_widget)
        root_layout.setContentsMargins(24, 24, 24, 24)
        root_layout.setSpacing(18)
        root_layout.addWidget(self._build_header())

        splitter = QtWidgets.QSplitter(QtCore.Qt.Orientation.Horizontal)
        splitter.setChildrenCollapsible(False)
        splitter.addWidget(self._build_controls_panel())
        splitter.addWidget(self._build_main_content())
        splitter.setStretchFactor(0, 0)
        splitter.setStretchFactor(1, 1)
        root_layout.addWidget(splitter, stretch=1)

        self.statusBar().showMessage(f"Open an edge list to begin. Logging to {LOG_FILE_PATH.name}.")

    def _build_header(self) -> QtWidgets.QWidget:
        frame = QtWidgets.QFrame()
        layout = QtWidgets.QHBoxLayout(frame)
        layout.setContentsMargins(0, 0, 0, 0)
        title = QtWidgets.QLabel("FlowMap Explorer")
        title.setObjectName("HeaderTitle")
        subtitle = QtWidgets.QLabel("Paths, bottlenecks and an interactive map from a plain edge list")
        subtitle.setObjectName("HeaderSubtitle")
        layout.addWidget(title)
        layout.addStretch(1)
        layout.addWidget(subtitle)
        return frame

    def _build_controls_panel(self) -> QtWidgets.QWidget:
        container = QtWidgets.QWidget()
        container.setMaximumWidth(320)
        layout = QtWidgets.QVBoxLayout(container)
        layout.setAlignment(QtCore.Qt.AlignmentFlag.AlignTop)

        load_group = QtWidgets.QGroupBox("1. Load Process")
        load_layout = QtWidgets.QVBoxLayout(load_group)
        self.sample_button = QtWidgets.QPushButton("Load Sample Order Flow")
        self.sample_button.clicked.connect(self.load_sample_graph)
        load_layout.addWidget(self.sample_button)
        self.open_button = QtWidgets.QPushButton("Open Edge List…")
        self.open_button.clicked.connect(self.open_file)
        load_layout.addWidget(self.open_button)
        layout.addWidget(load_group)

        view_group = QtWidgets.QGroupBox("2. View")
        view_layout = QtWidgets.QVBoxLayout(view_group)
        view_layout.addWidget(QtWidgets.QLabel("Layout"))
        self.layout_combo = QtWidgets.QComboBox()
        self.layout_combo.addItems([strategy.title() for strategy in LAYOUT_STRATEGIES])
        self.layout_combo.currentTextChanged.connect(self._on_layout_mode_changed)
        view_layout.addWidget(self.layout_combo)

        zoom_row = QtWidgets.QHBoxLayout()
        for text, handler in (("Zoom +", self._zoom_in), ("Zoom −", self._zoom_out), ("Reset", self._reset_view)):
            button = QtWidgets.QPushButton(text)
            button.clicked.connect(handler)
            zoom_row.addWidget(button)
        view_layout.addLayout(zoom_row)

        hint = QtWidgets.QLabel(
            "Drag steps to move them, drag the background to pan, scroll to zoom. "
            "Click a main step to collapse or expand its subprocess."
        )
        hint.setWordWrap(True)
        hint.setStyleSheet("color: #8a93c9; font-size: 11px;")
        view_layout.addWidget(hint)
        layout.addWidget(view_group)

        analysis_group = QtWidgets.QGroupBox("3. Analyse & Export")
        analysis_layout = QtWidgets.QVBoxLayout(analysis_group)
        self.narrate_button = QtWidgets.QPushButton("Summarise Process")
        self.narrate_button.clicked.connect(self.request_narration)
        analysis_layout.addWidget(self.narrate_button)
        self.dfg_button = QtWidgets.QPushButton("Render DFG")
        self.dfg_button.clicked.connect(self.render_dfg)
        analysis_layout.addWidget(self.dfg_button)
        self.export_svg_button = QtWidgets.QPushButton("Export DFG (SVG)…")
        self.export_svg_button.clicked.connect(self.export_dfg_svg)
        analysis_layout.addWidget(self.export_svg_button)
        self.export_json_button = QtWidgets.QPushButton("Export Metrics (JSON)…")
        self.export_json_button.clicked.connect(self.export_metrics_json)
        analysis_layout.addWidget(self.export_json_button)
        layout.addWidget(analysis_group)

        layout.addStretch(1)
        self._set_graph_actions_enabled(False)
        return container

    def _build_main_content(self) -> QtWidgets.QWidget:
        self.tabs = QtWidgets.QTabWidget()
        self.tabs.setDocumentMode(True)
        self._build_map_tab()
        self._build_analysis_tab()
        self._build_dfg_tab()
        return self.tabs

    def _build_map_tab(self) -> None:
        self.canvas = ProcessCanvasWidget(self.render_settings)
        self.canvas.nodeToggled.connect(self._on_node_toggled)
        self.tabs.addTab(self.canvas, "Process Map")

    def _build_analysis_tab(self) -> None:
        widget = QtWidgets.QWidget()
        layout = QtWidgets.QVBoxLayout(widget)
        layout.setContentsMargins(20, 20, 20, 20)
        layout.setSpacing(12)

        cards = [
            ("cycletime", "Avg cycle time (steps)"),
            ("variants", "Process variants"),
            ("bottlenecks", "Bottlenecks"),
        ]
        self.metric_cards: Dict[str, StatsCard] = {}
        cards_layout = QtWidgets.QHBoxLayout()
        cards_layout.setSpacing(12)
        for idx, (key, title) in enumerate(cards):
            card = StatsCard(key, title, accent=self._color_for_index(idx))
            card.clicked.connect(self._show_breakdown)
            self.metric_cards[key] = card
            cards_layout.addWidget(card)
        cards_layout.addStretch(1)
        layout.addLayout(cards_layout)

        self.breakdown_label = QtWidgets.QLabel("<i>Click a metric to see how it was derived.</i>")
        self.breakdown_label.setWordWrap(True)
        self.breakdown_label.setTextFormat(QtCore.Qt.TextFormat.RichText)
        self.breakdown_label.setStyleSheet("color: #d7dbff;")
        layout.addWidget(self._create_chart_card("Metric details", self.breakdown_label))

        self.narration_label = QtWidgets.QLabel("<i>Load a process to generate a summary.</i>")
        self.narration_label.setWordWrap(True)
        self.narration_label.setTextInteractionFlags(QtCore.Qt.TextInteractionFlag.TextSelectableByMouse)
        layout.addWidget(self._create_chart_card("Summary", self.narration_label))

        splitter = QtWidgets.QSplitter(QtCore.Qt.Orientation.Horizontal)
        self.path_length_plot = pg.PlotWidget()
        self._configure_plot_widget(self.path_length_plot)
        splitter.addWidget(
            self._create_chart_card("Path lengths", self.path_length_plot, "Number of discovered paths per length.")
        )

        tables = QtWidgets.QWidget()
        tables_layout = QtWidgets.QVBoxLayout(tables)
        tables_layout.setContentsMargins(0, 0, 0, 0)
        self.variant_model = PandasTableModel()
        self.bottleneck_model = PandasTableModel()
        tables_layout.addWidget(self._create_chart_card("Variants", self._make_table(self.variant_model)))
        tables_layout.addWidget(self._create_chart_card("Bottlenecks", self._make_table(self.bottleneck_model)))
        splitter.addWidget(tables)
        splitter.setStretchFactor(0, 1)
        splitter.setStretchFactor(1, 2)
        layout.addWidget(splitter, stretch=1)

        self.tabs.addTab(widget, "Analysis")

    def _build_dfg_tab(self) -> None:
        self.dfg_widget = QtSvgWidgets.QSvgWidget()
        self.dfg_widget.setMinimumHeight(420)
        self.tabs.addTab(
            self._create_chart_card(
                "Directly-follows graph",
                self.dfg_widget,
                "Arc labels count how often one step directly follows another in the edge list.",
            ),
            "DFG",
        )

    def _make_table(self, model: PandasTableModel) -> QtWidgets.QTableView:
        table = QtWidgets.QTableView()
        table.setModel(model)
        table.horizontalHeader().setSectionResizeMode(QtWidgets.QHeaderView.ResizeMode.ResizeToContents)
        table.horizontalHeader().setStretchLastSection(True)
        table.verticalHeader().setVisible(False)
        table.setSelectionBehavior(QtWidgets.QAbstractItemView.SelectionBehavior.SelectRows)
        return table

    def _create_chart_card(self, title: str, content: QtWidgets.QWidget, subtitle: str = "") -> QtWidgets.QFrame:
        frame = QtWidgets.QFrame()
        frame.setObjectName("ChartCard")
        frame_layout = QtWidgets.QVBoxLayout(frame)
        frame_layout.setContentsMargins(16, 16, 16, 16)
        frame_layout.setSpacing(8)
        title_label = QtWidgets.QLabel(title)
        title_label.setStyleSheet("font-size: 15px; font-weight: 600; color: #f3f5ff;")
        frame_layout.addWidget(title_label)
        if subtitle:
            subtitle_label = QtWidgets.QLabel(subtitle)
            subtitle_label.setWordWrap(True)
            subtitle_label.setStyleSheet("color: #9aa5d9; font-size: 12px;")
            frame_layout.addWidget(subtitle_label)
        frame_layout.addWidget(content, stretch=1)
        frame.setStyleSheet(
            "QFrame#ChartCard { border-radius: 16px; border: 1px solid rgba(127, 90, 240, 0.18);"
            " background-color: rgba(20, 23, 35, 0.88); }"
        )
        return frame

    def _configure_plot_widget(self, plot: pg.PlotWidget) -> None:
        plot.setBackground("transparent")
        plot.setMenuEnabled(False)
        plot.setMouseEnabled(x=False, y=False)
        item = plot.getPlotItem()
        item.showGrid(x=False, y=True, alpha=0.12)
        item.setLabel("bottom", "Steps")
        item.setLabel("left", "Paths")
        for axis_name in ("left", "bottom"):
            axis = item.getAxis(axis_name)
            axis.setPen(pg.mkPen(color="#282c40"))
            axis.setTextPen(pg.mkPen("#d1d7ff"))

    def _color_for_index(self, index: int) -> str:
        return self._color_palette[index % len(self._color_palette)]

    # Loading -------------------------------------------------------------
    def load_sample_graph(self) -> None:
        if not SAMPLE_GRAPH_PATH.exists():
            self._show_error(f"Sample edge list not found. Ensure '{SAMPLE_GRAPH_PATH.as_posix()}' exists.")
            return
        self.logger.info("Loading bundled sample from %s", SAMPLE_GRAPH_PATH)
        self._apply_outcome(self._load(lambda: self.session.load_file(SAMPLE_GRAPH_PATH)))

    def open_file(self) -> None:
        file_path, _ = QtWidgets.QFileDialog.getOpenFileName(self, "Open Edge List", "", FILE_DIALOG_FILTER)
        if not file_path:
            return
        self.logger.info("Selected file: %s", file_path)
        self._apply_outcome(self._load(lambda: self.session.load_file(pathlib.Path(file_path))))

    def _load(self, action: Callable[[], LoadOutcome]) -> LoadOutcome:
        self.session.viewport_size = (float(self.canvas.width()), float(self.canvas.height()))
        return action()

    def _apply_outcome(self, outcome: LoadOutcome) -> None:
        if not outcome.ok:
            self._show_error(outcome.message)
            return
        self.statusBar().showMessage(outcome.message, 5000)
        self._dfg_svg = None
        self.dfg_widget.load(QtCore.QByteArray())
        self.canvas.set_graph(self.session.graph)
        self._set_graph_actions_enabled(True)
        self.refresh_views()
        self.request_narration()

    def _set_graph_actions_enabled(self, enabled: bool) -> None:
        for button in (self.narrate_button, self.dfg_button, self.export_svg_button, self.export_json_button):
            button.setEnabled(enabled)

    # Views ---------------------------------------------------------------
    def refresh_views(self) -> None:
        snapshot = self.session.snapshot
        if snapshot is None:
            return
        self.metric_cards["cycletime"].set_value(f"{snapshot.cycle_time:.1f}")
        self.metric_cards["variants"].set_value(f"{snapshot.variant_count:,}")
        self.metric_cards["bottlenecks"].set_value(f"{snapshot.bottleneck_count:,}")
        self.breakdown_label.setText("<i>Click a metric to see how it was derived.</i>")

        self.variant_model.set_dataframe(process_metrics.compute_variants_table(snapshot.paths))
        self.bottleneck_model.set_dataframe(process_metrics.compute_bottleneck_table(snapshot))
        self._plot_path_lengths(process_metrics.compute_path_length_distribution(snapshot.paths))

    def _show_breakdown(self, key: str) -> None:
        breakdown = self.session.breakdowns.get(key)
        if breakdown is None:
            self._show_warning("Load a process before inspecting metrics.")
            return
        self.breakdown_label.setText(f"<span style='color:#9aa5d9;'>{breakdown.title}</span><br>{breakdown.to_html()}")

    def _plot_path_lengths(self, df: pd.DataFrame) -> None:
        self.path_length_plot.clear()
        if df.empty:
            self.path_length_plot.getPlotItem().setTitle(
                "<span style='color:#8a93c9;font-size:10pt;'>No start-to-end paths found.</span>"
            )
            return
        self.path_length_plot.getPlotItem().setTitle("")
        steps = df["steps"].astype(float).to_numpy()
        counts = df["paths"].astype(float).to_numpy()
        bar = pg.BarGraphItem(
            x=steps,
            height=counts,
            width=0.7,
            brush=pg.mkBrush(self._color_for_index(0)),
            pen=pg.mkPen("#1a1f33", width=1),
        )
        self.path_length_plot.addItem(bar)
        self.path_length_plot.setYRange(0, counts.max() * 1.2)

    def _on_layout_mode_changed(self, text: str) -> None:
        strategy = text.lower()
        self.logger.info("Layout mode changed to %s", strategy)
        self.session.relayout(strategy, (float(self.canvas.width()), float(self.canvas.height())))
        self.canvas.set_graph(self.session.graph)

    def _on_node_toggled(self, node_id: str) -> None:
        self.statusBar().showMessage(f"Toggled subprocess of {node_id}", 3000)

    def _zoom_in(self) -> None:
        self.canvas.zoom_in()

    def _zoom_out(self) -> None:
        self.canvas.zoom_out()

    def _reset_view(self) -> None:
        self.canvas.reset_view()

    # Narration -----------------------------------------------------------
    def request_narration(self) -> None:
        if not self.session.has_graph:
            self._show_warning("Load a process before requesting a summary.")
            return
        graph = self.session.graph
        if self.session.narrator.is_narrating(graph):
            self.statusBar().showMessage("A summary is already being generated.", 3000)
            return
        self.narration_label.setText("<i>Generating summary…</i>")
        self.narrate_button.setEnabled(False)
        future = self._async_loop.submit(self.session.narrate(graph))
        future.add_done_callback(functools.partial(self._bridge.deliver, graph))

    def _is_stale(self, graph: ProcessGraph) -> bool:
        if graph is self.session.graph:
            return False
        self.logger.info("Dropping summary of a process that has since been replaced.")
        return True

    def _on_narration_finished(self, graph: ProcessGraph, result: Optional[AnalysisResult]) -> None:
        if self._is_stale(graph):
            return
        self.narrate_button.setEnabled(self.session.has_graph)
        if result is None:
            return
        self.narration_label.setText(result.text)
        if result.used_fallback:
            self.statusBar().showMessage("Summary service unavailable; showing local analysis.", 5000)

    def _on_narration_failed(self, graph: ProcessGraph, message: str) -> None:
        if self._is_stale(graph):
            return
        self.narrate_button.setEnabled(self.session.has_graph)
        self.narration_label.setText("<i>Summary unavailable.</i>")
        self._show_warning(f"Could not generate summary: {message}")

    # Export --------------------------------------------------------------
    def render_dfg(self) -> None:
        if self.session.graph is None:
            self._show_warning("Load a process before rendering the DFG.")
            return
        try:
            self._dfg_svg = render_dfg_svg(self.session.graph)
        except Exception as exc:  # pylint: disable=broad-except
            self.logger.exception("Failed to render DFG.")
            self._show_error(f"Failed to render DFG (is Graphviz installed?): {exc}")
            return
        self.dfg_widget.load(QtCore.QByteArray(self._dfg_svg))
        self.tabs.setCurrentWidget(self.dfg_widget.parentWidget())

    def export_dfg_svg(self) -> None:
        if self.session.graph is None:
            self._show_warning("Load a process before exporting the DFG.")
            return
        file_path, _ = QtWidgets.QFileDialog.getSaveFileName(self, "Save DFG", "", "SVG files (*.svg)")
        if not file_path:
            return
        try:
            svg_bytes = self._dfg_svg or render_dfg_svg(self.session.graph)
            pathlib.Path(file_path).write_bytes(svg_bytes)
            self.statusBar().showMessage(f"Saved DFG to {file_path}", 5000)
            self.logger.info("DFG exported to %s", file_path)
        except Exception as exc:  # pylint: disable=broad-except
            self.logger.exception("Failed to export DFG to %s", file_path)
            self._show_error(f"Failed to export DFG: {exc}")

    def export_metrics_json(self) -> None:
        if self.session.graph is None or self.session.snapshot is None:
            self._show_warning("Load a process before exporting metrics.")
            return
        file_path, _ = QtWidgets.QFileDialog.getSaveFileName(self, "Save Metrics", "", "JSON files (*.json)")
        if not file_path:
            return
        payload = process_metrics.build_metrics_payload(self.session.graph, self.session.snapshot)
        try:
            pathlib.Path(file_path).write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as exc:
            self.logger.exception("Failed to export metrics to %s", file_path)
            self._show_error(f"Failed to export metrics: {exc}")
            return
        self.statusBar().showMessage(f"Saved metrics to {file_path}", 5000)
        self.logger.info("Metrics exported to %s", file_path)

    def closeEvent(self, event: QtGui.QCloseEvent) -> None:  # type: ignore[override]
        self._async_loop.stop()
        super().closeEvent(event)

    # Messaging ------------------------------------------------------------
    def _show_error(self, message: str) -> None:
        self.logger.error(message)
        QtWidgets.QMessageBox.critical(self, "Error", message)

    def _show_warning(self, message: str) -> None:
        self.logger.warning(message)
        QtWidgets.QMessageBox.warning(self, "Warning", message)


def main() -> None:
    logger = BASE_LOGGER.getChild("runtime")
    logger.info("Starting QApplication event loop.")
    app = QtWidgets.QApplication(sys.argv)
    window = FlowMapApp()
    window.show()
    exit_code = app.exec()
    logger.info("Application closed with exit code %s", exit_code)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
