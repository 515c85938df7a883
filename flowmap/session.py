from __future__ import annotations

import logging
import pathlib
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from .graph_loader import ParseError, ProcessGraph, ValidationError, load_graph_from_bytes, parse_graph
from .layout import apply_layout, compute_layout
from .narrator import AnalysisNarrator, AnalysisResult, MetricBreakdown, build_breakdowns
from .path_enumerator import PathLimits
from .process_metrics import MetricsSnapshot, compute_snapshot
from .settings import DEFAULT_VIEWPORT, NarratorSettings, RenderSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadOutcome:
    ok: bool
    message: str
    node_count: int = 0
    edge_count: int = 0


class ProcessSession:
    """
    Holds the currently loaded process graph together with its metrics and layout.

    A load either replaces everything at once or leaves the previous state untouched.
    """

    def __init__(
        self,
        *,
        limits: PathLimits = PathLimits(),
        render_settings: RenderSettings = RenderSettings(),
        narrator: Optional[AnalysisNarrator] = None,
        narrator_settings: Optional[NarratorSettings] = None,
        viewport_size: Tuple[float, float] = DEFAULT_VIEWPORT,
        layout_strategy: str = "grid",
    ):
        self.limits = limits
        self.render_settings = render_settings
        self.narrator = narrator or AnalysisNarrator(narrator_settings, limits=limits)
        self.viewport_size = viewport_size
        self.layout_strategy = layout_strategy
        self.graph: Optional[ProcessGraph] = None
        self.snapshot: Optional[MetricsSnapshot] = None
        self.breakdowns: Dict[str, MetricBreakdown] = {}
        self.source_name: Optional[str] = None

    @property
    def has_graph(self) -> bool:
        return self.graph is not None

    def load_text(self, raw_text: str, fmt: str = "whitespace", *, source_name: str = "<text>") -> LoadOutcome:
        return self._load(lambda: parse_graph(raw_text, fmt), source_name)

    def load_bytes(self, file_bytes: bytes, filename: str, mimetype: Optional[str] = None) -> LoadOutcome:
        return self._load(lambda: load_graph_from_bytes(file_bytes, filename, mimetype), filename)

    def load_file(self, path: pathlib.Path, mimetype: Optional[str] = None) -> LoadOutcome:
        path = pathlib.Path(path)
        try:
            file_bytes = path.read_bytes()
        except OSError as exc:
            logger.warning("Could not read %s: %s", path, exc)
            return LoadOutcome(ok=False, message=f"Could not read file: {exc}")
        return self.load_bytes(file_bytes, path.name, mimetype)

    def _load(self, build: Callable[[], ProcessGraph], source_name: str) -> LoadOutcome:
        try:
            graph = build()
            snapshot = compute_snapshot(graph, self.limits)
            breakdowns = build_breakdowns(graph, snapshot)
            positions = compute_layout(graph, self.viewport_size, self.layout_strategy, self.render_settings)
            apply_layout(graph, positions, self.render_settings)
        except (ParseError, ValidationError) as exc:
            logger.warning("Rejected %s: %s", source_name, exc)
            return LoadOutcome(ok=False, message=str(exc))
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Failed to analyse %s", source_name)
            return LoadOutcome(ok=False, message=f"Failed to analyse process: {exc}")

        self.graph = graph
        self.snapshot = snapshot
        self.breakdowns = breakdowns
        self.source_name = source_name
        logger.info(
            "Loaded %s: %d nodes, %d edges, %d paths.",
            source_name,
            len(graph.nodes),
            len(graph.edges),
            snapshot.variant_count,
        )
        return LoadOutcome(
            ok=True,
            message=f"Loaded {len(graph.nodes)} steps and {len(graph.edges)} connections from {source_name}.",
            node_count=len(graph.nodes),
            edge_count=len(graph.edges),
        )

    def relayout(self, strategy: Optional[str] = None, viewport_size: Optional[Tuple[float, float]] = None) -> None:
        if strategy is not None:
            self.layout_strategy = strategy
        if viewport_size is not None:
            self.viewport_size = viewport_size
        if self.graph is None:
            return
        positions = compute_layout(self.graph, self.viewport_size, self.layout_strategy, self.render_settings)
        apply_layout(self.graph, positions, self.render_settings)

    async def narrate(self, graph: Optional[ProcessGraph] = None) -> Optional[AnalysisResult]:
        """
        Summarise `graph`, or the current graph when none is given.

        Coroutines scheduled on another thread pass the graph explicitly.
        """
        graph = graph if graph is not None else self.graph
        if graph is None:
            logger.warning("Narration requested with no process loaded.")
            return None
        return await self.narrator.narrate(graph)
