from __future__ import annotations

import os
import pathlib
from dataclasses import dataclass
from typing import Optional, Tuple

MAX_UPLOAD_BYTES = 5 * 1024 * 1024
MERGE_PREFIX = "="
DEFAULT_VIEWPORT: Tuple[float, float] = (1200.0, 800.0)
SAMPLE_GRAPH_PATH = pathlib.Path("data/sample_order_flow.txt")

ALLOWED_MIME_TYPES = (
    "text/csv",
    "text/plain",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
)
SPREADSHEET_MIME_TYPES = ALLOWED_MIME_TYPES[2:]


@dataclass(frozen=True)
class RenderSettings:
    main_radius: float = 22.0
    sub_radius: float = 15.0
    min_scale: float = 0.1
    max_scale: float = 5.0
    zoom_in_factor: float = 1.2
    zoom_out_factor: float = 0.8
    wheel_zoom_factor: float = 1.15
    target_fps: float = 60.0
    duration_threshold: float = 60.0
    cost_threshold: float = 100.0
    arrow_size: float = 10.0
    main_colour: str = "#7F5AF0"
    sub_colour: str = "#2CB1BC"
    edge_colour: str = "#6f789f"
    highlight_colour: str = "#F25F5C"
    label_colour: str = "#e3e7ff"
    background_colour: str = "#0f111a"


@dataclass(frozen=True)
class NarratorSettings:
    """Where the summarization service lives and how much graph data it receives."""

    base_url: Optional[str] = "http://localhost:3000"
    capabilities_path: str = "/api/llm/capabilities"
    analyze_path: str = "/api/llm/analyze"
    timeout_seconds: float = 10.0
    max_nodes: int = 100
    max_edges: int = 200
    max_connections: int = 20
    enabled: bool = True

    @classmethod
    def from_env(cls) -> "NarratorSettings":
        base_url = os.environ.get("FLOWMAP_NARRATOR_URL", cls.base_url)
        timeout_raw = os.environ.get("FLOWMAP_NARRATOR_TIMEOUT")
        try:
            timeout = float(timeout_raw) if timeout_raw else cls.timeout_seconds
        except ValueError:
            timeout = cls.timeout_seconds
        return cls(base_url=base_url or None, timeout_seconds=timeout, enabled=bool(base_url))
