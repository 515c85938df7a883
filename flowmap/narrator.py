from __future__ import annotations

import asyncio
import html
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from .graph_loader import ProcessGraph
from .path_enumerator import PathLimits, find_all_paths
from .process_metrics import MetricsSnapshot, bottleneck_impact, compute_overview
from .settings import NarratorSettings

logger = logging.getLogger(__name__)


class NarrationTimeout(Exception):
    """Raised when the summarization service does not answer in time."""


class NarrationUnavailable(Exception):
    """Raised when the summarization service is unreachable, declines, or answers badly."""


@dataclass(frozen=True)
class AnalysisResult:
    text: str
    used_fallback: bool


@dataclass
class MetricBreakdown:
    title: str
    headline: str
    lines: List[str] = field(default_factory=list)
    note: str = ""

    def to_text(self) -> str:
        parts = [self.headline, *self.lines]
        if self.note:
            parts.append(self.note)
        return "\n".join(parts)

    def to_html(self) -> str:
        body = "<br>".join(html.escape(line) for line in self.lines)
        text = f"<b>{html.escape(self.headline)}</b><br><br>{body}"
        if self.note:
            text += f"<br><br><i>{html.escape(self.note)}</i>"
        return text


def _cycle_time_breakdown(graph: ProcessGraph, snapshot: MetricsSnapshot) -> MetricBreakdown:
    lengths = [len(path) for path in snapshot.paths]
    return MetricBreakdown(
        title="Cycle Time Analysis",
        headline=f"Average Cycle Time: {snapshot.cycle_time:.1f}",
        lines=[
            f"Shortest Path: {min(lengths, default=0)} steps",
            f"Longest Path: {max(lengths, default=0)} steps",
            f"Total Paths Analyzed: {len(lengths)}",
            f"Based on {len(graph.nodes)} nodes and {len(graph.edges)} connections",
        ],
        note="This metric indicates the average number of steps required to complete the process.",
    )


def _variant_breakdown(snapshot: MetricsSnapshot) -> MetricBreakdown:
    lines = ["Most Common Paths:"]
    for idx, path in enumerate(snapshot.paths[:3], start=1):
        lines.append(f"{idx}. {' → '.join(path)}")
    remaining = snapshot.variant_count - 3
    note = f"And {remaining} more variants..." if remaining > 0 else ""
    return MetricBreakdown(
        title="Process Variants Analysis",
        headline=f"Total Variants: {snapshot.variant_count}",
        lines=lines,
        note=note,
    )


def _bottleneck_breakdown(snapshot: MetricsSnapshot) -> MetricBreakdown:
    lines = ["Top Bottleneck Points:"] if snapshot.bottlenecks else ["No step has more than one incoming connection."]
    for bottleneck in snapshot.bottlenecks:
        lines.append(f"• {bottleneck.node_id} ({bottleneck.category.value})")
        lines.append(f"  {bottleneck.incoming_count} incoming connections")
        lines.append(f"  Impact: {bottleneck_impact(bottleneck.category, bottleneck.incoming_count)}")
    return MetricBreakdown(
        title="Bottleneck Analysis",
        headline=f"Identified Bottlenecks: {snapshot.bottleneck_count}",
        lines=lines,
        note="These points require attention as they represent convergence of multiple process flows.",
    )


def build_breakdowns(graph: ProcessGraph, snapshot: MetricsSnapshot) -> Dict[str, MetricBreakdown]:
    """
    Human-readable detail for each headline metric, keyed by metric name.
    """
    return {
        "cycletime": _cycle_time_breakdown(graph, snapshot),
        "variants": _variant_breakdown(snapshot),
        "bottlenecks": _bottleneck_breakdown(snapshot),
    }


def build_fallback_summary(graph: ProcessGraph, limits: PathLimits = PathLimits()) -> str:
    """
    Deterministic structural summary used whenever the remote service is not used.
    """
    overview = compute_overview(graph, find_all_paths(graph, limits))
    return (
        "Local Analysis Results:\n"
        f"- Process Steps: {overview['nodes']}\n"
        f"- Connections: {overview['edges']}\n"
        f"- Entry Points: {overview['entry_points']}\n"
        f"- Exit Points: {overview['exit_points']}\n"
        f"- Parallel Branches: {overview['parallel_branches']}\n"
        f"- Maximum Path Length: {overview['max_depth']}\n"
        f"- Average Connections per Step: {overview['avg_branching']:.2f}"
    )


def build_request_payload(graph: ProcessGraph, settings: NarratorSettings) -> Dict[str, str]:
    nodes = graph.node_ids[: settings.max_nodes]
    edges = graph.edges[: settings.max_edges]
    summary = {
        "nodeCount": len(nodes),
        "edgeCount": len(edges),
        "connections": [f"{edge.source}->{edge.target}" for edge in edges[: settings.max_connections]],
    }
    return {"text": json.dumps(summary, separators=(",", ":"))}


class AnalysisNarrator:
    """
    Requests a natural-language summary of a graph, falling back to a local summary.

    Only one request runs at a time. A call for the graph already being narrated awaits and returns
    the pending result; a call for another graph waits for the pending request to finish and then
    issues its own, so a result always describes the graph it was asked about. `narrate` never
    raises for service problems.
    """

    def __init__(
        self,
        settings: Optional[NarratorSettings] = None,
        *,
        limits: PathLimits = PathLimits(),
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._settings = settings or NarratorSettings()
        self._limits = limits
        self._transport = transport
        self._in_flight: Optional[asyncio.Future[AnalysisResult]] = None
        self._in_flight_graph: Optional[ProcessGraph] = None
        self.last_result: Optional[AnalysisResult] = None

    @property
    def in_progress(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    def is_narrating(self, graph: ProcessGraph) -> bool:
        return self.in_progress and self._in_flight_graph is graph

    async def narrate(self, graph: ProcessGraph) -> AnalysisResult:
        while self.in_progress:
            pending = self._in_flight
            if self._in_flight_graph is graph:
                logger.info("Narration already in progress; reusing the pending result.")
                return await asyncio.shield(pending)
            logger.info("Narration of a previous graph still running; queuing this one behind it.")
            await asyncio.wait([pending])

        task = asyncio.ensure_future(self._narrate(graph))
        self._in_flight = task
        self._in_flight_graph = graph
        try:
            return await asyncio.shield(task)
        finally:
            if self._in_flight is task and task.done():
                self._in_flight = None
                self._in_flight_graph = None

    async def _narrate(self, graph: ProcessGraph) -> AnalysisResult:
        if not self._settings.enabled or not self._settings.base_url:
            return self._fallback(graph)

        try:
            async with httpx.AsyncClient(
                base_url=self._settings.base_url,
                timeout=self._settings.timeout_seconds,
                transport=self._transport,
                headers={"Cache-Control": "no-cache"},
            ) as client:
                await self._check_capabilities(client)
                payload = build_request_payload(graph, self._settings)
                try:
                    data = await asyncio.wait_for(
                        self._request_analysis(client, payload), timeout=self._settings.timeout_seconds
                    )
                except asyncio.TimeoutError as exc:
                    raise NarrationTimeout(
                        f"No answer within {self._settings.timeout_seconds:g}s"
                    ) from exc
        except (NarrationTimeout, NarrationUnavailable) as exc:
            logger.warning("Summarization service not used (%s); using local summary.", exc)
            return self._fallback(graph)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Unexpected narration failure; using local summary.")
            return self._fallback(graph)

        result = AnalysisResult(text=data["analysis"], used_fallback=bool(data.get("fallback", False)))
        logger.info("Summarization service answered (fallback=%s).", result.used_fallback)
        return self._remember(result)

    async def _check_capabilities(self, client: httpx.AsyncClient) -> None:
        try:
            response = await client.get(self._settings.capabilities_path)
        except httpx.TimeoutException as exc:
            raise NarrationTimeout("Capability probe timed out") from exc
        except httpx.HTTPError as exc:
            raise NarrationUnavailable(f"Capability probe failed: {exc}") from exc
        if response.status_code != 200:
            raise NarrationUnavailable(f"Capability probe returned HTTP {response.status_code}")
        try:
            capabilities = response.json()
        except ValueError as exc:
            raise NarrationUnavailable("Capability probe returned invalid JSON") from exc
        if not isinstance(capabilities, dict) or not capabilities.get("gpuAvailable"):
            raise NarrationUnavailable("Accelerated summarization is not available")

    async def _request_analysis(self, client: httpx.AsyncClient, payload: Dict[str, str]) -> Dict[str, Any]:
        try:
            response = await client.post(self._settings.analyze_path, json=payload)
        except httpx.TimeoutException as exc:
            raise NarrationTimeout("Summarization request timed out") from exc
        except httpx.HTTPError as exc:
            raise NarrationUnavailable(f"Summarization request failed: {exc}") from exc
        if response.status_code != 200:
            raise NarrationUnavailable(f"Analysis failed: HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise NarrationUnavailable("Summarization service returned invalid JSON") from exc
        if not isinstance(data, dict) or not isinstance(data.get("analysis"), str) or not data["analysis"].strip():
            raise NarrationUnavailable("Summarization service returned no analysis")
        return data

    def _fallback(self, graph: ProcessGraph) -> AnalysisResult:
        return self._remember(AnalysisResult(build_fallback_summary(graph, self._limits), used_fallback=True))

    def _remember(self, result: AnalysisResult) -> AnalysisResult:
        self.last_result = result
        return result
