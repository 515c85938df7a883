from __future__ import annotations

import logging
import mimetypes
import re
import statistics
from dataclasses import dataclass, field
from enum import Enum
from itertools import islice
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import networkx as nx

from .settings import ALLOWED_MIME_TYPES, MAX_UPLOAD_BYTES, SPREADSHEET_MIME_TYPES

logger = logging.getLogger(__name__)

WHITESPACE_SPLIT = re.compile(r"[\s,]+")
QUOTE_CHARS = "\"'"
DEFAULT_BATCH_SIZE = 1000
SUFFIX_MIME_TYPES = {
    "csv": "text/csv",
    "txt": "text/plain",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


class ParseError(Exception):
    """Raised when raw text does not yield a usable process graph."""


class ValidationError(Exception):
    """Raised when an uploaded file is rejected before parsing."""


class NodeKind(str, Enum):
    MAIN = "Main"
    SUB = "Sub"

    @classmethod
    def for_id(cls, node_id: str) -> "NodeKind":
        return cls.MAIN if node_id[:1].isupper() else cls.SUB


@dataclass
class Position:
    x: float = 0.0
    y: float = 0.0


@dataclass
class NodeMetrics:
    duration: Optional[float] = None
    cost: Optional[float] = None


@dataclass
class Node:
    id: str
    kind: NodeKind
    position: Position = field(default_factory=Position)
    radius: float = 0.0
    visible: bool = True
    metrics: Optional[NodeMetrics] = None


@dataclass
class Edge:
    source: str
    target: str
    visible: bool = True

    @property
    def is_self_loop(self) -> bool:
        return self.source == self.target


@dataclass
class ProcessGraph:
    """
    Directed process graph built from an edge list.

    `nodes` keeps first-seen order; `edges` keeps every parsed connection, parallel edges included.
    """

    nodes: Dict[str, Node] = field(default_factory=dict)
    edges: List[Edge] = field(default_factory=list)

    @property
    def node_ids(self) -> List[str]:
        return list(self.nodes.keys())

    def add_edge(self, source: str, target: str) -> Edge:
        for node_id in (source, target):
            if node_id not in self.nodes:
                self.nodes[node_id] = Node(id=node_id, kind=NodeKind.for_id(node_id))
        edge = Edge(source=source, target=target)
        self.edges.append(edge)
        return edge

    def incoming_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for edge in self.edges:
            counts[edge.target] = counts.get(edge.target, 0) + 1
        return counts

    def outgoing_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for edge in self.edges:
            counts[edge.source] = counts.get(edge.source, 0) + 1
        return counts

    def successors(self, node_id: str) -> List[str]:
        seen: Dict[str, None] = {}
        for edge in self.edges:
            if edge.source == node_id:
                seen.setdefault(edge.target, None)
        return list(seen)

    def refresh_edge_visibility(self) -> None:
        for edge in self.edges:
            edge.visible = self.nodes[edge.source].visible and self.nodes[edge.target].visible

    def to_networkx(self) -> nx.MultiDiGraph:
        graph = nx.MultiDiGraph()
        for node in self.nodes.values():
            graph.add_node(node.id, kind=node.kind.value)
        for edge in self.edges:
            graph.add_edge(edge.source, edge.target)
        return graph


def _iter_batches(lines: Iterable[str], batch_size: int) -> Iterator[List[str]]:
    iterator = iter(lines)
    while True:
        batch = list(islice(iterator, batch_size))
        if not batch:
            return
        yield batch


def _split_whitespace(line: str) -> List[str]:
    return [token for token in WHITESPACE_SPLIT.split(line.strip()) if token]


def _split_csv(line: str) -> List[str]:
    fields = [part.strip() for part in line.strip().split(",")]
    return [_strip_quotes(part) for part in fields]


def _strip_quotes(value: str) -> str:
    if value[:1] in QUOTE_CHARS:
        value = value[1:]
    if value[-1:] in QUOTE_CHARS:
        value = value[:-1]
    return value


def _to_number(token: Optional[str]) -> Optional[float]:
    if token is None:
        return None
    try:
        return float(token)
    except ValueError:
        return None


def _attach_metrics(graph: ProcessGraph, samples: Dict[str, Tuple[List[float], List[float]]]) -> None:
    for node_id, (durations, costs) in samples.items():
        if not durations and not costs:
            continue
        graph.nodes[node_id].metrics = NodeMetrics(
            duration=statistics.fmean(durations) if durations else None,
            cost=statistics.fmean(costs) if costs else None,
        )


def parse_graph(raw_text: str, fmt: str = "whitespace", *, batch_size: int = DEFAULT_BATCH_SIZE) -> ProcessGraph:
    """
    Build a `ProcessGraph` from an edge list.

    `whitespace` splits each line on runs of spaces, tabs and commas; `csv` splits on commas and strips
    surrounding quotes. Every non-blank line is data, headers included. Optional numeric third and
    fourth columns are read as duration and cost of the target step.
    """
    if fmt == "whitespace":
        splitter = _split_whitespace
    elif fmt == "csv":
        splitter = _split_csv
    else:
        raise ValueError(f"Unsupported edge list format: {fmt}")

    graph = ProcessGraph()
    samples: Dict[str, Tuple[List[float], List[float]]] = {}
    lines = (line for line in re.split(r"\r?\n", raw_text) if line.strip())

    for batch in _iter_batches(lines, batch_size):
        for line in batch:
            tokens = splitter(line)
            if len(tokens) < 2:
                continue
            source, target = tokens[0], tokens[1]
            if not source or not target:
                continue
            graph.add_edge(source, target)
            duration = _to_number(tokens[2] if len(tokens) > 2 else None)
            cost = _to_number(tokens[3] if len(tokens) > 3 else None)
            if duration is not None or cost is not None:
                durations, costs = samples.setdefault(target, ([], []))
                if duration is not None:
                    durations.append(duration)
                if cost is not None:
                    costs.append(cost)

    if not graph.nodes or not graph.edges:
        raise ParseError("No valid connections found in file.")

    _attach_metrics(graph, samples)
    logger.info("Parsed %s edge list: %d nodes, %d edges.", fmt, len(graph.nodes), len(graph.edges))
    return graph


def guess_mimetype(filename: str) -> Optional[str]:
    suffix = filename.lower().rsplit(".", 1)[-1] if "." in filename else ""
    if suffix in SUFFIX_MIME_TYPES:
        return SUFFIX_MIME_TYPES[suffix]
    mimetype, _ = mimetypes.guess_type(filename)
    return mimetype


def validate_upload(filename: str, size: int, mimetype: Optional[str] = None) -> str:
    """
    Check size and type of an incoming file and return its effective MIME type.
    """
    if size > MAX_UPLOAD_BYTES:
        raise ValidationError("File is too large. Maximum size is 5MB.")
    mimetype = mimetype or guess_mimetype(filename)
    if mimetype not in ALLOWED_MIME_TYPES:
        raise ValidationError("Invalid file type. Please upload a CSV, TXT, or Excel file.")
    return mimetype


def detect_format(filename: str, mimetype: Optional[str] = None) -> str:
    if mimetype == "text/csv" or filename.lower().endswith(".csv"):
        return "csv"
    return "whitespace"


def load_graph_from_bytes(file_bytes: bytes, filename: str, mimetype: Optional[str] = None) -> ProcessGraph:
    """
    Validate and parse an uploaded edge list.
    """
    mimetype = validate_upload(filename, len(file_bytes), mimetype)
    if mimetype in SPREADSHEET_MIME_TYPES:
        raise ValidationError("Excel files are not supported. Please use CSV format.")
    try:
        text = file_bytes.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ParseError("File is not valid UTF-8 text.") from exc
    return parse_graph(text, detect_format(filename, mimetype))
