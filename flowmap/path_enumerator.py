from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Set

from .graph_loader import Edge, ProcessGraph

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PathLimits:
    """
    Resource bounds for path discovery.

    `max_nodes` truncates the node set in first-seen order before anything else runs, so paths through
    nodes beyond the cut are never discovered. This trades precision for a predictable cost.
    `max_expansions` caps the node expansions of one whole `find_all_paths` call, not of each pair.
    """

    max_nodes: int = 100
    max_paths: int = 50
    max_expansions: int = 20_000


class _SearchBudgetExceeded(Exception):
    pass


class _ExpansionBudget:
    def __init__(self, limit: Optional[int]):
        self.limit = limit
        self.used = 0

    @property
    def exhausted(self) -> bool:
        return self.limit is not None and self.used > self.limit

    def spend(self) -> None:
        self.used += 1
        if self.exhausted:
            raise _SearchBudgetExceeded()


def _truncate(graph: ProcessGraph, max_nodes: int) -> tuple[List[str], List[Edge]]:
    kept_nodes = graph.node_ids[:max_nodes]
    kept = set(kept_nodes)
    kept_edges = [edge for edge in graph.edges if edge.source in kept and edge.target in kept]
    return kept_nodes, kept_edges


def find_start_nodes(nodes: Sequence[str], edges: Sequence[Edge]) -> List[str]:
    targets = {edge.target for edge in edges}
    return [node for node in nodes if node not in targets]


def find_end_nodes(nodes: Sequence[str], edges: Sequence[Edge]) -> List[str]:
    sources = {edge.source for edge in edges}
    return [node for node in nodes if node not in sources]


def _build_adjacency(edges: Sequence[Edge]) -> Dict[str, List[str]]:
    adjacency: Dict[str, Dict[str, None]] = {}
    for edge in edges:
        if edge.is_self_loop:
            continue
        adjacency.setdefault(edge.source, {}).setdefault(edge.target, None)
    return {source: list(targets) for source, targets in adjacency.items()}


def _reachable_from(start: str, adjacency: Dict[str, List[str]]) -> Set[str]:
    seen = {start}
    queue = deque([start])
    while queue:
        for successor in adjacency.get(queue.popleft(), ()):
            if successor not in seen:
                seen.add(successor)
                queue.append(successor)
    return seen


def find_path(
    start: str,
    end: str,
    adjacency: Dict[str, List[str]],
    *,
    max_expansions: Optional[int] = None,
    budget: Optional[_ExpansionBudget] = None,
) -> Optional[List[str]]:
    """
    Depth-first search for the first path from `start` to `end`, following successors in edge order.

    The visited set tracks the current branch only, so a node may be explored again along a different
    branch but never appears twice in one path. The search keeps its own stack of successor iterators,
    so path length is not bounded by the interpreter's recursion limit.
    """
    if start == end:
        return [start]
    if budget is None:
        budget = _ExpansionBudget(max_expansions)

    path = [start]
    on_branch = {start}
    pending: List[Iterator[str]] = [iter(adjacency.get(start, ()))]
    try:
        budget.spend()
        while pending:
            successor = next(pending[-1], None)
            if successor is None:
                pending.pop()
                on_branch.discard(path.pop())
                continue
            if successor == end:
                return path + [successor]
            if successor in on_branch:
                continue
            budget.spend()
            path.append(successor)
            on_branch.add(successor)
            pending.append(iter(adjacency.get(successor, ())))
    except _SearchBudgetExceeded:
        logger.debug("Search budget exhausted between %s and %s.", start, end)
    return None


def find_all_paths(graph: ProcessGraph, limits: PathLimits = PathLimits()) -> List[List[str]]:
    """
    Collect at most one start-to-end path per (start, end) pair, up to `limits.max_paths` paths.

    A graph where every node has an incoming edge has no start nodes and yields no paths. Ends that
    cannot be reached from a start are skipped without searching; once the expansion budget is spent
    the paths found so far are returned.
    """
    nodes, edges = _truncate(graph, limits.max_nodes)
    start_nodes = find_start_nodes(nodes, edges)
    end_nodes = find_end_nodes(nodes, edges)
    adjacency = _build_adjacency(edges)
    budget = _ExpansionBudget(limits.max_expansions)

    paths: List[List[str]] = []
    for start in start_nodes:
        if len(paths) >= limits.max_paths or budget.exhausted:
            break
        reachable = _reachable_from(start, adjacency)
        for end in end_nodes:
            if len(paths) >= limits.max_paths or budget.exhausted:
                break
            if end not in reachable:
                continue
            path = find_path(start, end, adjacency, budget=budget)
            if path is not None:
                paths.append(path)

    if budget.exhausted:
        logger.warning(
            "Path discovery stopped after %d expansions; returning %d paths found so far.",
            limits.max_expansions,
            len(paths),
        )
    logger.debug(
        "Path discovery: %d start nodes, %d end nodes, %d paths (node limit %d).",
        len(start_nodes),
        len(end_nodes),
        len(paths),
        limits.max_nodes,
    )
    return paths
