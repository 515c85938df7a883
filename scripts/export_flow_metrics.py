#!/usr/bin/env python
"""
Compute process metrics for an edge list and write them as JSON.

Usage:
    python scripts/export_flow_metrics.py --input data/sample_order_flow.txt --output runtime/flow_metrics.json

The JSON holds nodes with their degree, the edge list, headline metrics, an overview and the discovered paths.
"""

from __future__ import annotations

import argparse
import json
import logging
import pathlib
import sys

REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from flowmap.graph_loader import ParseError, ValidationError, load_graph_from_bytes  # noqa: E402  pylint: disable=wrong-import-position
from flowmap.path_enumerator import PathLimits  # noqa: E402  pylint: disable=wrong-import-position
from flowmap.process_metrics import build_metrics_payload, compute_snapshot  # noqa: E402  pylint: disable=wrong-import-position


def export_metrics(input_path: pathlib.Path, output_path: pathlib.Path, limits: PathLimits = PathLimits()) -> dict:
    try:
        raw = input_path.read_bytes()
    except OSError as exc:
        raise SystemExit(f"Could not read edge list: {exc}") from exc
    try:
        graph = load_graph_from_bytes(raw, input_path.name)
    except (ParseError, ValidationError) as exc:
        raise SystemExit(f"Failed to load edge list: {exc}") from exc

    payload = build_metrics_payload(graph, compute_snapshot(graph, limits))
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    print(f"Wrote metrics for {len(graph.nodes)} steps to {output_path}")
    return payload


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export process metrics for an edge list as JSON.")
    parser.add_argument("--input", required=True, type=pathlib.Path, help="Edge list (.csv or .txt).")
    parser.add_argument("--output", required=True, type=pathlib.Path, help="Destination JSON file.")
    parser.add_argument("--max-paths", type=int, default=PathLimits.max_paths, help="Maximum number of paths.")
    parser.add_argument("--max-nodes", type=int, default=PathLimits.max_nodes, help="Nodes considered for paths.")
    parser.add_argument("--verbose", action="store_true", help="Log progress to stderr.")
    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    export_metrics(args.input, args.output, PathLimits(max_nodes=args.max_nodes, max_paths=args.max_paths))


if __name__ == "__main__":
    main()
