"""
Tests for the load/analyse/layout pipeline held by ProcessSession.
"""

import asyncio
import json
import pathlib

import httpx
import pytest

from flowmap import session as session_module
from flowmap.narrator import AnalysisNarrator
from flowmap.session import ProcessSession
from flowmap.settings import NarratorSettings

SAMPLE_PATH = pathlib.Path(__file__).resolve().parents[1] / "data" / "sample_order_flow.txt"


def offline_session(**kwargs):
    return ProcessSession(narrator_settings=NarratorSettings(enabled=False), **kwargs)


class TestLoading:
    def test_load_text(self):
        session = offline_session()
        outcome = session.load_text("A B\nB C\nC D")

        assert outcome.ok is True
        assert (outcome.node_count, outcome.edge_count) == (4, 3)
        assert session.snapshot.cycle_time == pytest.approx(4.0)
        assert set(session.breakdowns) == {"cycletime", "variants", "bottlenecks"}
        assert all(node.radius > 0 for node in session.graph.nodes.values())

    def test_failed_load_keeps_previous_graph(self):
        session = offline_session()
        session.load_text("A B")
        previous_graph, previous_snapshot = session.graph, session.snapshot

        outcome = session.load_text("   \n")

        assert outcome.ok is False
        assert outcome.message == "No valid connections found in file."
        assert session.graph is previous_graph
        assert session.snapshot is previous_snapshot

    def test_excel_upload_rejected(self):
        outcome = offline_session().load_bytes(b"PK\x03\x04", "flow.xlsx")

        assert outcome.ok is False
        assert outcome.message == "Excel files are not supported. Please use CSV format."

    def test_oversize_upload_rejected(self):
        outcome = offline_session().load_bytes(b"A B\n" * (2 * 1024 * 1024), "flow.txt")

        assert outcome.ok is False
        assert "5MB" in outcome.message

    def test_load_csv_file(self, tmp_path):
        path = tmp_path / "flow.csv"
        path.write_text("X,Y\nX,Z\n", encoding="utf-8")
        session = offline_session()

        outcome = session.load_file(path)

        assert outcome.ok is True
        assert session.graph.node_ids == ["X", "Y", "Z"]
        assert session.source_name == "flow.csv"

    def test_missing_file(self, tmp_path):
        outcome = offline_session().load_file(tmp_path / "absent.txt")

        assert outcome.ok is False
        assert outcome.message.startswith("Could not read file")

    def test_unexpected_failure_is_reported(self, monkeypatch):
        def broken_layout(*_args, **_kwargs):
            raise RuntimeError("layout exploded")

        monkeypatch.setattr(session_module, "compute_layout", broken_layout)
        session = offline_session()

        outcome = session.load_text("A B")

        assert outcome.ok is False
        assert outcome.message == "Failed to analyse process: layout exploded"
        assert session.graph is None

    def test_sample_file_loads(self):
        session = offline_session()
        outcome = session.load_file(SAMPLE_PATH)

        assert outcome.ok is True
        assert session.snapshot.variant_count >= 1
        assert session.snapshot.bottleneck_count >= 1


class TestRelayoutAndNarration:
    def test_relayout_circular(self):
        session = offline_session(viewport_size=(1000, 1000))
        session.load_text("A B\nB C\nC D")
        before = [(node.position.x, node.position.y) for node in session.graph.nodes.values()]

        session.relayout("circular")

        after = [(node.position.x, node.position.y) for node in session.graph.nodes.values()]
        assert session.layout_strategy == "circular"
        assert before != after

    def test_narrate_without_graph(self):
        assert asyncio.run(offline_session().narrate()) is None

    def test_narrate_offline_uses_local_summary(self):
        session = offline_session()
        session.load_text("A B\nB C\nC D")

        result = asyncio.run(session.narrate())

        assert result.used_fallback is True
        assert result.text.startswith("Local Analysis Results:")

    def test_replacing_the_process_mid_narration(self):
        """A summary requested after a reload describes the new process, not the pending old one."""

        async def echo_connections(request):
            if request.url.path == "/api/llm/capabilities":
                return httpx.Response(200, json={"gpuAvailable": True})
            await asyncio.sleep(0.02)
            summary = json.loads(json.loads(request.content)["text"])
            return httpx.Response(200, json={"analysis": ", ".join(summary["connections"])})

        narrator = AnalysisNarrator(NarratorSettings(), transport=httpx.MockTransport(echo_connections))
        session = ProcessSession(narrator=narrator)

        async def reload_while_pending():
            session.load_text("A B")
            first = asyncio.ensure_future(session.narrate())
            await asyncio.sleep(0)
            session.load_text("X Y")
            second = await session.narrate()
            return await first, second

        first, second = asyncio.run(reload_while_pending())

        assert first.text == "A->B"
        assert second.text == "X->Y"

    def test_narrate_explicit_graph(self):
        session = offline_session()
        session.load_text("A B\nB C\nC D")
        pinned = session.graph
        session.load_text("X Y")

        result = asyncio.run(session.narrate(pinned))

        assert "- Process Steps: 4" in result.text
