"""
Tests for the main window's summary handling. Runs on the offscreen platform and is skipped without PyQt6.
"""

import os

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
QtWidgets = pytest.importorskip("PyQt6.QtWidgets")
pytest.importorskip("pyqtgraph")

from flowmap.narrator import AnalysisResult  # noqa: E402
from flowmap.session import ProcessSession  # noqa: E402
from flowmap.settings import NarratorSettings  # noqa: E402
from flowmap_app import FlowMapApp  # noqa: E402


@pytest.fixture(scope="module")
def qapp():
    return QtWidgets.QApplication.instance() or QtWidgets.QApplication([])


@pytest.fixture
def window(qapp):
    window = FlowMapApp(session=ProcessSession(narrator_settings=NarratorSettings(enabled=False)))
    yield window
    window.close()


def test_summary_for_replaced_process_is_dropped(window):
    window.session.load_text("A B")
    replaced = window.session.graph
    window.session.load_text("X Y")
    window.narration_label.setText("waiting")

    window._on_narration_finished(replaced, AnalysisResult("A->B", used_fallback=False))
    assert window.narration_label.text() == "waiting"

    window._on_narration_failed(replaced, "service down")
    assert window.narration_label.text() == "waiting"

    window._on_narration_finished(window.session.graph, AnalysisResult("X->Y", used_fallback=False))
    assert window.narration_label.text() == "X->Y"
    assert window.narrate_button.isEnabled()
