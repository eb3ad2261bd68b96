import io
import json
import logging

import numpy as np
import pytest

from key_finder import gui_handler
from key_finder.presenters import LoggingPresenter, TextPresenter
from key_finder.system_utils import DEFAULT_PRESETS, ConfigManager


def test_text_presenter_status_line():
    out = io.StringIO()
    presenter = TextPresenter(stream=out)
    presenter.on_note_detected("A")
    presenter.on_history_changed(["C", "E", "A"])
    presenter.on_key_estimated("C major", {"C major": 75.0, "A minor": 25.0, "G major": 0.0})
    text = out.getvalue()
    assert "Note: A" in text
    assert "Key: C major" in text
    assert "C E A" in text
    assert "C major 75.0%" in text and "A minor 25.0%" in text
    assert "G major" not in text


def test_text_presenter_reset_and_undetermined():
    out = io.StringIO()
    presenter = TextPresenter(stream=out)
    presenter.on_key_estimated(None, {})
    assert "Key: undetermined" in out.getvalue()
    presenter.on_note_detected("C")
    presenter.on_reset()
    assert presenter.status_line().startswith("Note: -")
    assert "(empty)" in presenter.status_line()


def test_text_presenter_truncates_history():
    presenter = TextPresenter(stream=io.StringIO(), history_len=2)
    presenter.on_history_changed(["C", "D", "E"])
    assert "Notes: D E" in presenter.status_line()


def test_logging_presenter_reports_key_changes(caplog):
    presenter = LoggingPresenter()
    with caplog.at_level(logging.INFO, logger="key_finder.presenters"):
        presenter.on_key_estimated("C major", {"C major": 100.0})
        presenter.on_key_estimated("C major", {"C major": 100.0})
        presenter.on_key_estimated("A minor", {"C major": 50.0, "A minor": 50.0})
    messages = [r.getMessage() for r in caplog.records]
    assert len(messages) == 2
    assert "C major" in messages[0] and "A minor" in messages[1]


def test_config_manager_writes_defaults(tmp_path):
    path = tmp_path / "presets.json"
    manager = ConfigManager(presets_path=path)
    assert manager.list_presets() == sorted(DEFAULT_PRESETS)
    assert path.exists()
    assert manager.get_preset("Text Display")["min_notes_for_key"] == 6


def test_unknown_preset_warns_and_uses_default(tmp_path, caplog):
    manager = ConfigManager(presets_path=tmp_path / "presets.json")
    with caplog.at_level(logging.WARNING, logger="key_finder.system_utils"):
        preset = manager.get_preset("Text display")
    assert preset == DEFAULT_PRESETS["Default"]
    assert any("Text display" in r.getMessage() for r in caplog.records)


def test_unwritable_presets_path_still_loads(tmp_path, caplog):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    manager = ConfigManager(presets_path=blocker / "presets.json")
    with caplog.at_level(logging.WARNING, logger="key_finder.system_utils"):
        preset = manager.get_preset("Low Latency")
    assert preset == DEFAULT_PRESETS["Low Latency"]
    assert any("Could not write presets" in r.getMessage() for r in caplog.records)


def test_config_manager_merges_user_presets(tmp_path):
    path = tmp_path / "presets.json"
    path.write_text(json.dumps({"Choir": {"window_ms": 12000.0}}), encoding="utf-8")
    manager = ConfigManager(presets_path=path)
    presets = manager.load_presets()
    assert presets["Choir"] == {"window_ms": 12000.0}
    assert "Default" in presets
    assert "Default" in json.loads(path.read_text(encoding="utf-8"))


def test_check_pitch():
    pytest.importorskip("librosa")
    from key_finder.system_utils import TestSuite

    assert TestSuite.check_pitch(441.0, 440.0).ok
    assert not TestSuite.check_pitch(460.0, 440.0).ok
    assert not TestSuite.check_pitch(None, 440.0).ok
    tone = TestSuite.generate_tone(440.0, sr=8000, length=800)
    assert tone.shape == (800,)
    assert np.max(np.abs(tone)) == pytest.approx(0.5, rel=1e-3)


def test_gui_requires_dearpygui(monkeypatch):
    monkeypatch.setattr(gui_handler, "dpg", None)
    with pytest.raises(RuntimeError):
        gui_handler.GUIPresenter()
