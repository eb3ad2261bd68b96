import io
import logging

import numpy as np
import pytest

from key_finder import audio_capture
from key_finder.audio_capture import ArrayCapture, MicrophoneCapture
from key_finder.audio_engine import KeyTrackerEngine, TrackerConfig
from key_finder.dsp_utils import AudioFrame
from key_finder.music_theory import to_pitch_class
from key_finder.presenters import TextPresenter

from conftest import tone_frame


def _engine(capture, presenter, clock, **config):
    return KeyTrackerEngine(TrackerConfig(tick_interval_s=0.0, **config), capture=capture, presenter=presenter,
                            clock=clock)


def test_pipeline_round_trip_and_ageing_out(capture, presenter, clock):
    engine = _engine(capture, presenter, clock)
    engine.start()

    capture.push(tone_frame(440.0))
    before = engine.history.pitch_class_histogram().copy()
    result = engine.tick()
    after = engine.history.pitch_class_histogram()
    a = to_pitch_class(result.frequency)
    assert a == 9
    assert after[a] - before[a] == 1

    clock.now = 9000.0
    capture.push(tone_frame(261.63))
    engine.tick()
    hist = engine.history.pitch_class_histogram()
    assert hist[9] == 0
    assert hist[0] == 1


def test_tick_publishes_to_presenter(capture, presenter, clock):
    engine = _engine(capture, presenter, clock)
    engine.start()
    capture.push(tone_frame(440.0))
    engine.tick()
    assert presenter.calls == [
        ("frame", 2048),
        ("note", "A"),
        ("history", ["A"]),
        ("key", "C major"),
    ]


def test_no_frame_means_no_update(capture, presenter, clock):
    engine = _engine(capture, presenter, clock)
    engine.start()
    assert engine.tick() is None
    assert presenter.calls == []
    assert engine.ticks == 0


def test_silent_frame_only_clears_note(capture, presenter, clock):
    engine = _engine(capture, presenter, clock)
    engine.start()
    capture.push(AudioFrame(np.zeros(2048), 44100))
    result = engine.tick()
    assert result is not None and not result.detected
    assert presenter.named("note") == [None]
    assert presenter.named("key") == []
    assert len(engine.history) == 0


def test_reset_command(capture, presenter, clock):
    engine = _engine(capture, presenter, clock)
    engine.start()
    capture.push(tone_frame(440.0))
    engine.tick()
    engine.reset()
    assert len(engine.history) == 0
    assert engine.tally.total == 0
    assert presenter.named("reset") == [None]


def test_run_stops_after_max_ticks(capture, presenter, clock):
    engine = _engine(capture, presenter, clock)
    for _ in range(5):
        capture.push(tone_frame(440.0))
    engine.run(max_ticks=3)
    assert engine.ticks == 3
    assert not engine.running
    assert capture.started == 1 and capture.stopped == 1
    assert engine.tally.total == 3


def test_key_gate_from_config(capture, presenter, clock):
    engine = _engine(capture, presenter, clock, min_notes_for_key=2)
    engine.start()
    capture.push(tone_frame(440.0))
    capture.push(tone_frame(440.0))
    engine.tick()
    engine.tick()
    assert presenter.named("key") == [None, "C major"]


def test_config_validation():
    with pytest.raises(ValueError):
        TrackerConfig(frame_size=1)
    with pytest.raises(ValueError):
        TrackerConfig(window_ms=0)
    config = TrackerConfig()
    config.apply_preset({"frame_size": 1024, "unknown": 1, "apply_preset": None})
    assert config.frame_size == 1024
    assert callable(config.apply_preset)
    with pytest.raises(ValueError):
        config.apply_preset({"window_ms": 4000.0, "min_notes_for_key": -1})
    assert config.min_notes_for_key == 0
    assert config.window_ms == 8000.0
    assert config.frame_size == 1024


def test_summary_counts_notes_apart_from_key_guesses(capture, presenter, clock):
    engine = _engine(capture, presenter, clock, min_notes_for_key=3)
    engine.start()
    for freq in (440.0, 440.0, 440.0, 0.0, 440.0):
        capture.push(tone_frame(freq) if freq else AudioFrame(np.zeros(2048), 44100))
        engine.tick()
    summary = engine.summary()
    assert summary.ticks == 5
    assert summary.detections == 4
    assert summary.key_guesses == 2
    assert summary.dominant_key == "C major"


def test_text_display_shows_no_note_on_silent_tick(capture, clock):
    out = io.StringIO()
    engine = _engine(capture, TextPresenter(stream=out), clock)
    engine.start()
    capture.push(tone_frame(440.0))
    engine.tick()
    assert out.getvalue().split("\r\033[2K")[-1].startswith("Note: A")
    capture.push(AudioFrame(np.zeros(2048), 44100))
    engine.tick()
    last = out.getvalue().split("\r\033[2K")[-1]
    assert last.startswith("Note: -")
    assert "Key: C major" in last


def test_analyze_capture_finds_c_major(presenter):
    librosa = pytest.importorskip("librosa")
    from key_finder.system_utils import TestSuite

    sr = 22050
    melody = TestSuite.generate_melody(["C", "D", "E", "F", "G", "A", "B", "C"], sr=sr, note_seconds=0.5)
    capture = ArrayCapture(melody, sr, frame_size=2048)
    engine = KeyTrackerEngine(TrackerConfig(sample_rate=sr, tick_interval_s=0.0), presenter=presenter)
    summary = engine.analyze_capture(capture)

    assert summary.ticks == capture.n_frames
    assert summary.dominant_key == "C major"
    assert summary.detections > 0
    assert engine.capture is None and not engine.running


def test_array_capture_pads_last_frame_and_tracks_audio_time():
    capture = ArrayCapture(np.ones(5000) * 0.1, 1000, frame_size=2048)
    assert capture.n_frames == 3
    frames = [capture.latest_frame() for _ in range(3)]
    assert all(len(f) == 2048 for f in frames)
    assert frames[-1].samples[-1] == 0.0
    assert capture.clock() == pytest.approx(3 * 2048.0)
    assert capture.exhausted
    assert capture.latest_frame() is None


def test_microphone_keeps_only_newest_block(caplog):
    mic = MicrophoneCapture(sample_rate=8000, frame_size=4)
    assert mic.latest_frame() is None
    mic._callback(np.array([[0.1], [0.2], [0.3], [0.4]], dtype=np.float32), 4, None, None)
    with caplog.at_level(logging.WARNING):
        mic._callback(np.array([[0.5], [0.6], [0.7], [0.8]], dtype=np.float32), 4, None, "input overflow")
    frame = mic.latest_frame()
    assert frame.sample_rate == 8000
    np.testing.assert_allclose(frame.samples, [0.5, 0.6, 0.7, 0.8], rtol=1e-6)
    assert "input overflow" in caplog.text


def test_microphone_without_portaudio(monkeypatch):
    monkeypatch.setattr(audio_capture, "sd", None)
    with pytest.raises(RuntimeError):
        MicrophoneCapture().start()
