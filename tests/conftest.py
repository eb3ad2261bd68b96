import numpy as np
import pytest

from key_finder.audio_capture import FrameSource
from key_finder.dsp_utils import AudioFrame
from key_finder.presenters import Presenter


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class ScriptedCapture(FrameSource):
    """Hands out queued frames, then None."""

    def __init__(self, frames=None, sample_rate: int = 44100, frame_size: int = 2048):
        self.frames = list(frames or [])
        self.sample_rate = sample_rate
        self.frame_size = frame_size
        self.started = 0
        self.stopped = 0

    def push(self, frame):
        self.frames.append(frame)

    def start(self):
        self.started += 1

    def stop(self):
        self.stopped += 1

    def latest_frame(self):
        return self.frames.pop(0) if self.frames else None


class RecordingPresenter(Presenter):
    def __init__(self):
        self.calls = []

    def on_frame(self, frame):
        self.calls.append(("frame", len(frame)))

    def on_note_detected(self, note):
        self.calls.append(("note", note))

    def on_history_changed(self, history):
        self.calls.append(("history", list(history)))

    def on_key_estimated(self, key, distribution):
        self.calls.append(("key", key))

    def on_reset(self):
        self.calls.append(("reset", None))

    def named(self, name):
        return [value for kind, value in self.calls if kind == name]


def tone_frame(freq: float, sr: int = 44100, size: int = 2048, amplitude: float = 0.5) -> AudioFrame:
    t = np.arange(size) / float(sr)
    return AudioFrame(amplitude * np.sin(2.0 * np.pi * freq * t), sr)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def capture():
    return ScriptedCapture()


@pytest.fixture
def presenter():
    return RecordingPresenter()
