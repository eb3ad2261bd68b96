from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from .dsp_utils import AudioFrame
from .music_theory import KEY_LABELS, NOTE_NAMES, KeyEstimator, to_pitch_class
from .note_history import NoteHistory
from .pitch_detector import PitchEstimator

LOG = logging.getLogger(__name__)


@dataclass
class TickResult:
    frequency: float | None
    note: str | None
    history: list[str]
    key: str | None
    distribution: dict[str, float]

    @property
    def detected(self) -> bool:
        return self.note is not None


@dataclass
class SessionSummary:
    ticks: int = 0
    detections: int = 0
    key_guesses: int = 0
    dominant_key: str | None = None
    distribution: dict[str, float] = field(default_factory=dict)


class KeyTally:
    """Cumulative per-key counts, independent of the note window."""

    def __init__(self, labels: tuple[str, ...] = KEY_LABELS):
        self.labels = labels
        self.counts = {label: 0 for label in labels}

    def add(self, label: str) -> None:
        if label not in self.counts:
            raise ValueError(f"Unknown key label: {label!r}")
        self.counts[label] += 1

    def reset(self) -> None:
        for label in self.counts:
            self.counts[label] = 0

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def distribution(self) -> dict[str, float]:
        total = self.total or 1
        return {label: self.counts[label] / total * 100.0 for label in self.labels}

    def dominant(self) -> str | None:
        if self.total == 0:
            return None
        best_label, best_count = None, -1
        for label in self.labels:
            if self.counts[label] > best_count:
                best_label, best_count = label, self.counts[label]
        return best_label


class Analyzer:
    """One pipeline pass per frame: pitch -> note -> history -> key -> tally."""

    def __init__(
        self,
        window_ms: float = 8000.0,
        silence_threshold: float = 0.01,
        edge_threshold: float = 0.2,
        reference_hz: float = 440.0,
        min_notes_for_key: int = 0,
        clock: Callable[[], float] | None = None,
    ):
        self.pitch = PitchEstimator(silence_threshold=silence_threshold, edge_threshold=edge_threshold)
        self.history = NoteHistory(window_ms=window_ms, clock=clock)
        self.keys = KeyEstimator()
        self.tally = KeyTally()
        self.reference_hz = float(reference_hz)
        self.min_notes_for_key = int(min_notes_for_key)
        self.last_key: str | None = None
        self.detections = 0

    def analyze(self, frame: AudioFrame) -> TickResult:
        freq = self.pitch.estimate(frame)
        if freq is None:
            # Nothing detected: keep the previous key on display.
            return TickResult(None, None, self.history.note_names(), self.last_key, self.tally.distribution())

        self.detections += 1
        pitch_class = to_pitch_class(freq, self.reference_hz)
        self.history.insert(pitch_class)

        key = None
        if len(self.history) >= self.min_notes_for_key:
            key = self.keys.best_key(self.history.pitch_class_histogram()).label
            self.tally.add(key)
        self.last_key = key

        note = NOTE_NAMES[pitch_class]
        LOG.debug("%.2f Hz -> %s | window=%d | key=%s", freq, note, len(self.history), key)
        return TickResult(freq, note, self.history.note_names(), key, self.tally.distribution())

    def reset(self) -> None:
        self.history.reset()
        self.tally.reset()
        self.last_key = None
        self.detections = 0
