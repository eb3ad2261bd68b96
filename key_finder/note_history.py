from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Iterator

import numpy as np

from .music_theory import NOTE_NAMES

DEFAULT_WINDOW_MS = 8000.0


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass(frozen=True)
class NoteEvent:
    pitch_class: int
    timestamp: float

    @property
    def name(self) -> str:
        return NOTE_NAMES[self.pitch_class]


class NoteHistory:
    """Trailing time window of detected pitch classes.

    The window is enforced on every insert: afterwards no event is older than
    ``now - window_ms``. Duplicates are kept so the histogram weights notes by
    how often they were detected.
    """

    def __init__(self, window_ms: float = DEFAULT_WINDOW_MS, clock: Callable[[], float] | None = None):
        if window_ms <= 0:
            raise ValueError(f"window_ms must be positive, got {window_ms}")
        self.window_ms = float(window_ms)
        self.clock = clock or monotonic_ms
        self._events: list[NoteEvent] = []

    def insert(self, pitch_class: int, timestamp: float | None = None) -> NoteEvent:
        if not 0 <= int(pitch_class) < 12:
            raise ValueError(f"pitch_class must be in [0, 11], got {pitch_class}")
        now = self.clock() if timestamp is None else float(timestamp)
        event = NoteEvent(int(pitch_class), now)
        self._events.append(event)
        self.prune(now)
        return event

    def prune(self, now: float) -> int:
        """Drop events older than the window; returns how many were dropped."""
        cutoff = now - self.window_ms
        kept = [e for e in self._events if e.timestamp >= cutoff]
        dropped = len(self._events) - len(kept)
        self._events = kept
        return dropped

    def reset(self) -> None:
        self._events = []

    def pitch_class_histogram(self) -> np.ndarray:
        counts = np.zeros(12, dtype=int)
        for event in self._events:
            counts[event.pitch_class] += 1
        return counts

    @property
    def events(self) -> tuple[NoteEvent, ...]:
        return tuple(self._events)

    def pitch_classes(self) -> list[int]:
        return [e.pitch_class for e in self._events]

    def note_names(self) -> list[str]:
        return [e.name for e in self._events]

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[NoteEvent]:
        return iter(tuple(self._events))
