from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

NOTE_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]

MAJOR_OFFSETS = (0, 2, 4, 5, 7, 9, 11)
MINOR_OFFSETS = (0, 2, 3, 5, 7, 8, 10)


def _midi_float(freq: float | np.ndarray, reference_hz: float) -> float | np.ndarray:
    return 12.0 * np.log2(freq / reference_hz) + 69.0


def to_pitch_class(freq: float, reference_hz: float = 440.0) -> int:
    """Map a frequency to its 12-TET pitch class (0 = C) around A4=reference_hz."""
    if not freq > 0:
        raise ValueError(f"frequency must be > 0, got {freq}")
    # Half-up rounding so a note exactly between two semitones goes sharp.
    note_number = math.floor(float(_midi_float(freq, reference_hz)) + 0.5)
    return note_number % 12


def note_name(freq: float, reference_hz: float = 440.0) -> str:
    return NOTE_NAMES[to_pitch_class(freq, reference_hz)]


def pitch_class_for_freq(freqs: np.ndarray, reference_hz: float = 440.0) -> np.ndarray:
    """Map frequencies to pitch classes using 12-TET around A4=reference_hz (-1 where freq <= 0)."""
    freqs = np.asarray(freqs, dtype=np.float64)
    pcs = np.full(freqs.shape, fill_value=-1, dtype=int)
    mask = freqs > 0
    midi = _midi_float(freqs[mask], reference_hz)
    pcs[mask] = np.floor(midi + 0.5).astype(int) % 12
    return pcs


@dataclass(frozen=True)
class KeyProfile:
    name: str
    offsets: tuple[int, ...]

    def mask(self, root: int = 0) -> np.ndarray:
        """12-slot 0/1 template of the scale built on root."""
        template = np.zeros(12, dtype=int)
        for offset in self.offsets:
            template[(root + offset) % 12] = 1
        return template


MAJOR = KeyProfile("major", MAJOR_OFFSETS)
MINOR = KeyProfile("minor", MINOR_OFFSETS)


@dataclass(frozen=True)
class KeyCandidate:
    root: int
    profile: KeyProfile

    @property
    def mode(self) -> str:
        return self.profile.name

    @property
    def label(self) -> str:
        return f"{NOTE_NAMES[self.root]} {self.mode}"

    def __str__(self) -> str:
        return self.label


# Evaluation order matters for tie-breaks: roots ascending, major before minor.
KEY_CANDIDATES: tuple[KeyCandidate, ...] = tuple(
    KeyCandidate(root, profile) for root in range(12) for profile in (MAJOR, MINOR)
)
KEY_LABELS: tuple[str, ...] = tuple(c.label for c in KEY_CANDIDATES)


def _as_histogram(histogram) -> np.ndarray:
    hist = np.asarray(histogram)
    if hist.shape != (12,):
        raise ValueError(f"Pitch-class histogram must have 12 bins, got shape {hist.shape}")
    return hist


class KeyEstimator:
    """Scores the 24 major/minor keys against a pitch-class histogram."""

    def __init__(self, candidates: tuple[KeyCandidate, ...] = KEY_CANDIDATES):
        self.candidates = candidates
        self._masks = np.stack([c.profile.mask(c.root) for c in candidates])

    def score_keys(self, histogram) -> list[tuple[KeyCandidate, int]]:
        hist = _as_histogram(histogram)
        scores = self._masks @ hist
        return [(candidate, score.item()) for candidate, score in zip(self.candidates, scores)]

    def best_key(self, histogram) -> KeyCandidate:
        """Best-scoring candidate; earlier candidates win ties.

        An empty histogram scores 0 everywhere, so "C major" comes back. Callers that need
        an undetermined state have to check the history size before asking.
        """
        best_score = -1
        best = None
        for candidate, score in self.score_keys(histogram):
            if score > best_score:
                best_score = score
                best = candidate
        return best
