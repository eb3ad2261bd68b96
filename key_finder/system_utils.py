from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np
import librosa

from .music_theory import NOTE_NAMES

LOG = logging.getLogger(__name__)

DEFAULT_PRESETS: dict[str, dict[str, Any]] = {
    "Default": {
        "frame_size": 2048,
        "silence_threshold": 0.01,
        "edge_threshold": 0.2,
        "window_ms": 8000.0,
        "min_notes_for_key": 0,
    },
    "Text Display": {
        "frame_size": 2048,
        "silence_threshold": 0.01,
        "edge_threshold": 0.2,
        "window_ms": 8000.0,
        "min_notes_for_key": 6,
    },
    "Low Latency": {
        "frame_size": 1024,
        "silence_threshold": 0.015,
        "window_ms": 6000.0,
        "tick_interval_s": 1.0 / 120.0,
    },
    "Long Window": {
        "frame_size": 4096,
        "window_ms": 16000.0,
        "min_notes_for_key": 4,
    },
}


class ConfigManager:
    """Load/save tracker presets."""

    def __init__(self, presets_path: str | Path | None = None):
        root = Path(__file__).resolve().parent
        self.presets_path = Path(presets_path) if presets_path else root / "presets.json"

    def load_presets(self) -> dict[str, dict[str, Any]]:
        if self.presets_path.exists():
            presets = json.loads(self.presets_path.read_text(encoding="utf-8"))
            merged = dict(presets)
            for name, values in DEFAULT_PRESETS.items():
                merged.setdefault(name, values)
            if merged != presets:
                self._try_save(merged)
            return merged
        self._try_save(DEFAULT_PRESETS)
        return dict(DEFAULT_PRESETS)

    def _try_save(self, presets: dict[str, dict[str, Any]]) -> None:
        try:
            self.save_presets(presets)
        except OSError as e:
            LOG.warning("Could not write presets to %s: %s", self.presets_path, e)

    def save_presets(self, presets: dict[str, dict[str, Any]]) -> None:
        self.presets_path.parent.mkdir(parents=True, exist_ok=True)
        self.presets_path.write_text(json.dumps(presets, indent=2), encoding="utf-8")

    def list_presets(self) -> list[str]:
        return sorted(self.load_presets().keys())

    def get_preset(self, name: str) -> dict[str, Any]:
        presets = self.load_presets()
        if name not in presets:
            LOG.warning("Unknown preset %r, using Default. Available: %s", name, ", ".join(sorted(presets)))
            return dict(presets.get("Default", DEFAULT_PRESETS["Default"]))
        return dict(presets[name])


@dataclass
class TestResult:
    __test__ = False

    ok: bool
    message: str


class TestSuite:
    """Synthetic signals and sanity checks for the pitch/key pipeline."""

    __test__ = False

    @staticmethod
    def generate_tone(freq: float, sr: int = 44100, seconds: float | None = None, length: int | None = None,
                      amplitude: float = 0.5) -> np.ndarray:
        if length is None:
            length = int(sr * (seconds if seconds is not None else 1.0))
        return (amplitude * librosa.tone(freq, sr=sr, length=length)).astype(np.float32)

    @staticmethod
    def generate_melody(notes: list[str], sr: int = 44100, note_seconds: float = 0.25, octave: int = 4,
                        amplitude: float = 0.5) -> np.ndarray:
        """Concatenate pure tones for note names like ["C", "E", "G"]."""
        parts = []
        for name in notes:
            freq = 440.0 * 2.0 ** ((NOTE_NAMES.index(name) + 12 * (octave + 1) - 69) / 12.0)
            parts.append(TestSuite.generate_tone(freq, sr=sr, seconds=note_seconds, amplitude=amplitude))
        return np.concatenate(parts) if parts else np.zeros(0, dtype=np.float32)

    @staticmethod
    def check_pitch(estimated: float | None, expected: float, tolerance: float = 0.01) -> TestResult:
        if estimated is None:
            return TestResult(False, f"No pitch detected (expected {expected:.2f} Hz).")
        error = abs(estimated - expected) / expected
        if error > tolerance:
            return TestResult(False, f"{estimated:.2f} Hz is {error:.2%} off {expected:.2f} Hz.")
        return TestResult(True, f"{estimated:.2f} Hz within {tolerance:.0%} of {expected:.2f} Hz.")
