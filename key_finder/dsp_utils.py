from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True, eq=False)
class AudioFrame:
    """One fixed-length block of mono samples in [-1, 1] and its sample rate."""

    samples: np.ndarray
    sample_rate: int

    def __post_init__(self):
        samples = np.array(self.samples, dtype=np.float64)
        if samples.ndim != 1:
            raise ValueError(f"AudioFrame expects mono samples, got shape {samples.shape}")
        if samples.size == 0:
            raise ValueError("AudioFrame needs at least one sample")
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        samples.setflags(write=False)
        object.__setattr__(self, "samples", samples)

    def __len__(self) -> int:
        return int(self.samples.size)

    @property
    def duration_ms(self) -> float:
        return 1000.0 * self.samples.size / self.sample_rate


def ensure_mono(audio: np.ndarray) -> np.ndarray:
    """Return audio as shape (n_samples,), averaging channels when needed."""
    audio = np.asarray(audio, dtype=np.float64)
    if audio.ndim == 1:
        return audio
    if audio.ndim == 2:
        # (channels, n) from librosa, (n, channels) from sounddevice
        if audio.shape[0] <= 2 and audio.shape[1] > 2:
            return np.mean(audio, axis=0)
        return np.mean(audio, axis=1)
    raise ValueError(f"Unexpected audio shape: {audio.shape}")


def rms(x: np.ndarray) -> float:
    x = np.asarray(x, dtype=np.float64)
    if x.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(x * x)))


def trim_edges(buf: np.ndarray, threshold: float = 0.2) -> np.ndarray:
    """Cut the frame down to the span between its first quiet samples at each end.

    Each end is searched over half the frame. The start is the first sample from the
    front with |x| < threshold, the (exclusive) end is the first such sample from the back.
    An end that is never found keeps its full-frame bound.
    """
    size = buf.size
    half = (size + 1) // 2
    start, end = 0, size

    for i in range(half):
        if abs(buf[i]) < threshold:
            start = i
            break

    for i in range(1, half):
        if abs(buf[size - i]) < threshold:
            end = size - i
            break

    return buf[start:end]

