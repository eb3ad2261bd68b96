from __future__ import annotations

import numpy as np
from scipy.signal import correlate

from .dsp_utils import AudioFrame, rms, trim_edges


class PitchEstimator:
    """Autocorrelation pitch tracker with parabolic peak refinement.

    Returns a fundamental frequency in Hz, or None when the frame is too quiet
    or too short to carry a reliable period.
    """

    def __init__(self, silence_threshold: float = 0.01, edge_threshold: float = 0.2):
        self.silence_threshold = float(silence_threshold)
        self.edge_threshold = float(edge_threshold)

    def autocorrelate(self, buf: np.ndarray) -> np.ndarray:
        """c[lag] = sum_j buf[j] * buf[j + lag] for lag in 0..N-1."""
        full = correlate(buf, buf, mode="full", method="direct")
        return full[buf.size - 1:]

    @staticmethod
    def first_dip(c: np.ndarray) -> int:
        # Skip the self-correlation lobe around lag 0.
        d = 0
        while d + 1 < c.size and c[d] > c[d + 1]:
            d += 1
        return d

    @staticmethod
    def refine_peak(c: np.ndarray, t0: int) -> float:
        if t0 <= 0 or t0 >= c.size - 1:
            return float(t0)
        x1, x2, x3 = float(c[t0 - 1]), float(c[t0]), float(c[t0 + 1])
        a = (x1 + x3 - 2.0 * x2) / 2.0
        b = (x3 - x1) / 2.0
        if a != 0.0:
            return t0 - b / (2.0 * a)
        return float(t0)

    def period(self, frame: AudioFrame) -> float | None:
        """Fundamental period in (fractional) samples, or None."""
        if rms(frame.samples) < self.silence_threshold:
            return None
        buf = trim_edges(frame.samples, self.edge_threshold)
        if buf.size < 2:
            return None

        c = self.autocorrelate(buf)
        d = self.first_dip(c)
        t0 = d + int(np.argmax(c[d:]))
        period = self.refine_peak(c, t0)
        if not np.isfinite(period) or period <= 0.0:
            return None
        return period

    def estimate(self, frame: AudioFrame) -> float | None:
        period = self.period(frame)
        if period is None:
            return None
        return float(frame.sample_rate / period)
