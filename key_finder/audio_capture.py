from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import librosa

from .dsp_utils import AudioFrame, ensure_mono

try:
    import sounddevice as sd  # type: ignore
except Exception:  # pragma: no cover - PortAudio missing on headless machines
    sd = None

LOG = logging.getLogger(__name__)


class FrameSource:
    """Anything that can hand the tracker its most recent audio frame."""

    sample_rate: int
    frame_size: int

    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass

    def latest_frame(self) -> AudioFrame | None:
        raise NotImplementedError


class MicrophoneCapture(FrameSource):
    """Live input; keeps only the newest block, older ones are dropped."""

    def __init__(self, sample_rate: int = 44100, frame_size: int = 2048, device: int | str | None = None):
        self.sample_rate = int(sample_rate)
        self.frame_size = int(frame_size)
        self.device = device
        self.stream = None
        self._latest: np.ndarray | None = None

    def _callback(self, indata: np.ndarray, frames: int, time_info, status) -> None:
        if status:
            LOG.warning("Audio input status: %s", status)
        # Reference swap only; the tick thread reads whatever is newest.
        self._latest = np.array(indata[:, 0], dtype=np.float64)

    def start(self) -> None:
        if sd is None:
            raise RuntimeError("sounddevice/PortAudio is not available. pip install sounddevice")
        if self.stream is not None:
            return
        self.stream = sd.InputStream(
            samplerate=self.sample_rate,
            blocksize=self.frame_size,
            channels=1,
            dtype="float32",
            device=self.device,
            callback=self._callback,
        )
        self.stream.start()
        LOG.info("Microphone open: %d Hz, %d-sample frames, device=%s", self.sample_rate, self.frame_size,
                 self.device if self.device is not None else "default")

    def stop(self) -> None:
        if self.stream is None:
            return
        self.stream.stop()
        self.stream.close()
        self.stream = None
        self._latest = None
        LOG.info("Microphone closed")

    def latest_frame(self) -> AudioFrame | None:
        samples = self._latest
        if samples is None or samples.size == 0:
            return None
        return AudioFrame(samples, self.sample_rate)


class ArrayCapture(FrameSource):
    """Plays back an in-memory signal one frame per call.

    ``clock()`` reports how much audio has been consumed, in milliseconds, so a
    note window measured with it follows audio time rather than wall time.
    """

    def __init__(self, samples: np.ndarray, sample_rate: int, frame_size: int = 2048):
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        if frame_size <= 1:
            raise ValueError(f"frame_size must be > 1, got {frame_size}")
        self.samples = ensure_mono(samples)
        self.sample_rate = int(sample_rate)
        self.frame_size = int(frame_size)
        self.position = 0

    @classmethod
    def from_file(cls, path: str | Path, sample_rate: int | None = None, frame_size: int = 2048) -> "ArrayCapture":
        audio, sr = librosa.load(str(path), sr=sample_rate, mono=True)
        LOG.info("Loaded %s: %.2fs at %d Hz", Path(path).name, len(audio) / sr, sr)
        return cls(audio, int(sr), frame_size=frame_size)

    @property
    def n_frames(self) -> int:
        return -(-self.samples.size // self.frame_size)

    @property
    def exhausted(self) -> bool:
        return self.position >= self.samples.size

    def clock(self) -> float:
        return 1000.0 * self.position / self.sample_rate

    def start(self) -> None:
        self.position = 0

    def latest_frame(self) -> AudioFrame | None:
        if self.exhausted:
            return None
        block = self.samples[self.position:self.position + self.frame_size]
        if block.size < self.frame_size:
            block = np.pad(block, (0, self.frame_size - block.size))
        self.position += self.frame_size
        return AudioFrame(block, self.sample_rate)
