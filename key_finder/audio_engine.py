from __future__ import annotations

import logging
import time
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Callable

from tqdm import tqdm

from .analyzer import Analyzer, SessionSummary, TickResult
from .audio_capture import ArrayCapture, FrameSource, MicrophoneCapture
from .note_history import monotonic_ms
from .presenters import Presenter

LOG = logging.getLogger(__name__)


@dataclass
class TrackerConfig:
    sample_rate: int = 44100
    frame_size: int = 2048

    silence_threshold: float = 0.01
    edge_threshold: float = 0.2
    reference_hz: float = 440.0

    window_ms: float = 8000.0
    min_notes_for_key: int = 0

    tick_interval_s: float = 1.0 / 60.0
    device: int | str | None = None

    def __post_init__(self):
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.frame_size <= 1:
            raise ValueError(f"frame_size must be > 1, got {self.frame_size}")
        if self.window_ms <= 0:
            raise ValueError(f"window_ms must be positive, got {self.window_ms}")
        if self.reference_hz <= 0:
            raise ValueError(f"reference_hz must be positive, got {self.reference_hz}")
        if self.min_notes_for_key < 0:
            raise ValueError(f"min_notes_for_key must be >= 0, got {self.min_notes_for_key}")
        if self.tick_interval_s < 0:
            raise ValueError(f"tick_interval_s must be >= 0, got {self.tick_interval_s}")

    def apply_preset(self, preset: dict) -> None:
        """Take the preset values that name config fields. Unchanged if any is invalid."""
        names = {f.name for f in fields(self)}
        candidate = replace(self, **{k: v for k, v in preset.items() if k in names})
        for name in names:
            setattr(self, name, getattr(candidate, name))


class KeyTrackerEngine:
    """Tick-driven controller: capture -> analyzer -> presenter.

    Single-threaded. The capture may fill frames from another thread, but the
    engine only ever reads the newest one at tick time.
    """

    def __init__(
        self,
        config: TrackerConfig | None = None,
        capture: FrameSource | None = None,
        presenter: Presenter | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self.config = config or TrackerConfig()
        self.capture = capture
        self.presenter = presenter or Presenter()
        self.clock = clock or monotonic_ms
        self.analyzer = self._build_analyzer()
        self.running = False
        self.ticks = 0

    def _build_analyzer(self) -> Analyzer:
        return Analyzer(
            window_ms=self.config.window_ms,
            silence_threshold=self.config.silence_threshold,
            edge_threshold=self.config.edge_threshold,
            reference_hz=self.config.reference_hz,
            min_notes_for_key=self.config.min_notes_for_key,
            clock=lambda: self.clock(),
        )

    def reconfigure(self, config: TrackerConfig) -> None:
        """Swap settings; history and tally start over."""
        self.config = config
        self.analyzer = self._build_analyzer()
        self.presenter.on_reset()

    @property
    def history(self):
        return self.analyzer.history

    @property
    def tally(self):
        return self.analyzer.tally

    def start(self) -> None:
        if self.running:
            return
        if self.capture is None:
            self.capture = MicrophoneCapture(
                sample_rate=self.config.sample_rate,
                frame_size=self.config.frame_size,
                device=self.config.device,
            )
        self.capture.start()
        self.running = True
        LOG.info("Tracking started (window %.0f ms, frame %d)", self.config.window_ms, self.config.frame_size)

    def stop(self) -> None:
        if not self.running:
            return
        self.running = False
        if self.capture is not None:
            self.capture.stop()
        LOG.info("Tracking stopped after %d ticks", self.ticks)

    def reset(self) -> None:
        self.analyzer.reset()
        self.presenter.on_reset()
        LOG.info("Note history and key tally cleared")

    def tick(self) -> TickResult | None:
        if self.capture is None:
            return None
        frame = self.capture.latest_frame()
        if frame is None:
            return None
        self.ticks += 1

        self.presenter.on_frame(frame)
        result = self.analyzer.analyze(frame)
        self.presenter.on_note_detected(result.note)
        if result.detected:
            self.presenter.on_history_changed(result.history)
            self.presenter.on_key_estimated(result.key, result.distribution)
        return result

    def run(self, max_ticks: int | None = None) -> None:
        self.start()
        count = 0
        try:
            while self.running and (max_ticks is None or count < max_ticks):
                self.tick()
                count += 1
                if isinstance(self.capture, ArrayCapture) and self.capture.exhausted:
                    break
                if self.config.tick_interval_s > 0:
                    time.sleep(self.config.tick_interval_s)
        except KeyboardInterrupt:
            LOG.info("Interrupted")
        finally:
            self.stop()

    def summary(self) -> SessionSummary:
        tally = self.analyzer.tally
        return SessionSummary(
            ticks=self.ticks,
            detections=self.analyzer.detections,
            key_guesses=tally.total,
            dominant_key=tally.dominant(),
            distribution=tally.distribution(),
        )

    def analyze_file(self, path: str | Path, sample_rate: int | None = None, progress: bool = True) -> SessionSummary:
        capture = ArrayCapture.from_file(path, sample_rate=sample_rate, frame_size=self.config.frame_size)
        return self.analyze_capture(capture, progress=progress, desc=Path(path).name)

    def analyze_capture(self, capture: ArrayCapture, progress: bool = False, desc: str = "frames") -> SessionSummary:
        """Tick through a whole recording as fast as possible, on audio time."""
        previous = (self.capture, self.clock, self.running)
        self.capture, self.clock = capture, capture.clock
        self.running = False
        self.ticks = 0
        self.reset()
        try:
            self.start()
            for _ in tqdm(range(capture.n_frames), desc=desc, unit="frame", disable=not progress):
                self.tick()
            summary = self.summary()
        finally:
            self.stop()
            self.capture, self.clock, self.running = previous
        LOG.info("%s: %d frames, %d notes, %d key guesses, dominant key %s", desc, summary.ticks,
                 summary.detections, summary.key_guesses,
                 summary.dominant_key or "none")
        return summary
