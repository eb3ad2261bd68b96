from __future__ import annotations

import logging
import sys
from typing import TextIO

from .dsp_utils import AudioFrame

LOG = logging.getLogger(__name__)


class Presenter:
    """Display hooks the engine calls each tick. All no-ops by default."""

    def on_frame(self, frame: AudioFrame) -> None:
        pass

    def on_note_detected(self, note: str | None) -> None:
        pass

    def on_history_changed(self, history: list[str]) -> None:
        pass

    def on_key_estimated(self, key: str | None, distribution: dict[str, float]) -> None:
        pass

    def on_reset(self) -> None:
        pass


class TextPresenter(Presenter):
    """Single status line, rewritten in place."""

    def __init__(self, stream: TextIO | None = None, history_len: int = 16, top_keys: int = 3):
        self.stream = stream or sys.stdout
        self.history_len = history_len
        self.top_keys = top_keys
        self.note: str | None = None
        self.history: list[str] = []
        self.key: str | None = None
        self.distribution: dict[str, float] = {}

    def on_note_detected(self, note: str | None) -> None:
        self.note = note
        self.render()

    def on_history_changed(self, history: list[str]) -> None:
        self.history = list(history)

    def on_key_estimated(self, key: str | None, distribution: dict[str, float]) -> None:
        self.key = key
        self.distribution = dict(distribution)
        self.render()

    def on_reset(self) -> None:
        self.note = None
        self.history = []
        self.key = None
        self.distribution = {}
        self.render()

    def top(self) -> list[tuple[str, float]]:
        ranked = sorted(self.distribution.items(), key=lambda kv: kv[1], reverse=True)
        return [(k, p) for k, p in ranked[: self.top_keys] if p > 0.0]

    def status_line(self) -> str:
        note = self.note or "-"
        key = self.key or "undetermined"
        recent = " ".join(self.history[-self.history_len:]) or "(empty)"
        line = f"Note: {note:<2} | Key: {key:<9} | Notes: {recent}"
        top = self.top()
        if top:
            line += " | " + ", ".join(f"{k} {p:.1f}%" for k, p in top)
        return line

    def render(self) -> None:
        self.stream.write("\r\033[2K" + self.status_line())
        self.stream.flush()


class LoggingPresenter(Presenter):
    """Routes detections to the log; handy for headless runs."""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or LOG
        self.last_key: str | None = None

    def on_note_detected(self, note: str | None) -> None:
        if note is not None:
            self.logger.debug("note %s", note)

    def on_key_estimated(self, key: str | None, distribution: dict[str, float]) -> None:
        if key is not None and key != self.last_key:
            self.logger.info("key -> %s (%.1f%% of guesses)", key, distribution.get(key, 0.0))
        self.last_key = key

    def on_reset(self) -> None:
        self.last_key = None
        self.logger.info("history cleared")
