from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from .audio_capture import sd
from .audio_engine import KeyTrackerEngine, TrackerConfig
from .presenters import LoggingPresenter, Presenter, TextPresenter
from .system_utils import ConfigManager

LOG = logging.getLogger(__name__)

PortAudioError = sd.PortAudioError if sd is not None else RuntimeError


def _setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure console + optional file logging."""
    lvl = getattr(logging, str(level).upper(), logging.INFO)
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="w", encoding="utf-8"))
    logging.basicConfig(
        level=lvl,
        format="%(asctime)s | %(levelname)-7s | %(message)s",
        handlers=handlers,
        force=True,
    )


class KeyFinder:
    """Orchestrator connecting config, engine and a display."""

    def __init__(self, preset: str = "Default", presets_path: str | None = None, device: int | str | None = None):
        self.config_manager = ConfigManager(presets_path=presets_path)
        config = TrackerConfig(device=device)
        config.apply_preset(self.config_manager.get_preset(preset))
        self.engine = KeyTrackerEngine(config)
        self.gui = None

    def run_text(self, presenter: Presenter | None = None, max_ticks: int | None = None) -> None:
        self.engine.presenter = presenter or TextPresenter()
        self.engine.run(max_ticks=max_ticks)

    def run_gui(self) -> None:
        from .gui_handler import GUIHandler

        if self.gui is None:
            self.gui = GUIHandler(self.engine, self.config_manager)
        self.gui.launch()


def build_cli() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Live pitch and key finder")
    parser.add_argument("--display", choices=("text", "gui", "log"), default="text", help="Presenter to use.")
    parser.add_argument("--preset", default="Default", help="Preset name.")
    parser.add_argument("--presets-file", help="JSON presets file (created if missing).")
    parser.add_argument("--device", help="Input device index or name (sounddevice).")
    parser.add_argument("--list-devices", action="store_true", help="Print audio devices and exit.")
    parser.add_argument("--file", dest="inp", help="Analyze an audio file instead of the microphone.")
    parser.add_argument("--sr", type=int, default=None, help="Resample --file to this rate (default: native).")
    parser.add_argument("--ticks", type=int, default=None, help="Stop after this many ticks.")
    parser.add_argument("--log-level", default="INFO", help="DEBUG, INFO, WARNING, ...")
    parser.add_argument("--log-file", default=None, help="Also write logs to this file.")
    return parser


def _parse_device(value: str | None) -> int | str | None:
    if value is None:
        return None
    return int(value) if value.isdigit() else value


def main(argv: list[str] | None = None) -> int:
    args = build_cli().parse_args(argv)
    _setup_logging(args.log_level, args.log_file)

    if args.list_devices:
        if sd is None:
            raise SystemExit("sounddevice/PortAudio is not available.")
        print(sd.query_devices())
        return 0

    finder = KeyFinder(preset=args.preset, presets_path=args.presets_file, device=_parse_device(args.device))

    if args.inp:
        summary = finder.engine.analyze_file(args.inp, sample_rate=args.sr)
        print(f"Frames: {summary.ticks} | Notes: {summary.detections} | Key guesses: {summary.key_guesses} | "
              f"Key: {summary.dominant_key or 'none'}")
        ranked = sorted(summary.distribution.items(), key=lambda kv: kv[1], reverse=True)
        for label, pct in ranked[:5]:
            if pct > 0:
                print(f"  {label:<9} {pct:5.1f}%")
        return 0

    try:
        if args.display == "gui":
            finder.run_gui()
        elif args.display == "log":
            finder.run_text(presenter=LoggingPresenter(), max_ticks=args.ticks)
        else:
            finder.run_text(max_ticks=args.ticks)
            print()
    except PortAudioError as e:
        LOG.error("Audio error: %s", e)
        LOG.error("Make sure your microphone is connected and accessible.")
        return 1
    except RuntimeError as e:
        LOG.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
