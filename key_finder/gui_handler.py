from __future__ import annotations

import logging

import numpy as np

from .audio_engine import KeyTrackerEngine
from .dsp_utils import AudioFrame
from .music_theory import KEY_LABELS
from .presenters import Presenter
from .system_utils import ConfigManager

try:
    import dearpygui.dearpygui as dpg  # type: ignore
except Exception:  # pragma: no cover - GUI optional in headless tests
    dpg = None

LOG = logging.getLogger(__name__)


class WaveformVisualizer:
    """Time-domain scope of the current frame."""

    def __init__(self, points: int = 1024):
        self.points = points
        self.plot_tag = "kf_wave_plot"
        self.series_tag = "kf_wave_series"

    def build(self):
        with dpg.plot(label="Waveform", height=220, width=-1, tag=self.plot_tag):
            dpg.add_plot_axis(dpg.mvXAxis, label="Sample", no_tick_labels=True)
            with dpg.plot_axis(dpg.mvYAxis, label="Amplitude") as y_axis:
                dpg.set_axis_limits(y_axis, -1.0, 1.0)
                dpg.add_line_series([], [], label="Input", tag=self.series_tag)

    def update(self, frame: AudioFrame):
        samples = frame.samples
        points = min(self.points, samples.size)
        idx = np.linspace(0, samples.size - 1, points).astype(int)
        dpg.set_value(self.series_tag, [idx.astype(float).tolist(), samples[idx].tolist()])


class KeyBarChart:
    """Percentage of key guesses per candidate, one bar per key."""

    def __init__(self):
        self.plot_tag = "kf_key_plot"
        self.series_tag = "kf_key_series"
        self.x = [float(i) for i in range(len(KEY_LABELS))]

    def build(self):
        with dpg.plot(label="Key distribution", height=-1, width=-1, tag=self.plot_tag):
            x_axis = dpg.add_plot_axis(dpg.mvXAxis, label="Key")
            dpg.set_axis_ticks(x_axis, tuple((label, x) for label, x in zip(KEY_LABELS, self.x)))
            with dpg.plot_axis(dpg.mvYAxis, label="%") as y_axis:
                dpg.set_axis_limits(y_axis, 0.0, 100.0)
                dpg.add_bar_series(self.x, [0.0] * len(self.x), weight=0.7, tag=self.series_tag)

    def update(self, distribution: dict[str, float]):
        dpg.set_value(self.series_tag, [self.x, [float(distribution.get(k, 0.0)) for k in KEY_LABELS]])


class GUIPresenter(Presenter):
    """Waveform + bar chart display for the tracker."""

    def __init__(self):
        if dpg is None:
            raise RuntimeError("DearPyGui is not installed. pip install dearpygui")
        self.waveform = WaveformVisualizer()
        self.bars = KeyBarChart()

    def on_frame(self, frame: AudioFrame) -> None:
        self.waveform.update(frame)

    def on_note_detected(self, note: str | None) -> None:
        dpg.set_value("kf_note", f"Note: {note or '-'}")

    def on_history_changed(self, history: list[str]) -> None:
        dpg.set_value("kf_history", " ".join(history[-24:]) or "(empty)")

    def on_key_estimated(self, key: str | None, distribution: dict[str, float]) -> None:
        self.bars.update(distribution)
        if key is None:
            dpg.set_value("kf_key", "Key: undetermined")
            return
        dpg.set_value("kf_key", f"Key: {key}")
        top = max(distribution, key=distribution.get)
        dpg.set_value("kf_dominant", f"Most frequent: {top} ({distribution[top]:.1f}%)")

    def on_reset(self) -> None:
        self.bars.update({})
        dpg.set_value("kf_note", "Note: -")
        dpg.set_value("kf_key", "Key: undetermined")
        dpg.set_value("kf_history", "(empty)")
        dpg.set_value("kf_dominant", "Most frequent: --")


class GUIHandler:
    """Standalone window; renders one engine tick per drawn frame."""

    def __init__(self, engine: KeyTrackerEngine, config_manager: ConfigManager):
        if dpg is None:
            raise RuntimeError("DearPyGui is not installed. pip install dearpygui")
        self.engine = engine
        self.config_manager = config_manager
        self.presenter: GUIPresenter | None = None
        self.accent = (100, 51, 162)
        self.muted = (140, 150, 165)

    def _apply_theme(self):
        with dpg.theme() as theme:
            with dpg.theme_component(dpg.mvAll):
                dpg.add_theme_color(dpg.mvThemeCol_WindowBg, (10, 12, 18))
                dpg.add_theme_color(dpg.mvThemeCol_ChildBg, (16, 18, 26))
                dpg.add_theme_color(dpg.mvThemeCol_Button, (60, 35, 100))
                dpg.add_theme_color(dpg.mvThemeCol_ButtonHovered, (85, 50, 140))
                dpg.add_theme_color(dpg.mvThemeCol_ButtonActive, self.accent)
                dpg.add_theme_color(dpg.mvThemeCol_Text, (235, 240, 250))
                dpg.add_theme_color(dpg.mvPlotCol_Line, self.accent, category=dpg.mvThemeCat_Plots)
                dpg.add_theme_color(dpg.mvPlotCol_Fill, self.accent, category=dpg.mvThemeCat_Plots)
                dpg.add_theme_style(dpg.mvStyleVar_FrameRounding, 6)
        dpg.bind_theme(theme)

    def _toggle(self):
        if self.engine.running:
            self.engine.stop()
            dpg.configure_item("kf_btn_start", label="Start")
            return
        try:
            self.engine.start()
        except RuntimeError as e:
            LOG.error("Could not start capture: %s", e)
            dpg.set_value("kf_status", str(e))
            return
        dpg.set_value("kf_status", "Listening...")
        dpg.configure_item("kf_btn_start", label="Stop")

    def _apply_preset(self, sender, app_data):
        preset = self.config_manager.get_preset(app_data)
        was_running = self.engine.running
        try:
            self.engine.config.apply_preset(preset)
        except ValueError as e:
            LOG.error("Preset %r rejected: %s", app_data, e)
            dpg.set_value("kf_status", str(e))
            return
        self.engine.stop()
        self.engine.capture = None
        self.engine.reconfigure(self.engine.config)
        if was_running:
            self._toggle()

    def _build_controls(self):
        presets = self.config_manager.list_presets()
        dpg.add_text("Key Finder", color=self.accent)
        dpg.add_text("Play or sing; the key is guessed from the last few seconds.", color=self.muted, wrap=280)
        dpg.add_combo(presets, default_value="Default" if "Default" in presets else presets[0],
                      label="Preset", callback=self._apply_preset, width=180)
        with dpg.group(horizontal=True):
            dpg.add_button(label="Start", width=136, callback=lambda: self._toggle(), tag="kf_btn_start")
            dpg.add_button(label="Reset", width=136, callback=lambda: self.engine.reset(), tag="kf_btn_reset")
        dpg.add_text("", tag="kf_status", color=self.muted)
        dpg.add_separator()
        dpg.add_text("Note: -", tag="kf_note")
        dpg.add_text("Key: undetermined", tag="kf_key")
        dpg.add_text("Most frequent: --", tag="kf_dominant")
        dpg.add_separator()
        dpg.add_text("Recent notes", color=self.muted)
        dpg.add_text("(empty)", tag="kf_history", wrap=280)

    def launch(self):
        dpg.create_context()
        self.presenter = GUIPresenter()
        self.engine.presenter = self.presenter

        with dpg.window(label="Key Finder", width=1000, height=640, tag="kf_main"):
            with dpg.group(horizontal=True):
                with dpg.child_window(width=320, height=-1):
                    self._build_controls()
                with dpg.child_window(width=-1, height=-1):
                    self.presenter.waveform.build()
                    self.presenter.bars.build()

        self._apply_theme()
        dpg.create_viewport(title="Key Finder", width=1100, height=700)
        dpg.setup_dearpygui()
        dpg.show_viewport()
        dpg.set_primary_window("kf_main", True)
        try:
            while dpg.is_dearpygui_running():
                if self.engine.running:
                    self.engine.tick()
                dpg.render_dearpygui_frame()
        finally:
            self.engine.stop()
            dpg.destroy_context()
