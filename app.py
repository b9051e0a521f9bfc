# app.py
import sys
import asyncio
import argparse
import logging
from pathlib import Path
from PyQt6.QtWidgets import QApplication, QMainWindow, QWidget, QHBoxLayout, QVBoxLayout, QLabel, QMessageBox

from config import AudioConfig, SettingsManager, VERSION
from controller import AudioController
from errors import AudioError
from media import SUPPORTED_EXTENSIONS, SoundFileMediaElement
from ui_components import (
    ToneSourcePanel, MediaPanel, VisualizerPanel, OutputPanel,
    VisualizerCanvas, QtFrameScheduler, StatusBar, has_output_device
)

# Get logger but don't set level - it's controlled by AudioConfig
logger = logging.getLogger(__name__)


class ToneScopeUI(QMainWindow):
    def __init__(self, settings_manager: SettingsManager):
        super().__init__()
        self.settings_manager = settings_manager
        self.settings = settings_manager.load_settings()
        settings_manager.apply_to_config(self.settings)
        self.config: AudioConfig = settings_manager.get_config()

        self.title = f"Tone Scope v{VERSION}"
        self.setWindowTitle(self.title)

        self.canvas = VisualizerCanvas(self.config.canvas_width, self.config.canvas_height)
        self.controller = AudioController(
            self.config,
            self.canvas.surface,
            QtFrameScheduler(self.config.frame_interval_ms, parent=self),
            notify=self.show_error
        )
        self.media_element = SoundFileMediaElement(self.config.sample_rate)
        self.media_element.on_loaded = self._on_media_loaded
        self.media_element.on_error = self._on_media_error

        self.init_ui()
        self.tone_panel.apply_settings(self.settings.get('tone', {}))

        if not has_output_device():
            self.disable_audio_controls("No audio output device found. Audio controls are disabled.")

    def init_ui(self):
        central_widget = QWidget()
        self.setCentralWidget(central_widget)
        main_layout = QHBoxLayout(central_widget)

        control_layout = QVBoxLayout()
        self.tone_panel = ToneSourcePanel(self.config)
        self.media_panel = MediaPanel()
        self.visualizer_panel = VisualizerPanel(self.config)
        self.output_panel = OutputPanel(self.config)
        for panel in (self.tone_panel, self.media_panel, self.visualizer_panel, self.output_panel):
            control_layout.addWidget(panel)
        self.notice_label = QLabel()
        self.notice_label.setWordWrap(True)
        self.notice_label.hide()
        control_layout.addWidget(self.notice_label)
        control_layout.addStretch(1)

        main_layout.addLayout(control_layout)
        main_layout.addWidget(self.canvas, stretch=1)

        self.statusbar = StatusBar()
        self.setStatusBar(self.statusbar)

        self.tone_panel.play_requested.connect(self.play_tone)
        self.tone_panel.stop_requested.connect(self.stop_tone)
        self.media_panel.file_selected.connect(self.load_media)
        self.media_panel.stop_requested.connect(self.stop_media)
        self.media_panel.clear_requested.connect(self.clear_media)
        self.visualizer_panel.mode_changed.connect(self.change_visualizer)
        self.visualizer_panel.color_changed.connect(self.change_bar_color)
        self.output_panel.device_changed.connect(self.change_output_device)
        self.output_panel.volume_changed.connect(self.change_volume)

    def show_error(self, title: str, message: str):
        """Shows an error dialog"""
        QMessageBox.critical(self, title, message)

    def disable_audio_controls(self, message: str):
        logger.error(message)
        for panel in (self.tone_panel, self.media_panel, self.visualizer_panel):
            panel.setEnabled(False)
        self.notice_label.setText(message)
        self.notice_label.show()

    def _run(self, coro) -> bool:
        """Run a controller coroutine; errors were already shown to the user"""
        try:
            asyncio.run(coro)
            return True
        except AudioError as e:
            logger.debug(f"Request failed: {e}")
            return False

    def play_tone(self, frequency: float, waveform: str, noise_type: str):
        if noise_type == 'none':
            ok = self._run(self.controller.activate_tone(frequency, waveform))
            description = f"{frequency:g} Hz {waveform}"
        else:
            ok = self._run(self.controller.activate_noise(noise_type))
            description = f"{noise_type} noise"
        if ok:
            self.statusbar.showMessage(f"Playing {description}")

    def stop_tone(self):
        self.controller.stop_source()
        self.statusbar.showMessage("Stopped")

    def load_media(self, filename: str):
        if Path(filename).suffix.lower() not in SUPPORTED_EXTENSIONS:
            self.show_error("Unsupported File", "Please select an MP3, WAV, FLAC or OGG audio file.")
            return
        # New media cannot reuse the old binding
        self.controller.reset_media(self.media_element)
        self.media_panel.set_file(filename)
        self.statusbar.showMessage(f"Loading {Path(filename).name}...")
        self.media_element.load(filename)

    def _on_media_loaded(self, element):
        logger.info("Audio data loaded")
        if self._run(self.controller.activate_media(element)):
            self.statusbar.showMessage(f"Playing {Path(element.src).name}")

    def _on_media_error(self, element, error):
        self.media_panel.set_file(None)
        self.show_error("Load Error", "Error loading audio file. Please try another file.")

    def stop_media(self):
        if self.controller.source.spec is not None and getattr(self.controller.source.spec, 'element', None) is self.media_element:
            self.controller.stop_source()
        self.controller.stop_visualization()
        self.statusbar.showMessage("Audio file stopped")

    def clear_media(self):
        self.controller.reset_media(self.media_element)
        self.media_element.clear()
        self.media_panel.set_file(None)
        self.statusbar.showMessage("Audio file cleared")

    def change_visualizer(self, mode: str):
        try:
            self.controller.set_visualization_mode(mode)
        except AudioError:
            return
        self.save_settings()

    def change_bar_color(self, color: str):
        try:
            self.controller.set_bar_color(color)
        except AudioError:
            return
        self.save_settings()

    def change_output_device(self, device_index):
        self.config.output_device_index = device_index
        self.save_settings()
        self.statusbar.showMessage("Output device will be used after restart")

    def change_volume(self, volume: float):
        self.config.output_volume = volume

    def save_settings(self):
        self.settings['tone'] = self.tone_panel.get_settings()
        self.settings['visualizer'] = {
            'mode': self.config.visualizer_mode,
            'bar_color': self.config.bar_color
        }
        self.settings['audio'] = {
            'sample_rate': self.config.sample_rate,
            'block_size': self.config.block_size,
            'output_device_index': self.config.output_device_index
        }
        self.settings_manager.save_settings(self.settings)

    def closeEvent(self, event):
        """Handle window close events (X button or Alt+F4)"""
        try:
            self.save_settings()
            self.controller.close()
        except Exception as e:
            logger.error(f"Shutdown error: {e}")
        finally:
            event.accept()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Tone generator and audio visualizer")
    parser.add_argument('--log-level', default=None,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        help="Logging level (default: from settings)")
    parser.add_argument('--sample-rate', type=int, default=None,
                        help="Output sample rate in Hz")
    parser.add_argument('--device', type=int, default=None,
                        help="Output device index (see python -m sounddevice)")
    return parser.parse_args(argv)


def main():
    args = parse_args()
    settings_manager = SettingsManager()
    if args.log_level:
        logging.getLogger().setLevel(args.log_level)

    app = QApplication(sys.argv)
    window = ToneScopeUI(settings_manager)
    if args.log_level:
        window.config.log_level = args.log_level
        logging.getLogger().setLevel(args.log_level)
    if args.sample_rate:
        window.config.sample_rate = args.sample_rate
        window.media_element.sample_rate = args.sample_rate
    if args.device is not None:
        window.config.output_device_index = args.device
    window.show()
    sys.exit(app.exec())


if __name__ == '__main__':
    main()
