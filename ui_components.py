# ui_components.py
from PyQt6.QtWidgets import (
    QWidget, QVBoxLayout, QHBoxLayout, QComboBox, QPushButton,
    QLabel, QGroupBox, QFormLayout, QDoubleSpinBox, QSlider,
    QStatusBar, QFileDialog, QColorDialog, QSizePolicy
)
from PyQt6.QtCore import Qt, pyqtSignal, QTimer, QPointF, QRectF
from PyQt6.QtGui import QColor, QImage, QPainter
from typing import Callable, Optional
from pathlib import Path
import sounddevice as sd
import logging

from config import AudioConfig
from audio_sources import WAVEFORMS
from media import SUPPORTED_EXTENSIONS
from visualizer import Color, DrawingSurface, FrameScheduler, VisualizationMode

logger = logging.getLogger(__name__)

VISUALIZER_LABELS = {
    VisualizationMode.BAR: "Bar Graph",
    VisualizationMode.KALEIDOSCOPE: "Kaleidoscope",
    VisualizationMode.KALEIDOSCOPE_ALT: "Kaleidoscope B",
    VisualizationMode.NONE: "None",
}

NOISE_LABELS = {'none': "None (Tone)", 'white': "White Noise", 'pink': "Pink Noise"}

# At module level, before classes
def update_device_list(combo: QComboBox):
    """Helper function to fill a combo box with output devices"""
    combo.clear()
    combo.addItem("Default Output", None)
    try:
        devices = sd.query_devices()
    except Exception as e:
        logger.error(f"Error querying audio devices: {e}")
        return
    for i, device in enumerate(devices):
        channels = device['max_output_channels']
        if channels > 0:
            combo.addItem(f"{device['name']} (Out: {channels})", i)


def has_output_device() -> bool:
    """True when the host exposes at least one audio output"""
    try:
        return any(device['max_output_channels'] > 0 for device in sd.query_devices())
    except Exception as e:
        logger.error(f"Error querying audio devices: {e}")
        return False


class QtImageSurface(DrawingSurface):
    """Drawing surface backed by a QImage; one painter per frame"""

    def __init__(self, width: int, height: int, on_frame: Optional[Callable[[], None]] = None):
        self.width = width
        self.height = height
        self.on_frame = on_frame
        self.image = QImage(width, height, QImage.Format.Format_ARGB32_Premultiplied)
        self.image.fill(QColor(0, 0, 0, 0))
        self._painter: Optional[QPainter] = None

    def begin_frame(self):
        self._painter = QPainter(self.image)
        self._painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        self._painter.setPen(Qt.PenStyle.NoPen)

    def end_frame(self):
        if self._painter is not None:
            self._painter.end()
            self._painter = None
        if self.on_frame:
            self.on_frame()

    def _with_painter(self, paint: Callable[[QPainter], None]):
        if self._painter is not None:
            paint(self._painter)
            return
        self.begin_frame()
        try:
            paint(self._painter)
        finally:
            self.end_frame()

    def clear(self):
        def paint(painter: QPainter):
            painter.setCompositionMode(QPainter.CompositionMode.CompositionMode_Clear)
            painter.fillRect(QRectF(0, 0, self.width, self.height), QColor(0, 0, 0, 0))
            painter.setCompositionMode(QPainter.CompositionMode.CompositionMode_SourceOver)
        self._with_painter(paint)

    def fill_rect(self, x: float, y: float, width: float, height: float, color: Color):
        self._with_painter(lambda painter: painter.fillRect(QRectF(x, y, width, height), QColor(*color)))

    def fill_circle(self, x: float, y: float, radius: float, color: Color):
        def paint(painter: QPainter):
            painter.setBrush(QColor(*color))
            painter.drawEllipse(QPointF(x, y), radius, radius)
        self._with_painter(paint)


class VisualizerCanvas(QWidget):
    """Fixed-size widget showing the visualization surface"""

    def __init__(self, width: int, height: int):
        super().__init__()
        self.setFixedSize(width, height)
        self.surface = QtImageSurface(width, height, on_frame=self.update)

    def paintEvent(self, event):
        painter = QPainter(self)
        painter.fillRect(self.rect(), QColor(0, 0, 0))
        painter.drawImage(0, 0, self.surface.image)
        painter.end()


class QtFrameScheduler(FrameScheduler):
    """Per-frame callbacks from single-shot QTimers"""

    def __init__(self, interval_ms: int = 16, parent=None):
        self.interval_ms = interval_ms
        self._parent = parent

    def request_frame(self, callback):
        timer = QTimer(self._parent)
        timer.setSingleShot(True)
        timer.setInterval(self.interval_ms)
        timer.timeout.connect(callback)
        timer.timeout.connect(timer.deleteLater)
        timer.start()
        return timer

    def cancel_frame(self, handle):
        handle.stop()
        handle.deleteLater()


class ToneSourcePanel(QGroupBox):
    play_requested = pyqtSignal(float, str, str)  # frequency, waveform, noise type
    stop_requested = pyqtSignal()

    def __init__(self, config: AudioConfig):
        super().__init__("Tone Generator")
        self.config = config
        self.setSizePolicy(QSizePolicy.Policy.Preferred, QSizePolicy.Policy.Fixed)
        self.init_ui()

    def init_ui(self):
        layout = QFormLayout(self)
        layout.setSpacing(4)
        layout.setContentsMargins(6, 8, 6, 8)

        # Frequency spinbox and slider kept in sync
        freq_layout = QHBoxLayout()
        self.frequency = QDoubleSpinBox()
        self.frequency.setRange(1.0, 20000.0)
        self.frequency.setDecimals(1)
        self.frequency.setSuffix(" Hz")
        self.frequency.setValue(440.0)
        self.frequency.setFixedWidth(110)
        self.frequency_slider = QSlider(Qt.Orientation.Horizontal)
        self.frequency_slider.setRange(1, 20000)
        self.frequency_slider.setValue(440)
        self.frequency.valueChanged.connect(self._spinbox_changed)
        self.frequency_slider.valueChanged.connect(lambda v: self.frequency.setValue(float(v)))
        freq_layout.addWidget(self.frequency)
        freq_layout.addWidget(self.frequency_slider, stretch=1)
        layout.addRow("Frequency:", freq_layout)

        self.waveform = QComboBox()
        for waveform in WAVEFORMS:
            self.waveform.addItem(waveform.capitalize(), waveform)
        layout.addRow("Waveform:", self.waveform)

        self.noise_type = QComboBox()
        for key, label in NOISE_LABELS.items():
            self.noise_type.addItem(label, key)
        self.noise_type.currentIndexChanged.connect(self._update_tone_controls)
        layout.addRow("Noise:", self.noise_type)

        button_layout = QHBoxLayout()
        self.play_button = QPushButton("Play")
        self.play_button.clicked.connect(self._on_play)
        self.stop_button = QPushButton("Stop")
        self.stop_button.clicked.connect(self.stop_requested.emit)
        button_layout.addWidget(self.play_button)
        button_layout.addWidget(self.stop_button)
        layout.addRow(button_layout)

    def _spinbox_changed(self, value: float):
        self.frequency_slider.blockSignals(True)
        self.frequency_slider.setValue(int(round(value)))
        self.frequency_slider.blockSignals(False)

    def _update_tone_controls(self):
        tone = self.noise_type.currentData() == 'none'
        self.frequency.setEnabled(tone)
        self.frequency_slider.setEnabled(tone)
        self.waveform.setEnabled(tone)

    def _on_play(self):
        self.play_requested.emit(self.frequency.value(),
                                 self.waveform.currentData(),
                                 self.noise_type.currentData())

    def get_settings(self) -> dict:
        return {
            'frequency': self.frequency.value(),
            'waveform': self.waveform.currentData(),
            'noise_type': self.noise_type.currentData()
        }

    def apply_settings(self, settings: dict):
        self.frequency.setValue(float(settings.get('frequency', self.frequency.value())))
        index = self.waveform.findData(settings.get('waveform'))
        if index >= 0:
            self.waveform.setCurrentIndex(index)
        index = self.noise_type.findData(settings.get('noise_type'))
        if index >= 0:
            self.noise_type.setCurrentIndex(index)
        self._update_tone_controls()


class MediaPanel(QGroupBox):
    file_selected = pyqtSignal(str)
    stop_requested = pyqtSignal()
    clear_requested = pyqtSignal()

    def __init__(self):
        super().__init__("Audio File")
        self.setSizePolicy(QSizePolicy.Policy.Preferred, QSizePolicy.Policy.Fixed)
        self.last_folder = ""
        self.init_ui()

    def init_ui(self):
        layout = QVBoxLayout(self)
        layout.setSpacing(4)
        layout.setContentsMargins(6, 8, 6, 8)

        self.file_label = QLabel("No file loaded")
        self.file_label.setWordWrap(True)
        layout.addWidget(self.file_label)

        button_layout = QHBoxLayout()
        self.open_button = QPushButton("Open...")
        self.open_button.clicked.connect(self._choose_file)
        self.stop_button = QPushButton("Stop")
        self.stop_button.clicked.connect(self.stop_requested.emit)
        self.clear_button = QPushButton("Clear")
        self.clear_button.clicked.connect(self.clear_requested.emit)
        for button in (self.open_button, self.stop_button, self.clear_button):
            button_layout.addWidget(button)
        layout.addLayout(button_layout)

    def _choose_file(self):
        patterns = " ".join(f"*{ext}" for ext in SUPPORTED_EXTENSIONS)
        filename, _ = QFileDialog.getOpenFileName(
            self, "Open Audio File", self.last_folder, f"Audio Files ({patterns})")
        if not filename:
            logger.debug("No file selected")
            return
        self.last_folder = str(Path(filename).parent)
        self.file_selected.emit(filename)

    def set_file(self, filename: Optional[str]):
        self.file_label.setText(Path(filename).name if filename else "No file loaded")


class VisualizerPanel(QGroupBox):
    mode_changed = pyqtSignal(str)
    color_changed = pyqtSignal(str)

    def __init__(self, config: AudioConfig):
        super().__init__("Visualizer")
        self.config = config
        self.setSizePolicy(QSizePolicy.Policy.Preferred, QSizePolicy.Policy.Fixed)
        self.init_ui()

    def init_ui(self):
        layout = QFormLayout(self)
        layout.setSpacing(4)
        layout.setContentsMargins(6, 8, 6, 8)

        self.mode = QComboBox()
        for mode, label in VISUALIZER_LABELS.items():
            self.mode.addItem(label, mode.value)
        index = self.mode.findData(self.config.visualizer_mode)
        if index >= 0:
            self.mode.setCurrentIndex(index)
        self.mode.currentIndexChanged.connect(lambda _: self.mode_changed.emit(self.mode.currentData()))
        layout.addRow("Type:", self.mode)

        self.color_button = QPushButton()
        self.color_button.setFixedWidth(60)
        self.color_button.clicked.connect(self._choose_color)
        self._show_color(self.config.bar_color)
        layout.addRow("Bar Color:", self.color_button)

    def _show_color(self, color: str):
        self.color_button.setStyleSheet(f"background-color: {color};")
        self.color_button.setToolTip(color)

    def _choose_color(self):
        color = QColorDialog.getColor(QColor(self.config.bar_color), self, "Bar Color")
        if color.isValid():
            self._show_color(color.name())
            self.color_changed.emit(color.name())


class OutputPanel(QGroupBox):
    device_changed = pyqtSignal(object)
    volume_changed = pyqtSignal(float)

    def __init__(self, config: AudioConfig):
        super().__init__("Audio Output")
        self.config = config
        self.setSizePolicy(QSizePolicy.Policy.Preferred, QSizePolicy.Policy.Fixed)
        self.init_ui()

    def init_ui(self):
        layout = QFormLayout(self)
        layout.setSpacing(4)
        layout.setContentsMargins(6, 8, 6, 8)

        self.device_combo = QComboBox()
        update_device_list(self.device_combo)
        index = self.device_combo.findData(self.config.output_device_index)
        if index >= 0:
            self.device_combo.setCurrentIndex(index)
        self.device_combo.currentIndexChanged.connect(
            lambda _: self.device_changed.emit(self.device_combo.currentData()))
        layout.addRow("Device:", self.device_combo)

        volume_layout = QHBoxLayout()
        self.volume_slider = QSlider(Qt.Orientation.Horizontal)
        self.volume_slider.setRange(0, 100)
        initial_volume = int(self.config.output_volume * 100)
        self.volume_slider.setValue(initial_volume)
        volume_value = QLabel(f"{initial_volume}%")
        self.volume_slider.valueChanged.connect(lambda v: volume_value.setText(f"{v}%"))
        self.volume_slider.valueChanged.connect(lambda v: self.volume_changed.emit(v / 100.0))
        volume_layout.addWidget(self.volume_slider)
        volume_layout.addWidget(volume_value)
        layout.addRow("Volume:", volume_layout)


class StatusBar(QStatusBar):
    def __init__(self):
        super().__init__()
        self.setSizeGripEnabled(False)
