# config.py
from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, Optional, Union
import copy
import json
import os
from pathlib import Path
import logging

# Configure logging with a default level
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=logging.WARNING
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"

@dataclass
class AudioConfig:
    # Logging settings
    log_level: str = 'WARNING'  # Can be DEBUG, INFO, WARNING, ERROR, CRITICAL

    # Audio output settings
    sample_rate: int = 44100
    channels: int = 1
    block_size: int = 512
    output_device_index: Optional[int] = None
    latency: str = 'low'
    output_volume: float = 1.0

    # Analyser settings
    fft_size: int = 2048
    smoothing_time_constant: float = 0.8
    min_decibels: float = -100.0
    max_decibels: float = -30.0

    # Noise synthesis
    noise_duration: float = 2.0  # Seconds of looped noise per activation

    # Visualization settings
    frame_interval_ms: int = 16  # ~60 fps
    canvas_width: int = 800
    canvas_height: int = 400
    bar_color: str = '#00ff00'
    visualizer_mode: str = 'bar'

    # Status callbacks
    on_underflow: Optional[Callable] = None

    def __post_init__(self):
        # Set the global logging level when AudioConfig is instantiated
        logging.getLogger().setLevel(self.log_level)

    def to_dict(self) -> dict:
        """Plain-data view of the settings; callbacks are not serialisable"""
        data = asdict(self)
        del data['on_underflow']
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'AudioConfig':
        known = {name for name in cls.__dataclass_fields__ if name != 'on_underflow'}
        return cls(**{key: value for key, value in data.items() if key in known})


def parse_hex_color(value: str, alpha: int = 255) -> tuple:
    """Convert '#rrggbb' (or 'rrggbb') into an RGBA tuple"""
    text = value.strip().lstrip('#')
    if len(text) == 3:
        text = ''.join(c * 2 for c in text)
    if len(text) != 6:
        raise ValueError(f"Invalid color value: {value!r}")
    try:
        r, g, b = (int(text[i:i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        raise ValueError(f"Invalid color value: {value!r}") from None
    return (r, g, b, alpha)


class SettingsManager:
    """Persists UI preferences as JSON; audio data is never written.

    Stored sections: ``tone`` (last frequency, waveform and noise choice),
    ``visualizer`` (mode and bar colour) and ``audio`` (output device and
    stream parameters). Missing keys fall back to the defaults.
    """

    def __init__(self, app_name: str = "tone_scope", settings_file: Optional[Union[str, Path]] = None):
        self.app_name = app_name
        self.settings_file = Path(settings_file) if settings_file else self._default_settings_file()
        self.config = AudioConfig()
        self.default_settings = self._build_defaults(self.config)

    def _default_settings_file(self) -> Path:
        if os.name == 'nt':
            root = Path(os.getenv('APPDATA', Path.home()))
        else:
            root = Path(os.getenv('XDG_CONFIG_HOME', Path.home() / '.config'))
        return root / self.app_name / 'settings.json'

    @staticmethod
    def _build_defaults(config: AudioConfig) -> Dict[str, Any]:
        return {
            'tone': {
                'frequency': 440.0,
                'waveform': 'sine',
                'noise_type': 'none'
            },
            'visualizer': {
                'mode': config.visualizer_mode,
                'bar_color': config.bar_color
            },
            'audio': {
                'sample_rate': config.sample_rate,
                'block_size': config.block_size,
                'output_device_index': config.output_device_index
            }
        }

    def save_settings(self, settings: Dict[str, Any]):
        try:
            self.settings_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.settings_file, 'w') as f:
                json.dump(settings, f, indent=4)
            logger.debug(f"Settings saved to {self.settings_file}")
        except (OSError, TypeError) as e:
            logger.error(f"Could not save settings to {self.settings_file}: {e}")

    def load_settings(self) -> Dict[str, Any]:
        """Stored preferences merged over the defaults"""
        stored = {}
        if self.settings_file.exists():
            try:
                with open(self.settings_file, 'r') as f:
                    stored = json.load(f)
            except (OSError, ValueError) as e:
                logger.error(f"Could not read settings from {self.settings_file}: {e}")
            if not isinstance(stored, dict):
                logger.error(f"Ignoring malformed settings file {self.settings_file}")
                stored = {}
        return self._merge_settings(self.default_settings, stored)

    def _merge_settings(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        merged = copy.deepcopy(base)
        for key, value in override.items():
            if isinstance(merged.get(key), dict) and isinstance(value, dict):
                merged[key] = self._merge_settings(merged[key], value)
            else:
                merged[key] = value
        return merged

    def apply_to_config(self, settings: Dict[str, Any]):
        """Copy the visualizer and audio sections onto the shared AudioConfig.

        Stored values that no longer validate are logged and skipped, so a
        stale settings file never stops the application from starting.
        """
        from visualizer import VisualizationMode

        visualizer = settings.get('visualizer') or {}
        if 'mode' in visualizer:
            try:
                self.config.visualizer_mode = VisualizationMode.parse(visualizer['mode']).value
            except ValueError as e:
                logger.error(f"Ignoring stored visualizer mode: {e}")
        if 'bar_color' in visualizer:
            try:
                parse_hex_color(visualizer['bar_color'])
                self.config.bar_color = visualizer['bar_color']
            except (AttributeError, ValueError) as e:
                logger.error(f"Ignoring stored bar color: {e}")

        audio = settings.get('audio') or {}
        for key in ('sample_rate', 'block_size'):
            if key not in audio:
                continue
            value = self._positive_int(audio[key])
            if value is None:
                logger.error(f"Ignoring stored {key}: {audio[key]!r}")
            else:
                setattr(self.config, key, value)
        if 'output_device_index' in audio:
            device = audio['output_device_index']
            if device is None:
                self.config.output_device_index = None
            elif self._positive_int(device, allow_zero=True) is None:
                logger.error(f"Ignoring stored output device: {device!r}")
            else:
                self.config.output_device_index = int(device)

    @staticmethod
    def _positive_int(value, allow_zero: bool = False) -> Optional[int]:
        if isinstance(value, bool):
            return None
        try:
            number = int(value)
        except (TypeError, ValueError):
            return None
        if number < 0 or (number == 0 and not allow_zero):
            return None
        return number

    def get_config(self) -> AudioConfig:
        return self.config
