# visualizer.py
import colorsys
import math
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional, Tuple
import numpy as np
import logging

from config import parse_hex_color
from errors import InvalidParameter

logger = logging.getLogger(__name__)

Color = Tuple[int, int, int, int]

BLACK: Color = (0, 0, 0, 255)
TRAIL: Color = (0, 0, 0, 13)  # 5% black, leaves fading trails


class VisualizationMode(Enum):
    BAR = 'bar'
    KALEIDOSCOPE = 'kaleidoscope'
    KALEIDOSCOPE_ALT = 'kaleidoscope-b'
    NONE = 'none'

    @classmethod
    def parse(cls, value) -> 'VisualizationMode':
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidParameter(f"Unknown visualization mode: {value!r}") from None


class DrawingSurface(ABC):
    """Fixed-size raster target the renderers paint into"""

    width: int
    height: int

    def begin_frame(self):
        pass

    def end_frame(self):
        pass

    @abstractmethod
    def clear(self):
        pass

    @abstractmethod
    def fill_rect(self, x: float, y: float, width: float, height: float, color: Color):
        pass

    @abstractmethod
    def fill_circle(self, x: float, y: float, radius: float, color: Color):
        pass


class FrameScheduler(ABC):
    """Host per-frame callback source"""

    @abstractmethod
    def request_frame(self, callback: Callable[[], None]):
        """Schedule `callback` for the next frame and return a cancellation handle"""

    @abstractmethod
    def cancel_frame(self, handle):
        pass


class Renderer(ABC):
    @abstractmethod
    def draw(self, surface: DrawingSurface, data: np.ndarray, now_ms: float):
        pass


class BarRenderer(Renderer):
    """One vertical bar per frequency bin over a black background"""

    def __init__(self, color: Color = (0, 255, 0, 255)):
        self.color = color

    def draw(self, surface: DrawingSurface, data: np.ndarray, now_ms: float):
        surface.fill_rect(0, 0, surface.width, surface.height, BLACK)

        bar_width = (surface.width / len(data)) * 2.5
        x = 0.0
        for magnitude in data:
            bar_height = float(magnitude) / 2
            surface.fill_rect(x, surface.height - bar_height, bar_width, bar_height, self.color)
            x += bar_width + 1


class KaleidoscopeRenderer(Renderer):
    """Ring of hue-cycling discs that rotates with the lowest bin"""

    def __init__(self, segments: int = 60):
        self.segments = segments
        self.rotation = 0.0

    @staticmethod
    def hue_color(hue: float) -> Color:
        r, g, b = colorsys.hls_to_rgb((hue % 360) / 360.0, 0.5, 1.0)
        return (int(round(r * 255)), int(round(g * 255)), int(round(b * 255)), 255)

    def draw(self, surface: DrawingSurface, data: np.ndarray, now_ms: float):
        surface.fill_rect(0, 0, surface.width, surface.height, TRAIL)

        center_x = surface.width / 2
        center_y = surface.height / 2
        bin_count = len(data)
        for i in range(self.segments):
            angle = (i / self.segments) * math.pi * 2
            magnitude = float(data[i % bin_count])
            radius = 50 + magnitude / 2

            x = center_x + radius * math.cos(angle + self.rotation)
            y = center_y + radius * math.sin(angle + self.rotation)

            hue = (i / self.segments) * 360 + (now_ms % 360) / 4
            surface.fill_circle(x, y, magnitude / 20, self.hue_color(hue))

        self.rotation += float(data[0]) / 1000


class VisualizationLoop:
    """Cancellable per-frame loop sampling the analyser.

    Each `start()` bumps a generation counter; a frame callback whose
    generation is stale returns without drawing, so nothing renders after
    cancellation even if the scheduler fires a callback already queued.
    """

    def __init__(self, analyser, surface: DrawingSurface, scheduler: FrameScheduler,
                 mode=VisualizationMode.BAR, bar_color: str = '#00ff00',
                 on_error: Optional[Callable[[Exception], None]] = None,
                 clock: Optional[Callable[[], float]] = None):
        self.analyser = analyser
        self.surface = surface
        self.scheduler = scheduler
        self.on_error = on_error
        self.clock = clock or (lambda: time.time() * 1000.0)
        self.bar_color = parse_hex_color(bar_color)
        self.last_error: Optional[Exception] = None
        self._mode = VisualizationMode.parse(mode)
        self._generation = 0
        self._handle = None
        self._renderer: Optional[Renderer] = None

    @property
    def mode(self) -> VisualizationMode:
        return self._mode

    @mode.setter
    def mode(self, value):
        self._mode = VisualizationMode.parse(value)

    @property
    def is_running(self) -> bool:
        return self._handle is not None

    def set_bar_color(self, color: str):
        self.bar_color = parse_hex_color(color)
        if isinstance(self._renderer, BarRenderer):
            self._renderer.color = self.bar_color

    def _create_renderer(self, mode: VisualizationMode) -> Renderer:
        if mode is VisualizationMode.BAR:
            return BarRenderer(self.bar_color)
        if mode is VisualizationMode.KALEIDOSCOPE:
            return KaleidoscopeRenderer(segments=60)
        return KaleidoscopeRenderer(segments=120)

    def start(self, mode=None):
        """Cancel the current loop and start drawing `mode`"""
        if mode is not None:
            self._mode = VisualizationMode.parse(mode)
        self.cancel()
        generation = self._generation
        logger.debug(f"Starting visualization: {self._mode.value}")

        if self._mode is VisualizationMode.NONE:
            self._renderer = None
            self.surface.clear()
            return

        self._renderer = self._create_renderer(self._mode)
        self.last_error = None
        self._schedule(generation)

    def cancel(self):
        """Stop the loop; no frame draws after this returns"""
        self._generation += 1
        handle, self._handle = self._handle, None
        if handle is not None:
            self.scheduler.cancel_frame(handle)
            logger.debug("Canceled visualization frame")

    def stop(self, clear: bool = False):
        self.cancel()
        self._renderer = None
        if clear:
            self.surface.clear()

    def _schedule(self, generation: int):
        self._handle = self.scheduler.request_frame(lambda: self._on_frame(generation))

    def _on_frame(self, generation: int):
        if generation != self._generation or self._renderer is None:
            return
        self._handle = None

        try:
            data = self.analyser.get_byte_frequency_data()
            self.surface.begin_frame()
            try:
                self._renderer.draw(self.surface, data, self.clock())
            finally:
                self.surface.end_frame()
        except Exception as e:
            logger.error(f"Error in {self._mode.value} animation frame: {e}")
            self.cancel()
            self._renderer = None
            self.last_error = e
            if self.on_error:
                self.on_error(e)
            return

        if generation == self._generation:
            self._schedule(generation)
