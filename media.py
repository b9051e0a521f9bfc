# media.py
import threading
from fractions import Fraction
from pathlib import Path
from typing import Callable, Optional
import numpy as np
import soundfile as sf
from scipy import signal
import logging

from errors import PlaybackBlocked

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = ('.mp3', '.wav', '.flac', '.ogg')


class SoundFileMediaElement:
    """Playable media element backed by a file decoded with soundfile.

    Exposes the element surface the signal chain consumes: `src`,
    `play()`, `pause()`, `current_time` and load/error notifications.
    Audio is decoded up front, down-mixed to mono and resampled to the
    engine rate so `read()` can be called from the audio thread.
    """

    def __init__(self, sample_rate: int = 44100):
        self.sample_rate = sample_rate
        self.src = ''
        self.on_loaded: Optional[Callable[['SoundFileMediaElement'], None]] = None
        self.on_error: Optional[Callable[['SoundFileMediaElement', Exception], None]] = None
        self.error: Optional[Exception] = None
        self.playing = False
        self.ended = False
        self._data = np.zeros(0, dtype=np.float32)
        self._position = 0
        self._lock = threading.RLock()

    @property
    def duration(self) -> float:
        return len(self._data) / self.sample_rate

    @property
    def current_time(self) -> float:
        with self._lock:
            return self._position / self.sample_rate

    @current_time.setter
    def current_time(self, seconds: float):
        with self._lock:
            position = int(round(max(0.0, float(seconds)) * self.sample_rate))
            self._position = min(position, len(self._data))
            self.ended = False

    def load(self, path) -> bool:
        """Decode `path`; fires on_loaded or on_error and reports success"""
        path = str(path)
        self.pause()
        try:
            data, file_rate = sf.read(path, dtype='float32', always_2d=True)
            mono = data.mean(axis=1)
            if file_rate != self.sample_rate:
                ratio = Fraction(self.sample_rate, file_rate).limit_denominator(1000)
                mono = signal.resample_poly(mono, ratio.numerator, ratio.denominator)
        except (RuntimeError, OSError, ValueError) as e:
            logger.error(f"Error loading audio {path}: {e}")
            with self._lock:
                self.src = path
                self.error = e
                self._data = np.zeros(0, dtype=np.float32)
                self._position = 0
            if self.on_error:
                self.on_error(self, e)
            return False

        with self._lock:
            self.src = path
            self.error = None
            self._data = np.asarray(mono, dtype=np.float32)
            self._position = 0
            self.ended = False
        logger.info(f"Loaded {Path(path).name}: {self.duration:.1f} s at {self.sample_rate} Hz")
        if self.on_loaded:
            self.on_loaded(self)
        return True

    def clear(self):
        """Drop the current media, leaving the element without a source"""
        with self._lock:
            self.playing = False
            self.ended = False
            self.src = ''
            self.error = None
            self._data = np.zeros(0, dtype=np.float32)
            self._position = 0

    def play(self):
        with self._lock:
            if self.error is not None:
                raise PlaybackBlocked(f"Media could not be decoded: {self.error}", cause=self.error)
            if len(self._data) == 0:
                raise PlaybackBlocked("No media loaded")
            if self._position >= len(self._data):
                self._position = 0
            self.playing = True
            self.ended = False

    def pause(self):
        with self._lock:
            self.playing = False

    def read(self, frames: int) -> np.ndarray:
        """Next block of decoded samples; silence when paused or ended"""
        output = np.zeros(frames, dtype=np.float32)
        with self._lock:
            if not self.playing:
                return output
            available = max(0, min(frames, len(self._data) - self._position))
            output[:available] = self._data[self._position:self._position + available]
            self._position += available
            if self._position >= len(self._data):
                self.playing = False
                self.ended = True
        return output

    def __repr__(self):
        return f"SoundFileMediaElement({self.src!r})"


class MediaStreamAdapter:
    """Binds one media element into the graph at most once.

    The bound producer is reused by every activation until `reset()`
    releases it, which is required before the element's media changes.
    """

    def __init__(self, engine, element):
        self.engine = engine
        self.element = element
        self._source = None

    @property
    def is_bound(self) -> bool:
        return self._source is not None

    def producer(self):
        """The element's producer, creating the binding on first use"""
        if self._source is None:
            logger.debug(f"Creating media element source for {self.element!r}")
            self._source = self.engine.create_media_element_source(self.element)
        else:
            logger.debug(f"Using existing media element source for {self.element!r}")
        return self._source

    def reset(self):
        """Release the binding so a fresh one can be made for new media"""
        if self._source is None:
            return
        source, self._source = self._source, None
        if source.is_connected:
            try:
                source.disconnect()
            except ValueError as e:
                logger.error(f"Error disconnecting media source: {e}")
        self.engine.release_media_element(self.element)
        logger.debug(f"Released media binding for {self.element!r}")
