# audio_sources.py
import numpy as np
from scipy import signal
from abc import ABC, abstractmethod
import math
import threading
import logging

logger = logging.getLogger(__name__)

__all__ = [
    'WAVEFORMS',
    'AudioSource',
    'OscillatorSource',
    'BufferSource',
    'MediaElementSource'
]

WAVEFORMS = ('sine', 'square', 'sawtooth', 'triangle')


class AudioSource(ABC):
    """A producer in the graph: renders mono blocks once started.

    Oscillators and buffer players are one-shot, like their browser
    counterparts: they can be started once and `stop()` is terminal.
    """

    reusable = False

    def __init__(self, sample_rate: int):
        self.sample_rate = sample_rate
        self._lock = threading.RLock()
        self._outputs = []
        self._started = False
        self._stopped = False

    @abstractmethod
    def _generate_chunk(self, frames: int) -> np.ndarray:
        """Generate audio chunk - to be implemented by subclasses"""
        pass

    def render(self, frames: int) -> np.ndarray:
        """Next block of samples; silence unless running"""
        with self._lock:
            if not self.is_running:
                return np.zeros(frames, dtype=np.float32)
            return self._generate_chunk(frames)

    @property
    def is_running(self) -> bool:
        return self._started and not self._stopped

    @property
    def is_connected(self) -> bool:
        return bool(self._outputs)

    def connect(self, node):
        node.connect_input(self)
        if node not in self._outputs:
            self._outputs.append(node)

    def disconnect(self, node=None):
        """Disconnect from `node`, or from every output when omitted"""
        if node is None:
            targets = list(self._outputs)
        else:
            if node not in self._outputs:
                raise ValueError(f"{self!r} is not connected to {node!r}")
            targets = [node]

        for target in targets:
            self._outputs.remove(target)
            target.disconnect_input(self)

    def start(self):
        with self._lock:
            if self._started:
                raise RuntimeError(f"{type(self).__name__} cannot be started more than once")
            self._started = True

    def stop(self):
        with self._lock:
            if not self._started:
                raise RuntimeError(f"{type(self).__name__} cannot be stopped before it is started")
            self._stopped = True


class OscillatorSource(AudioSource):
    """Periodic waveform generator with a phase kept across blocks"""

    def __init__(self, sample_rate: int, waveform: str = 'sine', frequency: float = 440.0):
        super().__init__(sample_rate)
        if waveform not in WAVEFORMS:
            raise ValueError(f"Unknown waveform: {waveform}")
        self.waveform = waveform
        self.frequency = 0.0
        self._phase = 0.0
        self.set_frequency(frequency)

    def set_frequency(self, frequency: float):
        frequency = float(frequency)
        if not math.isfinite(frequency) or frequency <= 0:
            raise ValueError(f"Frequency must be a finite number greater than 0, got {frequency}")
        with self._lock:
            self.frequency = frequency

    def _generate_chunk(self, frames: int) -> np.ndarray:
        phase_inc = 2 * np.pi * self.frequency / self.sample_rate
        phases = self._phase + np.arange(frames) * phase_inc
        self._phase = (self._phase + frames * phase_inc) % (2 * np.pi)

        if self.waveform == 'sine':
            data = np.sin(phases)
        elif self.waveform == 'square':
            data = signal.square(phases)
        elif self.waveform == 'sawtooth':
            data = signal.sawtooth(phases)
        else:  # triangle
            data = signal.sawtooth(phases, width=0.5)
        return data.astype(np.float32)

    def __repr__(self):
        return f"OscillatorSource({self.waveform}, {self.frequency} Hz)"


class BufferSource(AudioSource):
    """Plays a fixed sample buffer, optionally looping"""

    def __init__(self, sample_rate: int, buffer: np.ndarray, loop: bool = False):
        super().__init__(sample_rate)
        buffer = np.asarray(buffer, dtype=np.float32)
        if buffer.ndim != 1 or len(buffer) == 0:
            raise ValueError("Buffer must be a non-empty mono sample array")
        self.buffer = buffer
        self.loop = loop
        self._position = 0

    def _generate_chunk(self, frames: int) -> np.ndarray:
        length = len(self.buffer)
        if self.loop:
            indices = (self._position + np.arange(frames)) % length
            self._position = (self._position + frames) % length
            return self.buffer[indices]

        output = np.zeros(frames, dtype=np.float32)
        available = max(0, min(frames, length - self._position))
        output[:available] = self.buffer[self._position:self._position + available]
        self._position += available
        if self._position >= length:
            self._stopped = True
        return output

    def __repr__(self):
        return f"BufferSource({len(self.buffer)} samples, loop={self.loop})"


class MediaElementSource(AudioSource):
    """Routes a media element's decoded audio into the graph.

    Unlike the one-shot producers this one is reused for every activation
    of the same element: start plays, stop pauses and rewinds.
    """

    reusable = True

    def __init__(self, element):
        super().__init__(element.sample_rate)
        self.element = element

    @property
    def is_running(self) -> bool:
        return self.element.playing

    def _generate_chunk(self, frames: int) -> np.ndarray:
        return self.element.read(frames)

    def start(self):
        self.element.play()
        self._started = True

    def stop(self):
        self.element.pause()
        self.element.current_time = 0

    def __repr__(self):
        return f"MediaElementSource({self.element.src!r})"
