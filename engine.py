# engine.py
import asyncio
import threading
from enum import Enum
from typing import Callable, List, Optional
import numpy as np
from scipy import signal
import logging

from config import AudioConfig
from errors import EngineClosed, EngineUnavailable, SourceAlreadyBound
from audio_sources import OscillatorSource, BufferSource, MediaElementSource

logger = logging.getLogger(__name__)


class EngineState(Enum):
    UNINITIALIZED = 'uninitialized'
    ACTIVE = 'active'
    SUSPENDED = 'suspended'
    CLOSED = 'closed'


class AnalyserNode:
    """Shared spectrum analysis stage every producer feeds into.

    Mirrors the byte frequency data of a browser analyser: Blackman window,
    FFT magnitude normalised by the transform size, exponential smoothing
    between snapshots, then dB mapped linearly onto 0..255.
    """

    def __init__(self, fft_size: int = 2048, smoothing_time_constant: float = 0.8,
                 min_decibels: float = -100.0, max_decibels: float = -30.0):
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError(f"FFT size must be a power of two >= 32, got {fft_size}")
        if min_decibels >= max_decibels:
            raise ValueError("min_decibels must be lower than max_decibels")
        self.fft_size = fft_size
        self.smoothing_time_constant = smoothing_time_constant
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels

        self._lock = threading.RLock()
        self._inputs = []
        self._time_buffer = np.zeros(fft_size, dtype=np.float32)
        self._smoothed = np.zeros(self.frequency_bin_count, dtype=np.float64)
        # Periodic window, as used for spectral analysis
        self._window = signal.get_window('blackman', fft_size)
        self.output_connected = False

    @property
    def frequency_bin_count(self) -> int:
        return self.fft_size // 2

    @property
    def inputs(self) -> list:
        with self._lock:
            return list(self._inputs)

    def connect_input(self, source):
        with self._lock:
            if source not in self._inputs:
                self._inputs.append(source)
                logger.debug(f"Analyser input connected: {source!r} ({len(self._inputs)} total)")

    def disconnect_input(self, source):
        with self._lock:
            if source not in self._inputs:
                raise ValueError(f"{source!r} is not connected to the analyser")
            self._inputs.remove(source)
            logger.debug(f"Analyser input disconnected: {source!r}")

    def pull(self, frames: int) -> np.ndarray:
        """Mix one block from every connected input and record it"""
        with self._lock:
            mix = np.zeros(frames, dtype=np.float32)
            for source in self._inputs:
                mix += source.render(frames)
            self.process(mix)
            return mix

    def process(self, data: np.ndarray):
        """Append a block of samples to the analysis window"""
        with self._lock:
            data = np.asarray(data, dtype=np.float32)
            if len(data) >= self.fft_size:
                self._time_buffer[:] = data[-self.fft_size:]
            else:
                self._time_buffer = np.roll(self._time_buffer, -len(data))
                self._time_buffer[-len(data):] = data

    def _update_spectrum(self) -> np.ndarray:
        with self._lock:
            windowed = self._time_buffer * self._window
        spectrum = np.fft.rfft(windowed)[:self.frequency_bin_count]
        magnitude = np.abs(spectrum) / self.fft_size

        tau = self.smoothing_time_constant
        self._smoothed = tau * self._smoothed + (1.0 - tau) * magnitude
        self._smoothed = np.nan_to_num(self._smoothed, nan=0.0, posinf=0.0, neginf=0.0)

        with np.errstate(divide='ignore'):
            return 20.0 * np.log10(self._smoothed)

    def get_float_frequency_data(self) -> np.ndarray:
        """Current smoothed magnitudes in dB, one value per frequency bin"""
        return self._update_spectrum()

    def get_byte_frequency_data(self) -> np.ndarray:
        """Current magnitudes scaled into 0..255, one value per frequency bin"""
        spec_db = self._update_spectrum()
        db_range = self.max_decibels - self.min_decibels
        scaled = np.floor(255.0 / db_range * (spec_db - self.min_decibels))
        scaled = np.nan_to_num(scaled, nan=0.0, posinf=255.0, neginf=0.0)
        return np.clip(scaled, 0, 255).astype(np.uint8)

    def get_byte_time_domain_data(self) -> np.ndarray:
        """Current waveform mapped from [-1, 1] onto 0..255 (128 is silence)"""
        with self._lock:
            data = self._time_buffer.copy()
        scaled = np.floor(128.0 * (data + 1.0))
        return np.clip(scaled, 0, 255).astype(np.uint8)


def _default_output_stream(**kwargs):
    # Imported lazily: PortAudio is only needed once audio actually starts
    import sounddevice as sd
    return sd.OutputStream(**kwargs)


class AudioEngine:
    """Owns the output stream and the single analyser node.

    One instance lives for the whole application and is handed to every
    component that needs the graph. The stream is created suspended and
    only starts producing audio once `ensure_active()` has resumed it.
    """

    def __init__(self, config: AudioConfig, stream_factory: Optional[Callable] = None):
        self.config = config
        self._stream_factory = stream_factory or _default_output_stream
        self._state = EngineState.UNINITIALIZED
        self._lock = threading.RLock()
        self._state_listeners: List[Callable[[EngineState], None]] = []
        self._bound_elements = []
        self.stream = None

        self.analyser = AnalyserNode(
            fft_size=config.fft_size,
            smoothing_time_constant=config.smoothing_time_constant,
            min_decibels=config.min_decibels,
            max_decibels=config.max_decibels
        )
        self.analyser.output_connected = True

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def sample_rate(self) -> int:
        return self.config.sample_rate

    def add_state_listener(self, callback: Callable[[EngineState], None]):
        self._state_listeners.append(callback)

    def _set_state(self, state: EngineState):
        if state is self._state:
            return
        logger.debug(f"Engine state: {self._state.value} -> {state.value}")
        self._state = state
        for callback in list(self._state_listeners):
            try:
                callback(state)
            except Exception as e:
                logger.error(f"Engine state listener failed: {e}")

    def open(self):
        """Create the output stream without starting it"""
        with self._lock:
            if self._state is EngineState.CLOSED:
                raise EngineClosed("Audio engine is closed")
            if self.stream is not None:
                return
            try:
                self.stream = self._stream_factory(
                    device=self.config.output_device_index,
                    channels=self.config.channels,
                    samplerate=self.config.sample_rate,
                    blocksize=self.config.block_size,
                    dtype=np.float32,
                    callback=self._audio_callback,
                    latency=self.config.latency
                )
            except Exception as e:
                logger.error(f"Error opening audio output: {e}")
                raise EngineUnavailable(f"Audio output could not be opened: {e}") from e
            self._set_state(EngineState.SUSPENDED)

    async def resume(self):
        """Start the output stream; blocks in a worker thread, not the caller"""
        if self._state is EngineState.CLOSED:
            raise EngineClosed("Audio engine is closed")
        if self.stream is None:
            self.open()
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.stream.start)
        self._set_state(EngineState.ACTIVE)

    async def ensure_active(self):
        """Resume the engine if needed; raises EngineUnavailable on failure"""
        logger.debug(f"Engine state before resume: {self._state.value}")
        if self._state is EngineState.CLOSED:
            raise EngineClosed("Audio engine is closed")
        if self._state is EngineState.UNINITIALIZED:
            self.open()
        if self._state is EngineState.SUSPENDED:
            try:
                await self.resume()
            except EngineClosed:
                raise
            except Exception as e:
                logger.error(f"Failed to resume audio engine: {e}")
                raise EngineUnavailable(f"Audio engine could not be resumed: {e}") from e
            logger.info("Audio engine resumed")

    def ensure_analysis_path(self):
        """(Re)connect the analyser to the output sink; safe to repeat"""
        if self._state is EngineState.CLOSED:
            raise EngineClosed("Analyser node is invalid or closed")
        self.analyser.output_connected = True

    def suspend(self):
        with self._lock:
            if self._state is not EngineState.ACTIVE:
                return
            self.stream.stop()
            self._set_state(EngineState.SUSPENDED)

    def close(self):
        """Tear down the stream; the engine cannot be reopened"""
        with self._lock:
            if self._state is EngineState.CLOSED:
                return
            if self.stream is not None:
                try:
                    self.stream.stop()
                    self.stream.close()
                except Exception as e:
                    logger.error(f"Error closing audio output: {e}")
                finally:
                    self.stream = None
            self.analyser.output_connected = False
            self._set_state(EngineState.CLOSED)

    def _check_open(self):
        if self._state is EngineState.CLOSED:
            raise EngineClosed("Audio engine is closed")

    def create_oscillator(self, waveform: str = 'sine', frequency: float = 440.0):
        self._check_open()
        return OscillatorSource(self.sample_rate, waveform, frequency)

    def create_buffer_source(self, buffer: np.ndarray, loop: bool = False):
        self._check_open()
        return BufferSource(self.sample_rate, buffer, loop=loop)

    def create_media_element_source(self, element):
        """Wrap a media element; each element can only be wrapped once"""
        self._check_open()
        with self._lock:
            if any(bound is element for bound in self._bound_elements):
                raise SourceAlreadyBound(f"Media element {element!r} is already bound to a source")
            # Only a successfully wrapped element counts as bound
            source = MediaElementSource(element)
            self._bound_elements.append(element)
        return source

    def release_media_element(self, element):
        with self._lock:
            self._bound_elements = [bound for bound in self._bound_elements if bound is not element]

    def is_element_bound(self, element) -> bool:
        with self._lock:
            return any(bound is element for bound in self._bound_elements)

    def render(self, frames: int) -> np.ndarray:
        """Produce one mono block of output from the analyser's inputs"""
        if not self.analyser.output_connected:
            return np.zeros(frames, dtype=np.float32)
        return self.analyser.pull(frames)

    def _audio_callback(self, outdata: np.ndarray, frames: int,
                        time_info, status) -> None:
        """Audio output callback pulling the graph"""
        if status:
            if getattr(status, 'output_underflow', False):
                logger.warning("Output underflow detected")
                if self.config.on_underflow:
                    self.config.on_underflow()
            logger.debug(f'Output callback status: {status}')

        try:
            block = self.render(frames) * self.config.output_volume
            np.clip(block.reshape(-1, 1), -1.0, 1.0, out=outdata[:, :1])
            if outdata.shape[1] > 1:
                outdata[:, 1:] = outdata[:, :1]
        except Exception as e:
            logger.error(f"Audio callback error: {e}")
            outdata.fill(0)
