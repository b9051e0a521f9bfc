# signal_source.py
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Union
import logging

from audio_sources import WAVEFORMS
from errors import (ActivationSuperseded, AudioError, EngineClosed, EngineUnavailable, InvalidParameter,
                    SourceActivationFailed)
from media import MediaStreamAdapter
from noise import NOISE_TYPES, NoiseGenerator

logger = logging.getLogger(__name__)


class SourceState(Enum):
    IDLE = 'idle'
    STARTING = 'starting'
    PLAYING = 'playing'


@dataclass(frozen=True)
class ToneSpec:
    frequency: float
    waveform: str = 'sine'


@dataclass(frozen=True)
class NoiseSpec:
    kind: str


@dataclass(frozen=True)
class MediaSpec:
    element: Any


SourceSpec = Union[ToneSpec, NoiseSpec, MediaSpec]


def validate_frequency(frequency) -> float:
    try:
        value = float(frequency)
    except (TypeError, ValueError):
        raise InvalidParameter(f"Invalid frequency value {frequency!r}. Must be a number greater than 0.") from None
    if not math.isfinite(value) or value <= 0:
        raise InvalidParameter(f"Invalid frequency value {frequency!r}. Must be a number greater than 0.")
    return value


class SignalSource:
    """Owns the single active producer feeding the analyser.

    Activating a new request retires the current producer first, so at most
    one producer is ever connected. Teardown errors are logged and
    swallowed; activation errors propagate and leave the source idle.
    """

    def __init__(self, engine, visualizer=None, noise_generator: Optional[NoiseGenerator] = None):
        self.engine = engine
        self.visualizer = visualizer
        self.noise_generator = noise_generator or NoiseGenerator(engine.config.noise_duration)
        self._state = SourceState.IDLE
        self._producer = None
        self._spec: Optional[SourceSpec] = None
        self._adapters = {}
        self._activation_id = 0
        self._state_listeners: List[Callable[[SourceState], None]] = []

    @property
    def state(self) -> SourceState:
        return self._state

    @property
    def producer(self):
        return self._producer

    @property
    def spec(self) -> Optional[SourceSpec]:
        return self._spec

    @property
    def is_playing(self) -> bool:
        return self._state is SourceState.PLAYING

    def add_state_listener(self, callback: Callable[[SourceState], None]):
        self._state_listeners.append(callback)

    def _set_state(self, state: SourceState):
        if state is self._state:
            return
        logger.debug(f"Source state: {self._state.value} -> {state.value}")
        self._state = state
        for callback in list(self._state_listeners):
            try:
                callback(state)
            except Exception as e:
                logger.error(f"Source state listener failed: {e}")

    def adapter_for(self, element) -> MediaStreamAdapter:
        """The adapter wrapping `element`, created on first request"""
        key = id(element)
        adapter = self._adapters.get(key)
        if adapter is None or adapter.element is not element:
            adapter = MediaStreamAdapter(self.engine, element)
            self._adapters[key] = adapter
        return adapter

    def _validate(self, spec: SourceSpec) -> SourceSpec:
        if isinstance(spec, ToneSpec):
            frequency = validate_frequency(spec.frequency)
            if spec.waveform not in WAVEFORMS:
                raise InvalidParameter(f"Waveform selection is missing or unknown: {spec.waveform!r}")
            return ToneSpec(frequency, spec.waveform)
        if isinstance(spec, NoiseSpec):
            if spec.kind not in NOISE_TYPES:
                raise InvalidParameter(f"Noise type selection is missing or unknown: {spec.kind!r}")
            return spec
        if isinstance(spec, MediaSpec):
            if spec.element is None:
                raise InvalidParameter("No audio player element was provided")
            if not getattr(spec.element, 'src', ''):
                raise InvalidParameter("Audio player has no source loaded")
            return spec
        raise InvalidParameter(f"Unsupported source request: {spec!r}")

    async def activate(self, spec: SourceSpec):
        """Replace the active producer with one built from `spec`"""
        spec = self._validate(spec)

        self.stop()
        activation_id = self._activation_id
        self._set_state(SourceState.STARTING)

        try:
            await self.engine.ensure_active()
            self.engine.ensure_analysis_path()
        except (EngineUnavailable, EngineClosed):
            if activation_id == self._activation_id:
                self._set_state(SourceState.IDLE)
            raise

        if activation_id != self._activation_id:
            raise ActivationSuperseded("Activation was superseded by a newer request")

        producer = None
        try:
            producer = self._build_producer(spec)
            producer.connect(self.engine.analyser)
            producer.start()
        except Exception as e:
            self._discard(producer)
            self._set_state(SourceState.IDLE)
            if isinstance(e, AudioError):
                raise
            raise SourceActivationFailed(f"{type(e).__name__}: {e}", cause=e) from e

        self._producer = producer
        self._spec = spec
        self._set_state(SourceState.PLAYING)
        logger.info(f"Source started: {producer!r}")

        if self.visualizer is not None:
            self.visualizer.start(self.visualizer.mode)
        return producer

    def _build_producer(self, spec: SourceSpec):
        if isinstance(spec, ToneSpec):
            return self.engine.create_oscillator(spec.waveform, spec.frequency)
        if isinstance(spec, NoiseSpec):
            buffer = self.noise_generator.generate(self.engine.sample_rate, spec.kind)
            return self.engine.create_buffer_source(buffer, loop=True)
        return self.adapter_for(spec.element).producer()

    def _discard(self, producer):
        """Undo a partially activated producer"""
        if producer is None:
            return
        if producer.is_connected:
            try:
                producer.disconnect()
            except Exception as e:
                logger.error(f"Error disconnecting failed producer: {e}")
        if producer.reusable:
            try:
                producer.stop()
            except Exception as e:
                logger.error(f"Error stopping failed producer: {e}")

    def stop(self):
        """Halt and disconnect the active producer; no-op when idle"""
        # Invalidates any activation still waiting on the engine
        self._activation_id += 1
        producer, self._producer = self._producer, None
        self._spec = None
        if producer is None:
            self._set_state(SourceState.IDLE)
            return

        try:
            producer.disconnect(self.engine.analyser)
        except Exception as e:
            logger.error(f"Error disconnecting {producer!r}: {e}")
        try:
            producer.stop()
        except Exception as e:
            logger.error(f"Error stopping {producer!r}: {e}")

        self._set_state(SourceState.IDLE)
        logger.info(f"Source stopped: {producer!r}")

    def reset_media(self, element=None):
        """Release the media binding(s) so new media can be bound"""
        if self._spec is not None and isinstance(self._spec, MediaSpec):
            if element is None or self._spec.element is element:
                self.stop()

        if element is None:
            adapters = list(self._adapters.values())
            self._adapters.clear()
        else:
            adapter = self._adapters.pop(id(element), None)
            adapters = [adapter] if adapter is not None else []

        for adapter in adapters:
            adapter.reset()
