# controller.py
from typing import Callable, Optional
import logging

from config import AudioConfig
from engine import AudioEngine, EngineState
from errors import ActivationSuperseded, InvalidParameter, describe_error
from signal_source import MediaSpec, NoiseSpec, SignalSource, ToneSpec
from visualizer import DrawingSurface, FrameScheduler, VisualizationLoop, VisualizationMode

logger = logging.getLogger(__name__)


class AudioController:
    """Composition root for the signal chain.

    Builds the engine, the visualization loop and the signal source once
    and exposes the operations the UI drives. Every error that reaches the
    caller is first turned into a single `notify(title, message)` call.
    """

    def __init__(self, config: AudioConfig, surface: DrawingSurface, scheduler: FrameScheduler,
                 notify: Optional[Callable[[str, str], None]] = None,
                 stream_factory: Optional[Callable] = None,
                 clock: Optional[Callable[[], float]] = None):
        self.config = config
        self.notify = notify
        self.engine = AudioEngine(config, stream_factory=stream_factory)
        self.visualizer = VisualizationLoop(
            self.engine.analyser, surface, scheduler,
            mode=config.visualizer_mode,
            bar_color=config.bar_color,
            on_error=self._on_render_error,
            clock=clock
        )
        self.source = SignalSource(self.engine, self.visualizer)
        self.engine.add_state_listener(self._on_engine_state)

    def _report(self, error: Exception):
        title, message = describe_error(error)
        logger.error(f"{title}: {message}")
        if self.notify:
            self.notify(title, message)

    def _on_render_error(self, error: Exception):
        self._report(error)

    def _on_engine_state(self, state: EngineState):
        logger.info(f"Audio engine state: {state.value}")
        if state is EngineState.SUSPENDED and self.source.is_playing:
            if self.notify:
                self.notify("Audio Suspended", "Audio is suspended. Please interact with the application to enable sound.")

    async def _activate(self, spec):
        try:
            return await self.source.activate(spec)
        except ActivationSuperseded as e:
            # The newer request reports its own outcome
            logger.info(f"Activation dropped: {e}")
            raise
        except Exception as e:
            self._report(e)
            raise

    async def activate_tone(self, frequency: float, waveform: str = 'sine'):
        logger.info(f"Playing tone: {frequency} Hz, {waveform}")
        return await self._activate(ToneSpec(frequency, waveform))

    async def activate_noise(self, kind: str):
        logger.info(f"Playing {kind} noise")
        return await self._activate(NoiseSpec(kind))

    async def activate_media(self, element):
        logger.info(f"Playing media: {getattr(element, 'src', None)!r}")
        return await self._activate(MediaSpec(element))

    def stop_source(self):
        self.source.stop()

    def reset_media(self, element=None):
        self.source.reset_media(element)

    def set_visualization_mode(self, mode):
        """Switch the drawing strategy; only runs while a source is playing"""
        try:
            mode = VisualizationMode.parse(mode)
        except InvalidParameter as e:
            self._report(e)
            raise
        self.config.visualizer_mode = mode.value
        if self.source.is_playing or mode is VisualizationMode.NONE:
            self.visualizer.start(mode)
        else:
            self.visualizer.mode = mode
            self.visualizer.cancel()

    def stop_visualization(self, clear: bool = False):
        self.visualizer.stop(clear=clear)

    def set_bar_color(self, color: str):
        try:
            self.visualizer.set_bar_color(color)
        except ValueError as e:
            error = InvalidParameter(str(e))
            self._report(error)
            raise error from e
        self.config.bar_color = color

    def suspend(self):
        self.engine.suspend()

    def close(self):
        """Stop everything and shut the engine down"""
        self.visualizer.stop()
        self.source.stop()
        self.engine.close()
