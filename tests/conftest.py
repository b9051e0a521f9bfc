import numpy as np
import pytest

from config import AudioConfig
from engine import AudioEngine
from signal_source import SignalSource
from visualizer import DrawingSurface, FrameScheduler, VisualizationLoop


class FakeOutputStream:
    """Stands in for sounddevice.OutputStream"""

    def __init__(self, factory, **kwargs):
        self.factory = factory
        self.kwargs = kwargs
        self.active = False
        self.closed = False
        self.start_calls = 0

    def start(self):
        self.start_calls += 1
        if self.factory.fail_start:
            raise RuntimeError("host refused to start audio")
        self.active = True

    def stop(self):
        self.active = False

    def close(self):
        self.closed = True


class FakeStreamFactory:
    def __init__(self):
        self.fail_start = False
        self.fail_open = False
        self.streams = []

    def __call__(self, **kwargs):
        if self.fail_open:
            raise OSError("no output device")
        stream = FakeOutputStream(self, **kwargs)
        self.streams.append(stream)
        return stream


class ManualFrameScheduler(FrameScheduler):
    """Frames only fire when the test calls run_frame()"""

    def __init__(self):
        self._next_handle = 0
        self.pending = {}
        self.cancelled = []

    def request_frame(self, callback):
        self._next_handle += 1
        self.pending[self._next_handle] = callback
        return self._next_handle

    def cancel_frame(self, handle):
        self.pending.pop(handle, None)
        self.cancelled.append(handle)

    def run_frame(self) -> int:
        callbacks = list(self.pending.values())
        self.pending.clear()
        for callback in callbacks:
            callback()
        return len(callbacks)


class RecordingSurface(DrawingSurface):
    def __init__(self, width=800, height=400):
        self.width = width
        self.height = height
        self.calls = []
        self.frames = 0
        self.fail = False

    def begin_frame(self):
        self.frames += 1

    def clear(self):
        self.calls.append(('clear',))

    def fill_rect(self, x, y, width, height, color):
        if self.fail:
            raise RuntimeError("drawing surface lost")
        self.calls.append(('rect', x, y, width, height, color))

    def fill_circle(self, x, y, radius, color):
        self.calls.append(('circle', x, y, radius, color))

    def of_kind(self, kind):
        return [call for call in self.calls if call[0] == kind]


class FakeAnalyser:
    def __init__(self, data=None):
        self.data = np.zeros(1024, dtype=np.uint8) if data is None else data
        self.reads = 0

    def get_byte_frequency_data(self):
        self.reads += 1
        return self.data


@pytest.fixture
def config():
    return AudioConfig(sample_rate=8000, block_size=256)


@pytest.fixture
def stream_factory():
    return FakeStreamFactory()


@pytest.fixture
def engine(config, stream_factory):
    return AudioEngine(config, stream_factory=stream_factory)


@pytest.fixture
def scheduler():
    return ManualFrameScheduler()


@pytest.fixture
def surface():
    return RecordingSurface()


@pytest.fixture
def visualizer(engine, surface, scheduler):
    return VisualizationLoop(engine.analyser, surface, scheduler, clock=lambda: 0.0)


@pytest.fixture
def source(engine, visualizer):
    return SignalSource(engine, visualizer)
