import asyncio
from types import SimpleNamespace

import numpy as np
import pytest

from engine import AnalyserNode, AudioEngine, EngineState
from errors import EngineClosed, EngineUnavailable, SourceAlreadyBound


def test_engine_starts_uninitialized(engine):
    assert engine.state is EngineState.UNINITIALIZED
    assert engine.stream is None
    assert engine.analyser.frequency_bin_count == 1024


def test_ensure_active_opens_and_resumes(engine, stream_factory, config):
    states = []
    engine.add_state_listener(states.append)

    asyncio.run(engine.ensure_active())

    assert engine.state is EngineState.ACTIVE
    assert states == [EngineState.SUSPENDED, EngineState.ACTIVE]
    stream = stream_factory.streams[0]
    assert stream.active
    assert stream.kwargs['samplerate'] == config.sample_rate
    assert stream.kwargs['channels'] == 1
    assert stream.kwargs['callback'] == engine._audio_callback


def test_ensure_active_is_a_no_op_when_active(engine, stream_factory):
    asyncio.run(engine.ensure_active())
    asyncio.run(engine.ensure_active())

    assert len(stream_factory.streams) == 1
    assert stream_factory.streams[0].start_calls == 1


def test_resume_failure_raises_engine_unavailable(engine, stream_factory):
    stream_factory.fail_start = True

    with pytest.raises(EngineUnavailable):
        asyncio.run(engine.ensure_active())
    assert engine.state is EngineState.SUSPENDED

    # A later user gesture can still resume it
    stream_factory.fail_start = False
    asyncio.run(engine.ensure_active())
    assert engine.state is EngineState.ACTIVE


def test_missing_output_device_raises_engine_unavailable(engine, stream_factory):
    stream_factory.fail_open = True

    with pytest.raises(EngineUnavailable):
        asyncio.run(engine.ensure_active())
    assert engine.state is EngineState.UNINITIALIZED


def test_suspend_and_resume(engine, stream_factory):
    asyncio.run(engine.ensure_active())

    engine.suspend()
    assert engine.state is EngineState.SUSPENDED
    assert not stream_factory.streams[0].active

    asyncio.run(engine.ensure_active())
    assert engine.state is EngineState.ACTIVE


def test_close_is_terminal(engine, stream_factory):
    asyncio.run(engine.ensure_active())
    engine.close()

    assert engine.state is EngineState.CLOSED
    assert stream_factory.streams[0].closed
    assert not engine.analyser.output_connected
    with pytest.raises(EngineClosed):
        asyncio.run(engine.ensure_active())
    with pytest.raises(EngineClosed):
        engine.ensure_analysis_path()
    with pytest.raises(EngineClosed):
        engine.create_oscillator('sine', 440.0)

    # Closing twice is harmless
    engine.close()


def test_ensure_analysis_path_is_idempotent(engine):
    engine.analyser.output_connected = False

    engine.ensure_analysis_path()
    engine.ensure_analysis_path()

    assert engine.analyser.output_connected


def test_failing_state_listener_does_not_break_engine(engine):
    def broken(state):
        raise RuntimeError("listener bug")

    seen = []
    engine.add_state_listener(broken)
    engine.add_state_listener(seen.append)

    asyncio.run(engine.ensure_active())

    assert seen[-1] is EngineState.ACTIVE


def test_media_element_can_only_be_bound_once(engine):
    element = SimpleNamespace(sample_rate=8000, src='a.wav', playing=False)

    engine.create_media_element_source(element)
    assert engine.is_element_bound(element)
    with pytest.raises(SourceAlreadyBound):
        engine.create_media_element_source(element)

    engine.release_media_element(element)
    assert not engine.is_element_bound(element)
    engine.create_media_element_source(element)


def test_render_mixes_connected_producers(engine):
    oscillator = engine.create_oscillator('square', 100.0)
    oscillator.connect(engine.analyser)

    assert np.all(engine.render(256) == 0)

    oscillator.start()
    block = engine.render(256)
    assert set(np.unique(block)) <= {-1.0, 1.0}


def test_audio_callback_writes_clipped_output(engine, config):
    underflows = []
    config.on_underflow = lambda: underflows.append(True)
    config.output_volume = 0.5
    oscillator = engine.create_oscillator('square', 100.0)
    oscillator.connect(engine.analyser)
    oscillator.start()
    outdata = np.zeros((256, 1), dtype=np.float32)

    engine._audio_callback(outdata, 256, None, SimpleNamespace(output_underflow=True))

    assert underflows == [True]
    assert np.allclose(np.abs(outdata), 0.5)


def test_audio_callback_outputs_silence_when_disconnected(engine):
    oscillator = engine.create_oscillator('sine', 440.0)
    oscillator.connect(engine.analyser)
    oscillator.start()
    engine.analyser.output_connected = False
    outdata = np.ones((128, 2), dtype=np.float32)

    engine._audio_callback(outdata, 128, None, None)

    assert np.all(outdata == 0)


class TestAnalyserNode:
    def test_rejects_bad_fft_size(self):
        with pytest.raises(ValueError):
            AnalyserNode(fft_size=1000)
        with pytest.raises(ValueError):
            AnalyserNode(fft_size=16)

    def test_rejects_inverted_decibel_range(self):
        with pytest.raises(ValueError):
            AnalyserNode(min_decibels=-30, max_decibels=-100)

    def test_silence_gives_zero_bytes(self):
        analyser = AnalyserNode()
        analyser.process(np.zeros(2048, dtype=np.float32))

        data = analyser.get_byte_frequency_data()

        assert data.dtype == np.uint8
        assert len(data) == 1024
        assert np.all(data == 0)
        assert np.all(analyser.get_byte_time_domain_data() == 128)

    def test_sine_peaks_at_its_frequency_bin(self, engine, config):
        oscillator = engine.create_oscillator('sine', 440.0)
        oscillator.connect(engine.analyser)
        oscillator.start()
        engine.render(2048)
        expected_bin = 440.0 * 2048 / config.sample_rate

        db = engine.analyser.get_float_frequency_data()
        assert abs(int(np.argmax(db)) - expected_bin) <= 1

        for _ in range(20):
            data = engine.analyser.get_byte_frequency_data()
        assert data[int(round(expected_bin))] == 255
        assert np.median(data) < 10

    def test_smoothing_decays_after_silence(self):
        analyser = AnalyserNode(smoothing_time_constant=0.8)
        t = np.arange(2048) / 8000
        analyser.process(np.sin(2 * np.pi * 1000 * t))
        loud = analyser.get_float_frequency_data().max()

        analyser.process(np.zeros(2048))
        first_quiet = analyser.get_float_frequency_data().max()
        second_quiet = analyser.get_float_frequency_data().max()

        # Smoothing keeps the previous snapshot alive while it decays
        assert second_quiet < first_quiet
        assert first_quiet > loud - 20

    def test_short_blocks_slide_the_window(self):
        analyser = AnalyserNode(fft_size=32)
        analyser.process(np.ones(16))
        analyser.process(-np.ones(16))

        data = analyser.get_byte_time_domain_data()

        assert np.all(data[:16] == 255)
        assert np.all(data[16:] == 0)

    def test_disconnecting_unknown_input_raises(self):
        analyser = AnalyserNode()
        with pytest.raises(ValueError):
            analyser.disconnect_input(object())


def test_engine_uses_configured_analyser(config, stream_factory):
    config.fft_size = 512
    config.smoothing_time_constant = 0.0

    engine = AudioEngine(config, stream_factory=stream_factory)

    assert engine.analyser.frequency_bin_count == 256
    assert engine.analyser.smoothing_time_constant == 0.0
