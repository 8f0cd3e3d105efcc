"""
Test AudioEngine without a sound card
Backend is faked; OSC handlers are called directly
"""

import sys
import types
from pathlib import Path

import numpy as np
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dimension_chorus import DimensionChorus
from dimension_chorus.engine import (AudioBackend, AudioEngine, EngineState,
                                     OSCController, SoundDeviceBackend)
from dimension_chorus.errors import ConfigurationError, InitializationError

SR = 8000
BUFFER = 64
TAU_SAMPLES = 80  # 10ms at 8kHz


class FakeBackend(AudioBackend):

    def __init__(self, fail=False):
        self.fail = fail
        self.started = False

    def start(self):
        if self.fail:
            raise InitializationError("no device")
        self.started = True
        return True

    def stop(self):
        self.started = False
        return True

    def get_metrics(self):
        return {
            'xrun_count': 0,
            'total_buffers': 3,
            'callback_min_us': 10.0,
            'callback_mean_us': 20.0,
            'callback_max_us': 30.0,
        }


def make_engine(fail=False):
    chorus = DimensionChorus(sample_rate=SR, buffer_size=BUFFER)
    return AudioEngine(backend=FakeBackend(fail), chorus=chorus, enable_osc=False)


def device_block(values):
    return np.asarray(values, dtype=np.float32).reshape(-1, 1)


class TestAudioEngine:

    def setup_method(self):
        self.engine = make_engine()

    def test_lifecycle(self):
        assert self.engine.state == EngineState.STOPPED
        assert self.engine.start()
        assert self.engine.state == EngineState.RUNNING
        assert self.engine.backend.started

        # Already running
        assert not self.engine.start()

        assert self.engine.stop()
        assert self.engine.state == EngineState.STOPPED
        assert not self.engine.backend.started
        assert not self.engine.stop()

    def test_start_failure_tears_down(self):
        engine = make_engine(fail=True)
        with pytest.raises(InitializationError):
            engine.start()
        assert engine.state == EngineState.ERROR
        assert engine.chorus.signal_router.router.nodes == {}
        assert not engine.start()

    def test_process_audio_writes_output(self):
        self.engine.chorus.toggle_mode(0)
        self.engine.chorus.process(np.zeros(SR))  # let the mix settle
        indata = device_block(np.linspace(-0.5, 0.5, BUFFER))
        outdata = np.zeros((BUFFER, 1), dtype=np.float32)

        self.engine._process_audio(indata, outdata, BUFFER)

        np.testing.assert_allclose(outdata[:, 0], indata[:, 0], atol=1e-6)

    def test_toggle_counts(self):
        assert self.engine.toggle_mode(2) == (1, 2)
        with pytest.raises(ConfigurationError):
            self.engine.toggle_mode(9)

        assert self.engine.stats.toggles_received == 2
        assert self.engine.stats.toggles_rejected == 1
        assert self.engine.get_active_mode_ids() == (1, 2)

    def test_status(self):
        self.engine.start()
        self.engine.toggle_mode(2)
        status = self.engine.get_status()
        self.engine.stop()

        assert status.state == EngineState.RUNNING
        assert status.active_modes == (1, 2)
        assert status.wet_target == pytest.approx(0.35)
        assert status.dry_target == pytest.approx(0.825)
        # Nothing rendered since the toggle: still at the old level
        assert status.wet == pytest.approx(0.3)
        assert status.dry == pytest.approx(0.85)
        assert status.callback_mean_ms == pytest.approx(0.02)
        text = str(status)
        assert "Modes: 1, 2" in text
        assert "no xruns" in text

    def test_status_reports_live_levels(self):
        self.engine.toggle_mode(0)
        self.engine.chorus.process(np.zeros(TAU_SAMPLES))
        status = self.engine.get_status()

        # One time constant into the fade towards fully dry
        assert status.wet_target == 0.0
        assert status.wet == pytest.approx(0.3 * np.exp(-1.0))
        assert status.dry == pytest.approx(1.0 - 0.15 * np.exp(-1.0))

    def test_status_when_stopped(self):
        self.engine.toggle_mode(0)
        assert str(self.engine.get_status()) == "State: STOPPED\nModes: OFF"

    def test_recording(self, tmp_path):
        from scipy.io import wavfile

        path = str(tmp_path / "take.wav")
        self.engine.start_recording(path)
        assert self.engine.recording

        outdata = np.zeros((BUFFER, 1), dtype=np.float32)
        for _ in range(4):
            self.engine._process_audio(device_block(np.full(BUFFER, 0.25)), outdata, BUFFER)

        assert self.engine.stop_recording() == path
        assert not self.engine.recording

        rate, data = wavfile.read(path)
        assert rate == SR
        assert data.dtype == np.int16
        assert len(data) == 4 * BUFFER

    def test_recording_swaps_buffer_before_writing(self, tmp_path, monkeypatch):
        captured = []
        real_concatenate = np.concatenate

        def concatenate(blocks, *args, **kwargs):
            captured.append(blocks is self.engine.record_buffer)
            return real_concatenate(blocks, *args, **kwargs)

        self.engine.start_recording(str(tmp_path / "swap.wav"))
        outdata = np.zeros((BUFFER, 1), dtype=np.float32)
        self.engine._process_audio(device_block(np.zeros(BUFFER)), outdata, BUFFER)

        monkeypatch.setattr(np, "concatenate", concatenate)
        self.engine.stop_recording()

        # Blocks were detached from the live buffer before joining
        assert captured and captured[0] is False
        assert self.engine.record_buffer == []

    def test_recording_edge_cases(self, capsys):
        assert self.engine.stop_recording() is None
        self.engine.start_recording("unused.wav")
        self.engine.start_recording("other.wav")
        assert self.engine.record_filename == "unused.wav"
        # Nothing rendered, nothing written
        assert self.engine.stop_recording() is None

        output = capsys.readouterr().out
        assert "[RECORD] Not recording" in output
        assert "[RECORD] Already recording" in output
        assert "[RECORD] No audio recorded" in output


class TestOSCController:

    def setup_method(self):
        self.engine = make_engine()
        self.osc = OSCController(self.engine, "127.0.0.1", 0)

    def test_dispatcher_routes(self):
        disp = self.osc.setup_dispatcher()
        for address in ("/chorus/mode", "/chorus/off", "/chorus/status",
                        "/record/start", "/record/stop", "/record/status"):
            assert list(disp.handlers_for_address(address))

    def test_mode(self):
        self.osc.handle_mode("/chorus/mode", 3)
        assert self.engine.get_active_mode_ids() == (1, 3)

    def test_mode_float_argument(self):
        self.osc.handle_mode("/chorus/mode", 4.0)
        assert self.engine.get_active_mode_ids() == (1, 4)

    def test_invalid_mode_is_rejected(self, capsys):
        self.osc.handle_mode("/chorus/mode", 7)
        self.osc.handle_mode("/chorus/mode", 1.5)
        self.osc.handle_mode("/chorus/mode")

        assert self.engine.get_active_mode_ids() == (1,)
        assert self.engine.stats.toggles_rejected == 2
        assert "[OSC] Rejected" in capsys.readouterr().out

    def test_record_start_filename(self):
        self.osc.handle_record_start("/record/start", "take.wav")
        assert self.engine.recording
        assert self.engine.record_filename == "take.wav"
        self.engine.stop_recording()

    def test_record_start_rejects_non_string(self, capsys):
        self.osc.handle_record_start("/record/start", 5)
        assert not self.engine.recording
        assert self.engine.record_filename is None
        assert "[OSC] Rejected" in capsys.readouterr().out

    def test_off(self):
        self.osc.handle_off("/chorus/off")
        assert self.engine.get_active_mode_ids() == ()

    def test_status(self, capsys):
        self.osc.handle_status("/chorus/status")
        assert "State: STOPPED" in capsys.readouterr().out


class FakePortAudioError(Exception):
    pass


def fake_sounddevice(stream_factory):
    return types.SimpleNamespace(
        PortAudioError=FakePortAudioError,
        Stream=stream_factory,
        query_devices=lambda: [{'name': 'fake'}],
        default=types.SimpleNamespace(device=(0, 0)),
    )


class FakeStream:

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.started = False
        self.closed = False

    def start(self):
        self.started = True

    def stop(self):
        self.started = False

    def close(self):
        self.closed = True


class TestSoundDeviceBackend:

    def test_opens_mono_duplex_stream(self, monkeypatch):
        streams = []

        def factory(**kwargs):
            streams.append(FakeStream(**kwargs))
            return streams[-1]

        monkeypatch.setitem(sys.modules, "sounddevice", fake_sounddevice(factory))
        backend = SoundDeviceBackend(lambda i, o, f: None, sample_rate=SR, buffer_size=BUFFER)

        assert backend.start()
        stream = streams[0]
        assert stream.started
        assert stream.kwargs['channels'] == 1
        assert stream.kwargs['samplerate'] == SR
        assert stream.kwargs['blocksize'] == BUFFER

        assert backend.stop()
        assert stream.closed
        assert backend.stream is None

    def test_device_failure(self, monkeypatch):
        def factory(**kwargs):
            raise FakePortAudioError("Error opening Stream: device unavailable")

        monkeypatch.setitem(sys.modules, "sounddevice", fake_sounddevice(factory))
        backend = SoundDeviceBackend(lambda i, o, f: None, sample_rate=SR, buffer_size=BUFFER)

        with pytest.raises(InitializationError):
            backend.start()
        assert backend.stream is None

    def test_callback_metrics(self):
        calls = []
        backend = SoundDeviceBackend(lambda i, o, f: calls.append(f),
                                     sample_rate=SR, buffer_size=BUFFER)
        ok = types.SimpleNamespace(input_overflow=False, output_underflow=False)
        xrun = types.SimpleNamespace(input_overflow=True, output_underflow=False)

        backend._audio_callback(None, None, BUFFER, None, ok)
        backend._audio_callback(None, None, BUFFER, None, xrun)

        metrics = backend.get_metrics()
        assert calls == [BUFFER, BUFFER]
        assert metrics['total_buffers'] == 2
        assert metrics['xrun_count'] == 1
        assert metrics['callback_max_us'] >= metrics['callback_min_us']
