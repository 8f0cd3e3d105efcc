#!/usr/bin/env python3
"""
Audio Engine for Dimension Chorus
Full-duplex mono stream through the chorus, with OSC mode control,
recording and runtime metrics
"""

import time
import numpy as np
import os
import array
import psutil
import threading
import asyncio
import datetime
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Tuple
from enum import Enum

# OSC imports
from pythonosc import dispatcher
from pythonosc.osc_server import AsyncIOOSCUDPServer

from .chorus import DimensionChorus
from .config import SAMPLE_RATE, BUFFER_SIZE, CHANNELS, OSC_HOST, OSC_PORT, VERBOSE
from .errors import ConfigurationError, InitializationError


class ControlStats:
    """
    Counters shared between the OSC thread and the status reader.
    GIL provides atomicity for Python primitives
    """
    def __init__(self):
        self.toggles_received = 0
        self.toggles_rejected = 0
        self.last_toggle_timestamp = 0.0


class EngineState(Enum):
    STOPPED = "STOPPED"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"
    ERROR = "ERROR"


@dataclass
class EngineMetrics:
    """Metrics collected from audio engine"""
    state: EngineState
    uptime_seconds: float
    total_buffers: int
    xrun_count: int
    callback_min_ms: float
    callback_mean_ms: float
    callback_max_ms: float
    cpu_percent: float
    active_modes: Tuple[int, ...]
    wet: float
    dry: float
    wet_target: float
    dry_target: float
    toggles_received: int
    toggles_rejected: int
    recording: bool

    def __str__(self):
        modes = ', '.join(str(m) for m in self.active_modes) or 'OFF'
        if self.state == EngineState.RUNNING:
            return (
                f"State: {self.state.value}\n"
                f"Uptime: {self.uptime_seconds:.1f}s\n"
                f"Modes: {modes} (wet={self.wet:.3f}->{self.wet_target:.3f}, "
                f"dry={self.dry:.3f}->{self.dry_target:.3f})\n"
                f"Buffers: {self.total_buffers} "
                f"({'no xruns' if self.xrun_count == 0 else f'{self.xrun_count} xruns'})\n"
                f"Callback: min={self.callback_min_ms:.2f}ms "
                f"mean={self.callback_mean_ms:.2f}ms "
                f"max={self.callback_max_ms:.2f}ms\n"
                f"Toggles: {self.toggles_received} received, "
                f"{self.toggles_rejected} rejected\n"
                f"Recording: {'yes' if self.recording else 'no'}\n"
                f"CPU: {self.cpu_percent:.1f}%"
            )
        else:
            return f"State: {self.state.value}\nModes: {modes}"


class AudioBackend(ABC):
    """
    Abstract interface for audio backends
    Lets tests drive the engine without a sound card
    """

    @abstractmethod
    def start(self) -> bool:
        """Start audio stream; raises InitializationError on failure"""
        pass

    @abstractmethod
    def stop(self) -> bool:
        """Stop audio stream"""
        pass

    @abstractmethod
    def get_metrics(self) -> dict:
        """Get backend-specific metrics"""
        pass


class SoundDeviceBackend(AudioBackend):
    """
    Sounddevice full-duplex backend: mono capture in, mono playback out
    """

    def __init__(self, callback_func, sample_rate=SAMPLE_RATE, buffer_size=BUFFER_SIZE, channels=CHANNELS):
        self.callback_func = callback_func
        self.sample_rate = sample_rate
        self.buffer_size = buffer_size
        self.channels = channels
        self.stream = None

        # Metrics (using array for lock-free access from callback)
        # [0] = xrun_count
        # [1] = total_buffers
        # [2] = last_callback_us
        # [3] = min_callback_us (initialized to large value)
        # [4] = max_callback_us
        # [5] = sum_callback_us (for mean calculation)
        self.metrics = array.array('d', [0.0, 0.0, 0.0, 1000000.0, 0.0, 0.0])

        # Set PulseAudio environment only if explicitly configured
        pulse_server = os.environ.get('CHORUS_PULSE_SERVER')
        if pulse_server and 'PULSE_SERVER' not in os.environ:
            os.environ['PULSE_SERVER'] = pulse_server

    def _audio_callback(self, indata, outdata, frames, time_info, status):
        """
        Sounddevice callback - runs in audio thread
        NO allocations, NO syscalls, NO locks!
        """
        callback_start = time.perf_counter()

        if status.input_overflow or status.output_underflow:
            self.metrics[0] += 1  # xrun_count

        self.callback_func(indata, outdata, frames)

        # Update metrics (lock-free array access)
        callback_time_us = (time.perf_counter() - callback_start) * 1000000
        self.metrics[1] += 1  # total_buffers
        self.metrics[2] = callback_time_us  # last_callback_us
        self.metrics[3] = min(self.metrics[3], callback_time_us)  # min_callback_us
        self.metrics[4] = max(self.metrics[4], callback_time_us)  # max_callback_us
        self.metrics[5] += callback_time_us  # sum_callback_us

    def start(self) -> bool:
        """Open and start the duplex stream"""
        try:
            import sounddevice as sd
        except OSError as e:
            raise InitializationError(f"PortAudio library not available: {e}") from e

        # Reset metrics
        self.metrics[0] = 0
        self.metrics[1] = 0
        self.metrics[2] = 0
        self.metrics[3] = 1000000
        self.metrics[4] = 0
        self.metrics[5] = 0

        stream = None
        try:
            if VERBOSE:
                devices = sd.query_devices()
                print(f"[ENGINE] Input device: {devices[sd.default.device[0]]['name']}")
                print(f"[ENGINE] Output device: {devices[sd.default.device[1]]['name']}")

            stream = sd.Stream(
                samplerate=self.sample_rate,
                blocksize=self.buffer_size,
                channels=self.channels,
                dtype='float32',
                latency='low',
                callback=self._audio_callback
            )
            stream.start()
        except (sd.PortAudioError, OSError, ValueError) as e:
            if stream is not None:
                stream.close()
            raise InitializationError(f"Failed to open audio device: {e}") from e

        self.stream = stream
        return True

    def stop(self) -> bool:
        """Stop the audio stream"""
        if self.stream is None:
            return True
        try:
            self.stream.stop()
            self.stream.close()
        except OSError as e:
            print(f"[ENGINE] Error stopping audio stream: {e}")
            return False
        finally:
            self.stream = None
        return True

    def get_metrics(self) -> dict:
        """Get backend metrics"""
        total_buffers = int(self.metrics[1])
        mean_callback = 0.0
        if total_buffers > 0:
            mean_callback = self.metrics[5] / total_buffers

        return {
            'xrun_count': int(self.metrics[0]),
            'total_buffers': total_buffers,
            'callback_min_us': self.metrics[3] if total_buffers else 0.0,
            'callback_mean_us': mean_callback,
            'callback_max_us': self.metrics[4]
        }


class OSCController:
    """
    OSC server for mode control
    Runs in separate thread with AsyncIO
    """

    def __init__(self, engine: 'AudioEngine', host: str = OSC_HOST, port: int = OSC_PORT):
        self.engine = engine
        self.host = host
        self.port = port
        self.server = None
        self.transport = None
        self.loop = None
        self.thread = None
        self._stop_event = threading.Event()

    def setup_dispatcher(self):
        """Create OSC message dispatcher"""
        disp = dispatcher.Dispatcher()

        disp.map("/chorus/mode", self.handle_mode)
        disp.map("/chorus/off", self.handle_off)
        disp.map("/chorus/status", self.handle_status)
        disp.map("/record/start", self.handle_record_start)
        disp.map("/record/stop", self.handle_record_stop)
        disp.map("/record/status", self.handle_record_status)

        return disp

    def handle_mode(self, address, *args):
        """OSC handler for /chorus/mode <id>"""
        if len(args) < 1:
            print(f"[OSC] {address} needs a mode id")
            return

        mode_id = args[0]
        # Some clients only send floats
        if isinstance(mode_id, float) and mode_id.is_integer():
            mode_id = int(mode_id)

        try:
            active = self.engine.toggle_mode(mode_id)
        except ConfigurationError as e:
            print(f"[OSC] Rejected {address} {args[0]!r}: {e}")
            return

        if VERBOSE:
            print(f"[OSC] {address} {mode_id} -> active={list(active)}")

    def handle_off(self, address, *args):
        """OSC handler for /chorus/off"""
        self.engine.toggle_mode(0)

    def handle_status(self, address, *args):
        """OSC handler for /chorus/status"""
        print(self.engine.get_status())

    def handle_record_start(self, address, *args):
        """OSC handler for /record/start [filename]"""
        filename = args[0] if args else None
        if filename is not None and not isinstance(filename, str):
            print(f"[OSC] Rejected {address} {filename!r}: filename must be a string")
            return
        self.engine.start_recording(filename)

    def handle_record_stop(self, address, *args):
        """OSC handler for /record/stop"""
        self.engine.stop_recording()

    def handle_record_status(self, address, *args):
        """OSC handler for /record/status"""
        self.engine.record_status()

    async def _run_server(self):
        """AsyncIO server coroutine"""
        disp = self.setup_dispatcher()

        self.server = AsyncIOOSCUDPServer(
            (self.host, self.port),
            disp,
            self.loop
        )

        self.transport, self.protocol = await self.server.create_serve_endpoint()

        print(f"[OSC] Listening on {self.host}:{self.port}")
        print("[OSC] Toggle modes with /chorus/mode <0-4>")

        # Keep server running until stop event
        while not self._stop_event.is_set():
            await asyncio.sleep(0.1)

        self.transport.close()

    def _thread_target(self):
        """Thread target function"""
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)

        try:
            self.loop.run_until_complete(self._run_server())
        except OSError as e:
            print(f"[OSC] Server failed on {self.host}:{self.port}: {e}")
        finally:
            self.loop.close()

    def start(self):
        """Start OSC server in separate thread"""
        self._stop_event.clear()
        self.thread = threading.Thread(target=self._thread_target, daemon=True)
        self.thread.start()

    def stop(self):
        """Stop OSC server"""
        self._stop_event.set()
        if self.thread:
            self.thread.join(timeout=2)
            self.thread = None


class AudioEngine:
    """
    Runs a DimensionChorus on the default duplex audio device
    """

    def __init__(self, backend: Optional[AudioBackend] = None,
                 chorus: Optional[DimensionChorus] = None,
                 enable_osc: bool = True,
                 osc_host: str = OSC_HOST, osc_port: int = OSC_PORT):
        # Engine state
        self.state = EngineState.STOPPED
        self.start_time: Optional[float] = None

        self.stats = ControlStats()

        # The whole graph exists before any device is touched
        self.chorus = chorus if chorus is not None else DimensionChorus()

        if backend is None:
            backend = SoundDeviceBackend(self._process_audio,
                                         sample_rate=self.chorus.sr,
                                         buffer_size=self.chorus.buffer_size)
        self.backend = backend

        # OSC controller
        self.osc_controller = OSCController(self, osc_host, osc_port) if enable_osc else None

        # Recording
        self.recording = False
        self.record_buffer = []
        self.record_filename: Optional[str] = None
        self.record_start_time = 0.0

        # CPU monitoring
        self.process = psutil.Process()
        self.cpu_thread = None
        self.cpu_percent = 0.0
        self._stop_cpu_monitor = threading.Event()

        print(f"[ENGINE] Initialized: {self.chorus.sr}Hz, {self.chorus.buffer_size} samples/buffer, "
              f"modes={list(self.chorus.get_active_mode_ids())}")

    def _process_audio(self, indata, outdata, frames):
        """
        Pull one device block through the chorus - called from audio callback
        """
        self.chorus.process(indata[:frames, 0], outdata[:frames, 0])

        if self.recording:
            self.record_buffer.append(outdata[:frames, 0].copy())

    def toggle_mode(self, mode_id: int) -> Tuple[int, ...]:
        """
        Toggle a mode on the chorus.

        Raises:
            ConfigurationError: invalid mode id (counted, state unchanged)
        """
        self.stats.toggles_received += 1
        self.stats.last_toggle_timestamp = time.perf_counter()
        try:
            return self.chorus.toggle_mode(mode_id)
        except ConfigurationError:
            self.stats.toggles_rejected += 1
            raise

    def get_active_mode_ids(self) -> Tuple[int, ...]:
        return self.chorus.get_active_mode_ids()

    def _cpu_monitor_thread(self):
        """Monitor CPU usage at 1Hz"""
        while not self._stop_cpu_monitor.wait(1.0):
            try:
                self.cpu_percent = self.process.cpu_percent(interval=None)
            except psutil.Error:
                self.cpu_percent = 0.0

    def start(self) -> bool:
        """
        Start the audio stream and OSC server.

        Raises:
            InitializationError: device could not be opened; the chorus
                graph is torn down and the engine is left in ERROR
        """
        if self.state != EngineState.STOPPED:
            print(f"[ENGINE] Cannot start: engine is {self.state.value}")
            return False

        self.state = EngineState.STARTING

        try:
            self.backend.start()
        except InitializationError as e:
            self.chorus.teardown()
            self.state = EngineState.ERROR
            print(f"[ENGINE] Start failed: {e}")
            print("[ENGINE] Hint: check microphone permission and CHORUS_PULSE_SERVER")
            raise

        if self.osc_controller is not None:
            self.osc_controller.start()

        # Start CPU monitoring
        self._stop_cpu_monitor.clear()
        self.cpu_thread = threading.Thread(target=self._cpu_monitor_thread, daemon=True)
        self.cpu_thread.start()

        self.start_time = time.time()
        self.state = EngineState.RUNNING

        print(f"[ENGINE] Started: active modes {list(self.chorus.get_active_mode_ids())}")
        return True

    def stop(self) -> bool:
        """Stop the audio stream and OSC server"""
        if self.state != EngineState.RUNNING:
            print(f"[ENGINE] Cannot stop: engine is {self.state.value}")
            return False

        self.state = EngineState.STOPPING

        if self.recording:
            self.stop_recording()

        if self.osc_controller is not None:
            self.osc_controller.stop()

        # Stop CPU monitoring
        self._stop_cpu_monitor.set()
        if self.cpu_thread:
            self.cpu_thread.join(timeout=2)

        if not self.backend.stop():
            self.state = EngineState.ERROR
            return False

        self.state = EngineState.STOPPED
        print("[ENGINE] Stopped")
        return True

    def start_recording(self, filename: Optional[str] = None) -> None:
        """Start capturing the output to a WAV file."""
        if self.recording:
            print("[RECORD] Already recording")
            return

        if not filename:
            timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
            filename = f"chorus_{timestamp}.wav"

        self.record_buffer = []
        self.record_filename = filename
        self.record_start_time = time.perf_counter()
        self.recording = True
        print(f"[RECORD] Started recording to {filename}")

    def stop_recording(self) -> Optional[str]:
        """
        Stop recording and save the WAV file.

        Returns:
            The file written, or None if nothing was recorded
        """
        if not self.recording:
            print("[RECORD] Not recording")
            return None

        self.recording = False
        # Swap first; a callback already past its recording check appends to the old list
        blocks, self.record_buffer = self.record_buffer, []

        if not blocks:
            print("[RECORD] No audio recorded")
            return None

        audio_data = np.concatenate(blocks)

        # Convert float [-1,1] to int16 for WAV
        audio_int = np.int16(np.clip(audio_data, -1.0, 1.0) * 32767)

        from scipy.io import wavfile
        wavfile.write(self.record_filename, int(self.chorus.sr), audio_int)

        duration = len(audio_data) / self.chorus.sr
        file_size = len(audio_data) * 2 / 1024 / 1024  # MB
        print(f"[RECORD] Saved {duration:.1f}s ({file_size:.1f}MB) to {self.record_filename}")
        return self.record_filename

    def record_status(self) -> None:
        if self.recording:
            duration = time.perf_counter() - self.record_start_time
            buffer_count = len(self.record_buffer)
            print(f"[RECORD] Recording: {duration:.1f}s, {buffer_count} buffers")
        else:
            print("[RECORD] Not recording")

    def get_status(self) -> EngineMetrics:
        """Get current engine metrics"""
        uptime = 0.0
        if self.start_time and self.state == EngineState.RUNNING:
            uptime = time.time() - self.start_time

        backend_metrics = self.backend.get_metrics()
        config = self.chorus.effective_config()
        router = self.chorus.signal_router
        frame = self.chorus.frame

        return EngineMetrics(
            state=self.state,
            uptime_seconds=uptime,
            total_buffers=backend_metrics['total_buffers'],
            xrun_count=backend_metrics['xrun_count'],
            callback_min_ms=backend_metrics['callback_min_us'] / 1000,
            callback_mean_ms=backend_metrics['callback_mean_us'] / 1000,
            callback_max_ms=backend_metrics['callback_max_us'] / 1000,
            cpu_percent=self.cpu_percent,
            active_modes=self.chorus.get_active_mode_ids(),
            wet=router.wet_gain.value_at(frame),
            dry=router.dry_gain.value_at(frame),
            wet_target=config.wet,
            dry_target=config.dry,
            toggles_received=self.stats.toggles_received,
            toggles_rejected=self.stats.toggles_rejected,
            recording=self.recording
        )


def main():
    """Interactive CLI for the chorus engine"""
    engine = AudioEngine()

    print("\n=== Dimension Chorus ===")
    print("Commands: start, stop, status, mode <0-4>, off, record start [file], record stop, quit")
    print(f"OSC: Send messages to {OSC_HOST}:{OSC_PORT}/chorus/mode")

    while True:
        try:
            cmd = input("\n> ").strip().lower().split()

            if not cmd:
                continue

            if cmd[0] == "start":
                try:
                    engine.start()
                except InitializationError:
                    print("Engine could not start; restart the program to retry")
                    break
            elif cmd[0] == "stop":
                engine.stop()
            elif cmd[0] == "status":
                print(engine.get_status())
            elif cmd[0] == "mode" and len(cmd) > 1:
                try:
                    active = engine.toggle_mode(int(cmd[1]))
                    print(f"Active modes: {list(active) or 'OFF'}")
                except (ValueError, ConfigurationError) as e:
                    print(f"Invalid mode: {cmd[1]} ({e})")
            elif cmd[0] == "off":
                engine.toggle_mode(0)
                print("Active modes: OFF")
            elif cmd[0] == "record" and len(cmd) > 1:
                if cmd[1] == "start":
                    engine.start_recording(cmd[2] if len(cmd) > 2 else None)
                elif cmd[1] == "stop":
                    engine.stop_recording()
                else:
                    engine.record_status()
            elif cmd[0] in ["quit", "exit"]:
                if engine.state == EngineState.RUNNING:
                    engine.stop()
                break
            else:
                print(f"Unknown command: {' '.join(cmd)}")

        except (KeyboardInterrupt, EOFError):
            print("\nShutting down...")
            if engine.state == EngineState.RUNNING:
                engine.stop()
            break


if __name__ == "__main__":
    main()
