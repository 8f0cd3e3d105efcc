"""
DimensionChorus - the control surface

Ties the pieces together:

    toggle_mode() -> ModeSelector -> blend() -> ParameterSmoother -> graph

process() is the audio side: it pulls blocks through the graph and
advances the sample clock. toggle_mode() is the control side and is
serialized with a lock the audio side never touches.
"""

import threading
import numpy as np
from typing import Iterable, Optional, Tuple

from .blender import EffectiveConfig, blend
from .config import SAMPLE_RATE, BUFFER_SIZE, SMOOTHING_TIME_CONSTANT, MAX_DELAY_SECONDS, VERBOSE
from .mode_selector import ModeSelector
from .mode_table import DEFAULT_TABLE, ModeTable
from .signal_router import SignalRouter
from .smoother import ParameterSmoother


DEFAULT_MODES = (1,)


class DimensionChorus:
    """
    Mono chorus with discrete, blendable modes.
    """

    def __init__(self, sample_rate: int = SAMPLE_RATE, buffer_size: int = BUFFER_SIZE,
                 time_constant: float = SMOOTHING_TIME_CONSTANT,
                 max_delay: float = MAX_DELAY_SECONDS,
                 table: ModeTable = DEFAULT_TABLE,
                 initial_modes: Iterable[int] = DEFAULT_MODES):
        """
        Build the full graph and apply the initial modes.

        Raises:
            ConfigurationError: an initial mode id is invalid
            InitializationError: the graph could not be built
        """
        self.sr = sample_rate
        self.buffer_size = buffer_size
        self.table = table

        # Next frame the audio side will render
        self.frame = 0
        self.toggles_applied = 0
        self._control_lock = threading.Lock()

        self.selector = ModeSelector(table, initial_modes)
        self.signal_router = SignalRouter(sample_rate, buffer_size, table.num_voices,
                                          max_delay, time_constant)
        self.smoother = ParameterSmoother(self.signal_router, clock=lambda: self.frame,
                                          time_constant=time_constant,
                                          sample_rate=sample_rate)

        self.smoother.apply_immediate(self.effective_config())

        if VERBOSE:
            print(f"[Chorus] Graph ready: {len(self.signal_router.voice_bank)} voices, "
                  f"modes={list(self.get_active_mode_ids())}")

    def toggle_mode(self, mode_id: int) -> Tuple[int, ...]:
        """
        Toggle one mode and start smoothing toward the new blend.

        Raises:
            ConfigurationError: mode id outside the table; nothing changes

        Returns:
            Active mode ids after the toggle
        """
        with self._control_lock:
            active = self.selector.toggle(mode_id)
            self.smoother.apply_target(blend(active, self.table))
            self.toggles_applied += 1

        if VERBOSE:
            print(f"[Chorus] Toggled {mode_id}: active={list(active)}")
        return active

    def get_active_mode_ids(self) -> Tuple[int, ...]:
        """Snapshot of active modes in insertion order."""
        return self.selector.active_ids

    def effective_config(self) -> EffectiveConfig:
        """Blend of the currently active modes."""
        return blend(self.selector.active_ids, self.table)

    def process(self, input_buffer: np.ndarray,
                output_buffer: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Run a mono block of any length through the chorus.

        Args:
            input_buffer: 1-D input samples
            output_buffer: Optional 1-D destination of the same length

        Returns:
            output_buffer (allocated if not given)
        """
        n = len(input_buffer)
        if output_buffer is None:
            output_buffer = np.zeros(n, dtype=np.float64)
        elif len(output_buffer) != n:
            raise ValueError(f"Output length {len(output_buffer)} != input length {n}")

        for start in range(0, n, self.buffer_size):
            end = min(start + self.buffer_size, n)
            result = self.signal_router.process(input_buffer[start:end], self.frame)
            output_buffer[start:end] = result
            self.frame += end - start

        return output_buffer

    @property
    def time(self) -> float:
        """Seconds of audio rendered so far."""
        return self.frame / self.sr

    def teardown(self) -> None:
        """Disconnect the graph. The instance is unusable afterwards."""
        self.signal_router.teardown()

    def __repr__(self) -> str:
        return (f"DimensionChorus(active={self.get_active_mode_ids()}, "
                f"frame={self.frame})")
