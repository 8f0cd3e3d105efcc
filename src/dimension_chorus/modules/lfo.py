"""
SineOscillator - free-running low frequency oscillator

Started at construction and never stopped or restarted, so its phase
stays continuous for the whole lifetime of the graph. Consumers scale
its output with a gain stage instead of gating it.
"""

import numpy as np
from typing import Dict

from .base import BaseNode
from ..param_spec import ParamSpec


class SineOscillator(BaseNode):
    """
    Phase accumulator sine oscillator, output range -1.0 to 1.0.

    Frequency and waveform are fixed at construction.
    """

    WAVEFORM = "sine"

    def __init__(self, sample_rate: int, buffer_size: int, frequency: float = 1.0):
        if frequency <= 0 or frequency >= sample_rate / 2:
            raise ValueError(f"Oscillator frequency out of range: {frequency}")
        self.frequency = float(frequency)
        super().__init__(sample_rate, buffer_size)

    def get_param_specs(self) -> Dict[str, ParamSpec]:
        return {}

    def initialize(self) -> None:
        self.phase = 0.0  # cycles, [0, 1)
        self.phase_increment = self.frequency / self.sr
        self.frames_generated = 0
        self.running = True

        self._two_pi = 2.0 * np.pi
        self._phase_index = np.arange(self.buffer_size, dtype=np.float64)

    def process_buffer(self, input_buffer: np.ndarray, output_buffer: np.ndarray) -> None:
        """Generator: ignores input_buffer."""
        n = len(output_buffer)

        np.multiply(self._phase_index[:n], self.phase_increment, out=output_buffer)
        output_buffer += self.phase
        output_buffer *= self._two_pi
        np.sin(output_buffer, out=output_buffer)

        # Advance and wrap to keep precision
        self.phase = (self.phase + n * self.phase_increment) % 1.0
        self.frames_generated += n

    def get_state(self) -> dict:
        state = super().get_state()
        state.update({
            "frequency": self.frequency,
            "waveform": self.WAVEFORM,
            "phase": self.phase,
            "running": self.running,
        })
        return state
