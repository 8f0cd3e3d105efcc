"""
DelayNode - bounded circular-buffer delay with a modulatable delay time

Reads with linear interpolation so a continuously varying delay time
produces a smooth pitch/phase wobble instead of zipper noise.
"""

import math
import numpy as np
from typing import Dict

from .base import BaseNode
from ..param_spec import ParamSpec, CommonParams


class DelayNode(BaseNode):
    """
    Delay line with per-sample delay time.

    Params:
    - delay_time (s): nominal delay; audio-rate inputs connected to this
      param are added on top (clamped to [0, max_delay] per sample)
    """

    def __init__(self, sample_rate: int, buffer_size: int,
                 max_delay: float = 0.1, delay_time: float = 0.005):
        if max_delay <= 0:
            raise ValueError(f"max_delay must be positive, got {max_delay}")
        self.max_delay = max_delay
        self._initial_delay = delay_time
        super().__init__(sample_rate, buffer_size)

    def get_param_specs(self) -> Dict[str, ParamSpec]:
        return {"delay_time": CommonParams.delay_time(self._initial_delay, self.max_delay)}

    def initialize(self) -> None:
        # Room for the longest delay behind the oldest sample of a block
        self.length = int(math.ceil(self.max_delay * self.sr)) + self.buffer_size + 2
        self.ring = np.zeros(self.length, dtype=np.float64)
        self.write_pos = 0

        # Pre-allocated working buffers
        self._index = np.arange(self.buffer_size, dtype=np.float64)
        self._index_int = np.arange(self.buffer_size, dtype=np.int64)
        self._idx = np.zeros(self.buffer_size, dtype=np.int64)
        self._pos = np.zeros(self.buffer_size, dtype=np.float64)
        self._base = np.zeros(self.buffer_size, dtype=np.float64)
        self._frac = np.zeros(self.buffer_size, dtype=np.float64)
        self._s0 = np.zeros(self.buffer_size, dtype=np.float64)
        self._s1 = np.zeros(self.buffer_size, dtype=np.float64)

    @property
    def delay_time(self):
        return self.params["delay_time"]

    def process_buffer(self, input_buffer: np.ndarray, output_buffer: np.ndarray) -> None:
        n = len(output_buffer)
        idx = self._idx[:n]
        pos = self._pos[:n]
        base = self._base[:n]
        frac = self._frac[:n]
        s0 = self._s0[:n]
        s1 = self._s1[:n]

        # Write the whole block first; reads below only look backwards
        np.add(self._index_int[:n], self.write_pos, out=idx)
        np.mod(idx, self.length, out=idx)
        self.ring[idx] = input_buffer

        # Delay in samples, clamped to the line's bounds
        np.clip(self.params["delay_time"].buffer[:n], 0.0, self.max_delay, out=pos)
        pos *= self.sr

        # Read position = write position of sample i minus its delay
        np.subtract(self._index[:n], pos, out=pos)
        pos += self.write_pos

        np.floor(pos, out=base)
        np.subtract(pos, base, out=frac)
        idx[:] = base
        np.mod(idx, self.length, out=idx)
        np.take(self.ring, idx, out=s0)
        idx += 1
        np.mod(idx, self.length, out=idx)
        np.take(self.ring, idx, out=s1)

        # s0 + frac * (s1 - s0)
        np.subtract(s1, s0, out=s1)
        s1 *= frac
        np.add(s0, s1, out=output_buffer)

        self.write_pos = (self.write_pos + n) % self.length

    def clear(self) -> None:
        """Silence the line (used by tests and teardown)."""
        self.ring.fill(0.0)
        self.write_pos = 0
