"""
BaseNode - Foundation for all audio graph nodes

Key principles:
1. All allocations happen in __init__
2. process_buffer() works on pre-allocated buffers only
3. Parameters are rendered per sample at the start of each block
4. Automation is exponential (setTargetAtTime law), never a step
5. State persists between buffers
"""

import math
import numpy as np
from abc import ABC, abstractmethod
from typing import Dict, Optional, Any

from ..param_spec import ParamSpec


class AudioParam:
    """
    Automatable scalar parameter.

    Holds one automation event (anchor_frame, anchor_value, target, tau)
    where tau is the time constant in samples. The value at any frame is

        target + (anchor_value - target) * exp(-(frame - anchor_frame) / tau)

    The event tuple is replaced by a single assignment, so the audio
    thread reads a consistent event without locking (GIL-atomic swap).
    """

    def __init__(self, spec: ParamSpec, sample_rate: int, buffer_size: int):
        self.spec = spec
        self.name = spec.name
        self.sr = sample_rate
        self.buffer_size = buffer_size

        default = spec.clamp_value(spec.default)
        self._event = (0, default, default, 0.0)

        # Rendered values for the current block; modulation inputs are
        # summed on top of this by the router.
        self.buffer = np.zeros(buffer_size, dtype=np.float64)
        self._index = np.arange(buffer_size, dtype=np.float64)

    @property
    def target(self) -> float:
        """Value the parameter is heading to (or sitting at)."""
        return self._event[2]

    def value_at(self, frame: int) -> float:
        """Evaluate the automation curve at an absolute sample frame."""
        anchor_frame, anchor_value, target, tau = self._event
        if tau <= 0.0 or anchor_value == target:
            return target
        elapsed = max(0, frame - anchor_frame)
        return target + (anchor_value - target) * math.exp(-elapsed / tau)

    def set_value(self, value: float) -> None:
        """Immediate assignment. Only used before audio starts."""
        value = self.spec.clamp_value(value)
        self._event = (0, value, value, 0.0)

    def set_target_at_time(self, target: float, frame: int,
                           time_constant: Optional[float] = None) -> None:
        """
        Start an exponential approach to `target` anchored at `frame`.

        Args:
            target: Value to converge to (clamped to the spec range)
            frame: Absolute sample frame the transition starts at
            time_constant: Time constant in samples (defaults to the spec's)

        Calling again mid-transition re-anchors from the value the curve
        has at `frame`; nothing is queued.
        """
        target = self.spec.clamp_value(target)
        if time_constant is None:
            time_constant = self.spec.time_constant_samples(self.sr)

        start_value = self.value_at(frame)
        if time_constant <= 0.0:
            start_value = target
        self._event = (int(frame), start_value, target, float(time_constant))

    def render(self, frame: int, n: int) -> np.ndarray:
        """
        Write per-sample values for frames [frame, frame + n) into the
        param buffer and return that view.
        """
        anchor_frame, anchor_value, target, tau = self._event
        out = self.buffer[:n]

        if tau <= 0.0 or anchor_value == target:
            out.fill(target)
            return out

        # elapsed samples since anchor, never negative
        np.add(self._index[:n], float(frame - anchor_frame), out=out)
        np.maximum(out, 0.0, out=out)
        out *= -1.0 / tau
        np.exp(out, out=out)
        out *= (anchor_value - target)
        out += target
        return out

    def __repr__(self) -> str:
        return f"AudioParam({self.name}, target={self.target:.5f})"


class BaseNode(ABC):
    """
    Base class for audio graph nodes.

    Guarantees:
    - No allocations in process_buffer()
    - Every declared parameter is an AudioParam rendered per block
    - Parameter buffers may carry audio-rate modulation from other nodes
    """

    def __init__(self, sample_rate: int, buffer_size: int):
        """
        Initialize node with fixed maximum buffer size.
        ALL allocations must happen here.

        Args:
            sample_rate: System sample rate (typically 44100)
            buffer_size: Largest block in samples (typically 256)
        """
        self.sr = sample_rate
        self.buffer_size = buffer_size

        self.param_specs: Dict[str, ParamSpec] = self.get_param_specs()
        self.params: Dict[str, AudioParam] = {
            name: AudioParam(spec, sample_rate, buffer_size)
            for name, spec in self.param_specs.items()
        }

        # Node metadata
        self.node_id = None  # Set by router
        self.active = True

        self.initialize()

    @abstractmethod
    def get_param_specs(self) -> Dict[str, ParamSpec]:
        """
        Define parameter specifications for this node.

        Returns:
            Dictionary mapping parameter names to ParamSpec objects
        """
        pass

    @abstractmethod
    def initialize(self) -> None:
        """
        Subclass-specific initialization.

        Called after base initialization. Use this for:
        - Allocating internal buffers
        - Setting up DSP state
        """
        pass

    @abstractmethod
    def process_buffer(self, input_buffer: np.ndarray, output_buffer: np.ndarray) -> None:
        """
        Process one block of audio.

        Args:
            input_buffer: Summed audio inputs (read-only), length n
            output_buffer: Output buffer to write, length n

        Note:
            Param buffers are already rendered (plus modulation) for
            exactly these n samples.
        """
        pass

    def prepare(self, frame: int, n: int) -> None:
        """Render every parameter for the block starting at `frame`."""
        for param in self.params.values():
            param.render(frame, n)

    def set_param(self, param: str, value: float) -> bool:
        """
        Set a parameter immediately.

        Returns:
            True if parameter exists and was set, False otherwise
        """
        if param not in self.params:
            return False
        self.params[param].set_value(value)
        return True

    def get_param(self, param: str) -> Optional[AudioParam]:
        """Get the AudioParam by name, or None."""
        return self.params.get(param)

    def get_state(self) -> Dict[str, Any]:
        """
        Get current node state for status output.

        Returns:
            Dictionary of state variables
        """
        return {
            "node_id": self.node_id,
            "type": self.__class__.__name__,
            "params": {name: p.target for name, p in self.params.items()},
            "active": self.active
        }

    def __repr__(self) -> str:
        param_str = ', '.join(f"{k}={p.target:.4f}" for k, p in self.params.items())
        return f"{self.__class__.__name__}({param_str})"
