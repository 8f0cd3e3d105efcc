"""
GainNode - per-sample automatable gain stage
"""

import numpy as np
from typing import Dict, Optional

from .base import BaseNode
from ..param_spec import ParamSpec, CommonParams


class GainNode(BaseNode):
    """
    out[n] = in[n] * gain[n]

    The gain param may be automated, modulated, or both. Used for the
    input/output busses, the dry and wet mix stages, and each voice's
    modulation depth.
    """

    def __init__(self, sample_rate: int, buffer_size: int,
                 spec: Optional[ParamSpec] = None):
        self._gain_spec = spec if spec is not None else CommonParams.gain(1.0)
        super().__init__(sample_rate, buffer_size)

    def get_param_specs(self) -> Dict[str, ParamSpec]:
        return {"gain": self._gain_spec}

    def initialize(self) -> None:
        pass

    @property
    def gain(self):
        return self.params["gain"]

    def process_buffer(self, input_buffer: np.ndarray, output_buffer: np.ndarray) -> None:
        n = len(output_buffer)
        np.multiply(input_buffer, self.params["gain"].buffer[:n], out=output_buffer)
