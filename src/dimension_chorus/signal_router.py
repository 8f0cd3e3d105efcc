"""
SignalRouter - the fixed chorus topology

    input ──> dry gain ───────────────────────────────┐
      │                                               ├──> output
      └──> voice i delay ──> wet gain ────────────────┘
              ^
    lfo i ──> depth i ──┘ (delay_time)

Built once, all-or-nothing: if any node or edge fails to go in, the
partial graph is torn down and InitializationError is raised.
"""

import numpy as np
from typing import List

from .config import SAMPLE_RATE, BUFFER_SIZE, SMOOTHING_TIME_CONSTANT, MAX_DELAY_SECONDS
from .errors import InitializationError
from .mode_table import NUM_VOICES
from .modules.base import AudioParam
from .modules.gain import GainNode
from .param_spec import CommonParams
from .patch_router import PatchRouter
from .voice_bank import VoiceBank


class SignalRouter:
    """
    Owns the live graph for the lifetime of the chorus.
    """

    INPUT_ID = "input"
    DRY_ID = "dry"
    WET_ID = "wet"
    OUTPUT_ID = "output"

    def __init__(self, sample_rate: int = SAMPLE_RATE, buffer_size: int = BUFFER_SIZE,
                 num_voices: int = NUM_VOICES,
                 max_delay: float = MAX_DELAY_SECONDS,
                 time_constant: float = SMOOTHING_TIME_CONSTANT,
                 router: PatchRouter = None):
        self.sr = sample_rate
        self.buffer_size = buffer_size
        self.router = router if router is not None else PatchRouter(buffer_size)

        time_constant_ms = time_constant * 1000.0
        try:
            self.input_node = GainNode(sample_rate, buffer_size)
            self.output_node = GainNode(sample_rate, buffer_size)
            self.dry_node = GainNode(sample_rate, buffer_size,
                                     CommonParams.gain(1.0, time_constant_ms))
            self.wet_node = GainNode(sample_rate, buffer_size,
                                     CommonParams.gain(0.0, time_constant_ms))
            self.voice_bank = VoiceBank(sample_rate, buffer_size, num_voices,
                                        max_delay, time_constant)
        except ValueError as e:
            raise InitializationError(f"Invalid chorus graph settings: {e}") from e

        self.built = False
        self._build()

    def _build(self) -> None:
        r = self.router
        steps = (
            lambda: r.add_node(self.INPUT_ID, self.input_node),
            lambda: r.add_node(self.DRY_ID, self.dry_node),
            lambda: r.add_node(self.WET_ID, self.wet_node),
            lambda: r.add_node(self.OUTPUT_ID, self.output_node),
            # Dry path
            lambda: r.connect(self.INPUT_ID, self.DRY_ID),
            lambda: r.connect(self.DRY_ID, self.OUTPUT_ID),
            # Wet path
            lambda: self.voice_bank.build(r, self.INPUT_ID, self.WET_ID),
            lambda: r.connect(self.WET_ID, self.OUTPUT_ID),
            lambda: r.set_io(self.INPUT_ID, self.OUTPUT_ID),
            r.validate_graph,
        )

        for step in steps:
            if not step():
                r.teardown()
                raise InitializationError("Chorus graph construction failed")

        self.built = True

    @property
    def dry_gain(self) -> AudioParam:
        return self.dry_node.params["gain"]

    @property
    def wet_gain(self) -> AudioParam:
        return self.wet_node.params["gain"]

    @property
    def depth_params(self) -> List[AudioParam]:
        return self.voice_bank.depth_params

    def process(self, input_buffer: np.ndarray, frame: int) -> np.ndarray:
        """One block through the graph; returns a view valid until the next call."""
        return self.router.process(input_buffer, frame)

    def teardown(self) -> None:
        """Disconnect and drop every node."""
        self.router.teardown()
        self.built = False

    def __repr__(self) -> str:
        return f"SignalRouter(voices={len(self.voice_bank)}, built={self.built}, {self.router!r})"
