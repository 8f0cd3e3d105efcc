"""
VoiceBank - the modulated delay voices of the wet path

Each voice is: oscillator -> depth gain -> delay.delay_time, with the
delay fed from the shared input and feeding the shared wet bus. Base
delays and oscillator rates are staggered per voice so the copies stay
decorrelated and never phase-lock.
"""

from typing import List

from .config import SMOOTHING_TIME_CONSTANT, MAX_DELAY_SECONDS
from .mode_table import NUM_VOICES
from .modules.base import AudioParam
from .modules.delay import DelayNode
from .modules.gain import GainNode
from .modules.lfo import SineOscillator
from .param_spec import CommonParams
from .patch_router import PatchRouter


# Voice i: base delay BASE_DELAY + i * DELAY_STEP, LFO at LFO_RATE + i * LFO_RATE_STEP
BASE_DELAY = 0.005
DELAY_STEP = 0.002
LFO_RATE = 0.5
LFO_RATE_STEP = 0.13


class Voice:
    """One delay line plus its modulation source."""

    def __init__(self, index: int, base_delay: float, lfo_rate: float,
                 delay: DelayNode, lfo: SineOscillator, depth_gain: GainNode):
        self.index = index
        self.base_delay = base_delay
        self.lfo_rate = lfo_rate
        self.delay = delay
        self.lfo = lfo
        self.depth_gain = depth_gain

    @property
    def delay_id(self) -> str:
        return f"voice{self.index}_delay"

    @property
    def lfo_id(self) -> str:
        return f"voice{self.index}_lfo"

    @property
    def depth_id(self) -> str:
        return f"voice{self.index}_depth"

    @property
    def depth(self) -> AudioParam:
        """The only runtime-automatable field of a voice."""
        return self.depth_gain.params["gain"]

    def __repr__(self) -> str:
        return (f"Voice({self.index}, base={self.base_delay * 1000:.1f}ms, "
                f"rate={self.lfo_rate:.2f}Hz, depth={self.depth.target:.4f})")


class VoiceBank:
    """
    N independently modulated delay voices.
    """

    def __init__(self, sample_rate: int, buffer_size: int,
                 num_voices: int = NUM_VOICES,
                 max_delay: float = MAX_DELAY_SECONDS,
                 time_constant: float = SMOOTHING_TIME_CONSTANT):
        if num_voices < 1:
            raise ValueError(f"Need at least one voice, got {num_voices}")

        longest = BASE_DELAY + (num_voices - 1) * DELAY_STEP
        if longest >= max_delay:
            raise ValueError(f"Base delay {longest * 1000:.1f}ms does not fit "
                             f"in max delay {max_delay * 1000:.1f}ms")

        self.sr = sample_rate
        self.buffer_size = buffer_size
        self.max_delay = max_delay
        self.voices: List[Voice] = []

        time_constant_ms = time_constant * 1000.0
        for i in range(num_voices):
            base_delay = BASE_DELAY + i * DELAY_STEP
            lfo_rate = LFO_RATE + i * LFO_RATE_STEP

            delay = DelayNode(sample_rate, buffer_size, max_delay=max_delay,
                              delay_time=base_delay)
            lfo = SineOscillator(sample_rate, buffer_size, frequency=lfo_rate)
            depth_gain = GainNode(sample_rate, buffer_size,
                                  CommonParams.depth(0.0, max_delay - base_delay,
                                                     time_constant_ms))

            self.voices.append(Voice(i, base_delay, lfo_rate, delay, lfo, depth_gain))

    def build(self, router: PatchRouter, source_id: str, sink_id: str) -> bool:
        """
        Add every voice to the router and wire it between source and sink.

        Returns:
            True if every node and edge was added
        """
        for voice in self.voices:
            steps = (
                lambda: router.add_node(voice.delay_id, voice.delay),
                lambda: router.add_node(voice.lfo_id, voice.lfo),
                lambda: router.add_node(voice.depth_id, voice.depth_gain),
                lambda: router.connect(voice.lfo_id, voice.depth_id),
                lambda: router.connect(voice.depth_id, voice.delay_id, "delay_time"),
                lambda: router.connect(source_id, voice.delay_id),
                lambda: router.connect(voice.delay_id, sink_id),
            )
            for step in steps:
                if not step():
                    return False
        return True

    @property
    def depth_params(self) -> List[AudioParam]:
        return [voice.depth for voice in self.voices]

    def __len__(self) -> int:
        return len(self.voices)

    def __iter__(self):
        return iter(self.voices)
