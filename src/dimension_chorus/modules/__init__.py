"""Audio graph primitives: automatable params, gain, delay, oscillator."""

from .base import AudioParam, BaseNode
from .gain import GainNode
from .delay import DelayNode
from .lfo import SineOscillator

__all__ = ['AudioParam', 'BaseNode', 'GainNode', 'DelayNode', 'SineOscillator']
