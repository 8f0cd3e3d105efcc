"""
ParameterSmoother - applies a blended config to the live graph

Every change is an exponential approach (setTargetAtTime) anchored at
the current sample frame, never a direct write, so the audio thread only
sees smoothly moving values and nothing needs locking.
"""

from typing import Callable

from .blender import EffectiveConfig
from .config import SAMPLE_RATE, SMOOTHING_TIME_CONSTANT
from .signal_router import SignalRouter


class ParameterSmoother:
    """
    Drives dry gain, wet gain and each voice depth toward a target.
    """

    def __init__(self, signal_router: SignalRouter, clock: Callable[[], int],
                 time_constant: float = SMOOTHING_TIME_CONSTANT,
                 sample_rate: int = SAMPLE_RATE):
        """
        Args:
            signal_router: Graph owning the params
            clock: Returns the next sample frame the audio thread will render
            time_constant: Seconds
            sample_rate: Used to convert the time constant to samples
        """
        if time_constant < 0:
            raise ValueError(f"time_constant must be >= 0, got {time_constant}")
        self.signal_router = signal_router
        self.clock = clock
        self.time_constant = time_constant
        self.sr = sample_rate

    @property
    def time_constant_samples(self) -> float:
        return self.time_constant * self.sr

    def apply_target(self, config: EffectiveConfig) -> int:
        """
        Re-anchor every parameter toward `config` from its current value.

        Returns:
            The frame the transition is anchored at
        """
        frame = self.clock()
        tau = self.time_constant_samples
        router = self.signal_router

        router.dry_gain.set_target_at_time(config.dry, frame, tau)
        router.wet_gain.set_target_at_time(config.wet, frame, tau)
        for param, depth in zip(router.depth_params, config.depths):
            param.set_target_at_time(depth, frame, tau)

        return frame

    def apply_immediate(self, config: EffectiveConfig) -> None:
        """Set values directly. Only valid before audio is flowing."""
        router = self.signal_router
        router.dry_gain.set_value(config.dry)
        router.wet_gain.set_value(config.wet)
        for param, depth in zip(router.depth_params, config.depths):
            param.set_value(depth)
