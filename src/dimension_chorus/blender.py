"""
Parameter blending - active mode ids to an effective mix configuration
"""

from dataclasses import dataclass
from typing import Sequence, Tuple

from .mode_table import DEFAULT_TABLE, OFF, Mode, ModeTable


@dataclass(frozen=True)
class EffectiveConfig:
    """Mix and depth targets derived from the active modes."""
    wet: float
    dry: float
    depths: Tuple[float, ...]

    @classmethod
    def from_mode(cls, mode: Mode) -> 'EffectiveConfig':
        return cls(wet=mode.wet, dry=mode.dry, depths=tuple(mode.depths))


def blend(active_ids: Sequence[int], table: ModeTable = DEFAULT_TABLE) -> EffectiveConfig:
    """
    Compute the effective configuration for a set of active modes.

    - no modes: the "off" mode verbatim
    - one mode: that mode verbatim
    - two modes: element-wise mean of wet, dry and every depth

    Args:
        active_ids: Active mode ids (order does not affect the result)
        table: Mode table to read presets from

    Returns:
        EffectiveConfig
    """
    active_ids = tuple(active_ids)

    if len(active_ids) == 0:
        return EffectiveConfig.from_mode(table.get(OFF))

    if len(active_ids) == 1:
        return EffectiveConfig.from_mode(table.get(active_ids[0]))

    if len(active_ids) == 2:
        first = table.get(active_ids[0])
        second = table.get(active_ids[1])
        return EffectiveConfig(
            wet=(first.wet + second.wet) / 2,
            dry=(first.dry + second.dry) / 2,
            depths=tuple((a + b) / 2 for a, b in zip(first.depths, second.depths)),
        )

    raise ValueError(f"At most 2 modes can be blended, got {len(active_ids)}")
