"""
Mode table - fixed chorus presets

Mode 0 is "off" (fully dry). Modes 1-4 get progressively more intense:
wet rises, dry falls, and more voices get a non-zero modulation depth.
Depths are in seconds of delay-time swing, one per voice.
"""

import numbers
from dataclasses import dataclass
from typing import Iterator, Sequence, Tuple

from .errors import ConfigurationError


NUM_VOICES = 4
OFF = 0


@dataclass(frozen=True)
class Mode:
    """One preset: mix levels and per-voice modulation depth."""
    mode_id: int
    wet: float
    dry: float
    depths: Tuple[float, ...]

    def __post_init__(self):
        object.__setattr__(self, "depths", tuple(float(d) for d in self.depths))
        if not 0.0 <= self.wet <= 1.0:
            raise ValueError(f"Mode {self.mode_id}: wet {self.wet} outside [0, 1]")
        if not 0.0 <= self.dry <= 1.0:
            raise ValueError(f"Mode {self.mode_id}: dry {self.dry} outside [0, 1]")
        if any(d < 0.0 for d in self.depths):
            raise ValueError(f"Mode {self.mode_id}: negative depth in {self.depths}")


MODES = (
    Mode(0, wet=0.0, dry=1.0, depths=(0.0, 0.0, 0.0, 0.0)),
    Mode(1, wet=0.3, dry=0.85, depths=(0.001, 0.0, 0.0, 0.0)),
    Mode(2, wet=0.4, dry=0.8, depths=(0.0015, 0.0012, 0.0, 0.0)),
    Mode(3, wet=0.5, dry=0.75, depths=(0.002, 0.0018, 0.0015, 0.0)),
    Mode(4, wet=0.6, dry=0.7, depths=(0.0025, 0.002, 0.0018, 0.0015)),
)


class ModeTable:
    """
    Ordered, immutable table of modes indexed by id 0..M.
    """

    def __init__(self, modes: Sequence[Mode] = MODES):
        if not modes:
            raise ValueError("Mode table needs at least the 'off' entry")

        for expected_id, mode in enumerate(modes):
            if mode.mode_id != expected_id:
                raise ValueError(f"Mode ids must run 0..M in order, "
                                 f"found {mode.mode_id} at position {expected_id}")

        voice_counts = {len(mode.depths) for mode in modes}
        if len(voice_counts) != 1:
            raise ValueError(f"All modes need the same number of depths, got {sorted(voice_counts)}")

        off = modes[OFF]
        if off.wet != 0.0 or any(off.depths):
            raise ValueError("Mode 0 must be fully dry with zero depths")

        self._modes = tuple(modes)
        self.num_voices = voice_counts.pop()

    @property
    def max_mode_id(self) -> int:
        return len(self._modes) - 1

    def validate(self, mode_id) -> int:
        """
        Check a mode id against the table.

        Returns:
            The id as a plain int

        Raises:
            ConfigurationError: not an integer, or outside [0, M]
        """
        if isinstance(mode_id, bool) or not isinstance(mode_id, numbers.Integral):
            raise ConfigurationError(f"Mode id must be an integer, got {mode_id!r}")
        mode_id = int(mode_id)
        if not 0 <= mode_id <= self.max_mode_id:
            raise ConfigurationError(
                f"Mode id {mode_id} out of range [0, {self.max_mode_id}]")
        return mode_id

    def get(self, mode_id: int) -> Mode:
        """Look up a mode; raises ConfigurationError when out of range."""
        return self._modes[self.validate(mode_id)]

    def __len__(self) -> int:
        return len(self._modes)

    def __iter__(self) -> Iterator[Mode]:
        return iter(self._modes)

    def __contains__(self, mode_id) -> bool:
        try:
            self.validate(mode_id)
        except ConfigurationError:
            return False
        return True

    def __repr__(self) -> str:
        return f"ModeTable(modes={len(self._modes)}, voices={self.num_voices})"


DEFAULT_TABLE = ModeTable()
MAX_MODE_ID = DEFAULT_TABLE.max_mode_id


def get_mode(mode_id: int) -> Mode:
    """Look up a mode in the default table."""
    return DEFAULT_TABLE.get(mode_id)
