"""
ModeSelector - which modes are active

Holds up to two mode ids in insertion order. Toggling a third mode
evicts the one that was switched on first, regardless of id.
"""

from typing import Iterable, List, Tuple

from .mode_table import DEFAULT_TABLE, OFF, ModeTable


MAX_ACTIVE_MODES = 2


class ModeSelector:
    """
    Bounded ordered list of active mode ids.

    Invariants after every toggle:
    - 0 <= len(active_ids) <= 2
    - mode 0 is never a member
    - ids appear in the order they were switched on
    """

    def __init__(self, table: ModeTable = DEFAULT_TABLE, initial: Iterable[int] = (1,)):
        self.table = table
        self._active: List[int] = []
        for mode_id in initial:
            mode_id = self.table.validate(mode_id)
            if mode_id != OFF and mode_id not in self._active:
                self.toggle(mode_id)

    def toggle(self, mode_id: int) -> Tuple[int, ...]:
        """
        Apply one toggle.

        - 0 clears everything
        - an active mode is switched off
        - an inactive mode is switched on, evicting the oldest active
          mode first if two are already on

        Raises:
            ConfigurationError: invalid id; the active set is unchanged

        Returns:
            The new active ids
        """
        mode_id = self.table.validate(mode_id)

        # Copy-on-write: readers only ever see a complete list
        if mode_id == OFF:
            active = []
        elif mode_id in self._active:
            active = list(self._active)
            active.remove(mode_id)
        else:
            active = list(self._active)
            if len(active) >= MAX_ACTIVE_MODES:
                active.pop(0)
            active.append(mode_id)

        self._active = active
        return self.active_ids

    @property
    def active_ids(self) -> Tuple[int, ...]:
        """Snapshot of active ids in insertion order."""
        return tuple(self._active)

    def __len__(self) -> int:
        return len(self._active)

    def __contains__(self, mode_id) -> bool:
        return mode_id in self._active

    def __repr__(self) -> str:
        return f"ModeSelector(active={self.active_ids})"
