"""
Test the mode table
Fixed presets, range checking and table validation
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dimension_chorus.errors import ConfigurationError
from dimension_chorus.mode_table import (
    DEFAULT_TABLE, MAX_MODE_ID, MODES, NUM_VOICES, Mode, ModeTable, get_mode
)


class TestModeTable:
    """Lookup and range checks on the default table"""

    def test_reference_table(self):
        assert len(DEFAULT_TABLE) == 5
        assert MAX_MODE_ID == 4
        assert DEFAULT_TABLE.num_voices == NUM_VOICES == 4

        off = get_mode(0)
        assert (off.wet, off.dry, off.depths) == (0.0, 1.0, (0.0, 0.0, 0.0, 0.0))

        two = get_mode(2)
        assert (two.wet, two.dry, two.depths) == (0.4, 0.8, (0.0015, 0.0012, 0.0, 0.0))

    def test_presets_grow_more_intense(self):
        """Wet rises, dry falls, more voices modulated per step"""
        for lower, higher in zip(MODES, MODES[1:]):
            assert higher.wet > lower.wet
            assert higher.dry < lower.dry
            active_lower = sum(1 for d in lower.depths if d > 0)
            active_higher = sum(1 for d in higher.depths if d > 0)
            assert active_higher == active_lower + 1

    @pytest.mark.parametrize("mode_id", [-1, 5, 100])
    def test_out_of_range(self, mode_id):
        with pytest.raises(ConfigurationError):
            DEFAULT_TABLE.get(mode_id)

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            get_mode(7)

    @pytest.mark.parametrize("mode_id", [True, 1.0, "1", None])
    def test_non_integer_ids_rejected(self, mode_id):
        with pytest.raises(ConfigurationError):
            DEFAULT_TABLE.get(mode_id)

    def test_numpy_integers_accepted(self):
        assert DEFAULT_TABLE.get(np.int64(3)) is MODES[3]
        assert DEFAULT_TABLE.validate(np.int32(0)) == 0

    def test_contains(self):
        assert 0 in DEFAULT_TABLE
        assert 4 in DEFAULT_TABLE
        assert 5 not in DEFAULT_TABLE


class TestTableValidation:
    """Custom tables must keep the table invariants"""

    def test_mode_levels_checked(self):
        with pytest.raises(ValueError):
            Mode(1, wet=1.5, dry=0.5, depths=(0.0,))
        with pytest.raises(ValueError):
            Mode(1, wet=0.5, dry=-0.1, depths=(0.0,))
        with pytest.raises(ValueError):
            Mode(1, wet=0.5, dry=0.5, depths=(-0.001,))

    def test_depths_stored_as_tuple(self):
        depths = [0.001, 0.0]
        mode = Mode(1, wet=0.3, dry=0.85, depths=depths)
        depths[0] = 0.5

        assert mode.depths == (0.001, 0.0)
        assert isinstance(mode.depths, tuple)
        assert hash(mode) == hash(Mode(1, wet=0.3, dry=0.85, depths=(0.001, 0.0)))

    def test_ids_must_be_contiguous(self):
        with pytest.raises(ValueError):
            ModeTable([MODES[0], MODES[2]])

    def test_depth_lengths_must_match(self):
        short = Mode(1, wet=0.3, dry=0.85, depths=(0.001,))
        with pytest.raises(ValueError):
            ModeTable([MODES[0], short])

    def test_off_must_be_dry(self):
        wet_off = Mode(0, wet=0.2, dry=1.0, depths=(0.0, 0.0, 0.0, 0.0))
        with pytest.raises(ValueError):
            ModeTable([wet_off, MODES[1]])

    def test_smaller_table(self):
        table = ModeTable(MODES[:3])
        assert table.max_mode_id == 2
        with pytest.raises(ConfigurationError):
            table.get(3)
