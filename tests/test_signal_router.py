"""
Test SignalRouter graph construction
Full topology, staggered voices, all-or-nothing build
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dimension_chorus.errors import InitializationError
from dimension_chorus.patch_router import PatchRouter
from dimension_chorus.signal_router import SignalRouter
from dimension_chorus.voice_bank import BASE_DELAY, DELAY_STEP, LFO_RATE, LFO_RATE_STEP

SR = 8000
BUFFER = 64


class FailingRouter(PatchRouter):
    """Refuses one specific connection"""

    def __init__(self, buffer_size, fail_on):
        super().__init__(buffer_size)
        self.fail_on = fail_on

    def connect(self, source_id, dest_id, param=None):
        if (source_id, dest_id) == self.fail_on:
            return False
        return super().connect(source_id, dest_id, param)


class TestSignalRouter:

    def setup_method(self):
        self.sr = SignalRouter(SR, BUFFER)

    def test_node_count(self):
        # input, dry, wet, output + (delay, lfo, depth) per voice
        assert len(self.sr.router.nodes) == 4 + 3 * 4
        assert self.sr.built

    def test_expected_edges(self):
        edges = set(self.sr.router.get_connections())
        assert ("input", "dry", None) in edges
        assert ("dry", "output", None) in edges
        assert ("wet", "output", None) in edges
        for i in range(4):
            assert (f"voice{i}_lfo", f"voice{i}_depth", None) in edges
            assert (f"voice{i}_depth", f"voice{i}_delay", "delay_time") in edges
            assert ("input", f"voice{i}_delay", None) in edges
            assert (f"voice{i}_delay", "wet", None) in edges
        assert len(edges) == 3 + 4 * 4

    def test_io_and_order(self):
        router = self.sr.router
        assert router.input_id == "input"
        assert router.output_id == "output"
        order = router.get_processing_order()
        assert order.index("input") < order.index("voice0_delay") < order.index("wet")
        assert order.index("voice2_lfo") < order.index("voice2_depth") < order.index("voice2_delay")
        assert order[-1] == "output"

    def test_voices_are_staggered(self):
        voices = list(self.sr.voice_bank)
        for i, voice in enumerate(voices):
            assert voice.base_delay == pytest.approx(BASE_DELAY + i * DELAY_STEP)
            assert voice.lfo_rate == pytest.approx(LFO_RATE + i * LFO_RATE_STEP)
            assert voice.delay.delay_time.target == pytest.approx(voice.base_delay)
        assert len({v.lfo_rate for v in voices}) == 4
        assert len({v.base_delay for v in voices}) == 4

    def test_initial_levels(self):
        assert self.sr.dry_gain.target == 1.0
        assert self.sr.wet_gain.target == 0.0
        assert all(p.target == 0.0 for p in self.sr.depth_params)

    def test_dry_only_passes_input(self):
        x = np.sin(np.linspace(0, 10, BUFFER))
        np.testing.assert_allclose(self.sr.process(x, frame=0), x)

    def test_oscillators_run_at_zero_depth(self):
        for block in range(5):
            self.sr.process(np.zeros(BUFFER), frame=block * BUFFER)
        for voice in self.sr.voice_bank:
            assert voice.lfo.running
            assert voice.lfo.frames_generated == 5 * BUFFER

    def test_failed_connection_tears_down(self):
        router = FailingRouter(BUFFER, fail_on=("input", "voice2_delay"))
        with pytest.raises(InitializationError):
            SignalRouter(SR, BUFFER, router=router)
        assert router.nodes == {}
        assert router.get_connections() == []

    def test_failed_output_edge_tears_down(self):
        router = FailingRouter(BUFFER, fail_on=("wet", "output"))
        with pytest.raises(InitializationError):
            SignalRouter(SR, BUFFER, router=router)
        assert router.nodes == {}

    def test_invalid_settings(self):
        with pytest.raises(InitializationError):
            SignalRouter(SR, BUFFER, num_voices=0)
        with pytest.raises(InitializationError):
            SignalRouter(SR, BUFFER, max_delay=0.008)

    def test_teardown(self):
        self.sr.teardown()
        assert not self.sr.built
        assert self.sr.router.nodes == {}
