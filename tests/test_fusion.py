"""
Unit tests for FingerPresenceFusion.
Run with:  pytest tests/test_fusion.py
"""

from __future__ import annotations

import pytest

from pulse_sense.calibration import AdaptiveCalibrator
from pulse_sense.config import FusionConfig
from pulse_sense.detection import FingerPresenceFusion
from pulse_sense.types import DetectionVote, EnvironmentObservation


def _fusion(**overrides) -> FingerPresenceFusion:
    return FingerPresenceFusion(AdaptiveCalibrator(), FusionConfig(**overrides))


class TestFingerPresenceFusion:

    def test_default_sources_registered(self):
        fusion = _fusion()
        assert set(fusion.sources) == {"amplitude", "rhythm", "signal_quality"}

    def test_no_votes_not_detected(self):
        state = _fusion().fuse(0.0)
        assert state.detected is False
        assert state.confidence == 0.0
        assert state.recent_sources == 0

    def test_threshold_from_sensitivity(self):
        fusion = _fusion()
        assert fusion.threshold() == pytest.approx(0.65)
        fusion.calibrator.observe(
            EnvironmentObservation(noise=0.9, brightness=120.0, motion=0.0, timestamp=0.0)
        )
        # sensitivity 0.7 -> 0.72
        assert fusion.threshold() == pytest.approx(0.5 * (2.0 - 0.72))

    def test_first_change_honored(self):
        fusion = _fusion()
        fusion.update_source("amplitude", True, 1.0, 0.0)
        state = fusion.fuse(0.0)
        assert state.detected is True
        assert state.changed is True
        assert state.last_change_time == 0.0

    def test_global_hysteresis(self):
        fusion = _fusion()
        transitions = []
        fusion.add_listener(transitions.append)

        fusion.update_source("amplitude", True, 1.0, 0.0)
        assert fusion.fuse(0.0).detected is True

        fusion.update_source("amplitude", False, 0.0, 500.0)
        state = fusion.fuse(500.0)
        assert state.detected is True
        assert state.changed is False
        assert state.pending is False

        fusion.update_source("amplitude", False, 0.0, 1000.0)
        state = fusion.fuse(1000.0)
        assert state.detected is False
        assert state.changed is True
        assert state.pending is None

        assert [s.detected for s in transitions] == [True, False]

    def test_pending_dropped_when_evidence_returns(self):
        fusion = _fusion()
        fusion.update_source("amplitude", True, 1.0, 0.0)
        fusion.fuse(0.0)
        fusion.update_source("amplitude", False, 0.0, 200.0)
        assert fusion.fuse(200.0).pending is False
        fusion.update_source("amplitude", True, 1.0, 400.0)
        state = fusion.fuse(400.0)
        assert state.detected is True
        assert state.pending is None

    def test_age_decay(self):
        fusion = _fusion()
        fusion.update_source("a", True, 1.0, 0.0)
        fusion.update_source("b", False, 0.0, 9000.0)
        state = fusion.fuse(9000.0)
        # weights: a = 1.0 * 0.1 (floor), b = 1.0
        assert state.confidence == pytest.approx(0.1 / 1.1)
        assert state.active_sources == 1
        assert state.recent_sources == 2

    def test_stale_votes_ignored(self):
        fusion = _fusion()
        fusion.update_source("amplitude", True, 1.0, 0.0)
        assert fusion.fuse(10000.0).recent_sources == 1
        state = fusion.fuse(10001.0)
        assert state.recent_sources == 0
        assert state.confidence == 0.0

    def test_source_weights(self):
        fusion = _fusion()
        fusion.update_source("amplitude", True, 1.0, 0.0)
        fusion.update_source("rhythm", False, 0.0, 0.0)
        state = fusion.fuse(0.0)
        assert state.confidence == pytest.approx(1.0 / (1.0 + 1.3))

    def test_weight_and_hysteresis_clamped(self):
        fusion = _fusion()
        fusion.set_source_weight("amplitude", 5.0)
        fusion.set_hysteresis(60000.0)
        stats = fusion.statistics(0.0)
        assert stats["sources"]["amplitude"]["weight"] == 2.0
        assert stats["settings"]["hysteresis_ms"] == 5000.0

    def test_vote_confidence_clamped(self):
        fusion = _fusion()
        fusion.submit(DetectionVote("amplitude", True, 3.5, 0.0))
        assert fusion.vote("amplitude").confidence == 1.0

    def test_unknown_source_auto_registered(self):
        fusion = _fusion()
        fusion.update_source("ppg_model", True, 0.9, 0.0)
        assert "ppg_model" in fusion.sources

    def test_failing_listener_isolated(self):
        fusion = _fusion()
        seen = []

        def broken(state):
            raise RuntimeError("listener bug")

        fusion.add_listener(broken)
        fusion.add_listener(seen.append)
        fusion.update_source("amplitude", True, 1.0, 0.0)
        assert fusion.fuse(0.0).detected is True
        assert len(seen) == 1

    def test_remove_listener(self):
        fusion = _fusion()
        seen = []
        fusion.add_listener(seen.append)
        fusion.remove_listener(seen.append)
        fusion.update_source("amplitude", True, 1.0, 0.0)
        fusion.fuse(0.0)
        assert seen == []

    def test_reset_keeps_registrations(self):
        fusion = _fusion()
        fusion.set_source_weight("amplitude", 1.8)
        fusion.update_source("amplitude", True, 1.0, 0.0)
        fusion.fuse(0.0)
        fusion.reset()
        assert fusion.detected is False
        assert fusion.state.last_change_time is None
        stats = fusion.statistics(0.0)
        assert stats["sources"]["amplitude"]["weight"] == pytest.approx(1.8)
        assert stats["current_state"]["state_changes"] == 0
