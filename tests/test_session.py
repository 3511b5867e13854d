"""
End-to-end tests for MonitoringSession and the event dispatcher.
Run with:  pytest tests/test_session.py
"""

from __future__ import annotations

import numpy as np
import pytest

from pulse_sense import MonitorConfig, MonitoringSession
from pulse_sense.enhancement import Enhancer, NullEnhancer
from pulse_sense.errors import ConfigurationError
from pulse_sense.events import (
    ArrhythmiaEvent,
    BeatEvent,
    CalibrationUpdated,
    ChannelFault,
    Event,
    EventDispatcher,
    PresenceChanged,
)
from pulse_sense.types import (
    ChannelFeedback,
    EnvironmentObservation,
    Sample,
    SuggestedAdjustments,
    VitalSignType,
)

FPS = 30.0


def _pulse(n: int, offset: float = 2.0, start: int = 0):
    """1.2 Hz pulse riding on a DC offset, 30 samples/s."""
    for i in range(start, start + n):
        value = float(offset + np.sin(2 * np.pi * 1.2 * i / FPS))
        yield Sample(timestamp=i * 1000.0 / FPS, raw_value=value, filtered_value=value)


def _session(**overrides) -> MonitoringSession:
    data = {"cardiac": {"filter_strength": 0.0}}
    data.update(overrides)
    session = MonitoringSession(MonitorConfig.from_dict(data))
    session.start()
    return session


class ScaleEnhancer:
    def __init__(self, factor: float) -> None:
        self.factor = factor

    def enhance(self, sample):
        return sample.filtered_value * self.factor, 0.8


class BrokenEnhancer:
    def enhance(self, sample):
        raise RuntimeError("model unavailable")


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

class TestSessionLifecycle:

    def test_not_running_until_started(self):
        session = MonitoringSession()
        sample = next(_pulse(1))
        assert session.is_running is False
        assert session.process(sample) is None

    def test_stop_flag(self):
        session = _session()
        results = [session.process(s) for s in _pulse(10)]
        assert all(r is not None for r in results)
        session.stop()
        assert session.is_running is False
        assert session.process(next(_pulse(1, start=10))) is None
        assert session.samples_processed == 10

    def test_restart_after_stop(self):
        session = _session()
        session.stop()
        session.start()
        assert session.process(next(_pulse(1))) is not None


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class TestSessionPipeline:

    def test_tick_result_shape(self):
        session = _session()
        tick = session.process(next(_pulse(1)))
        assert tick.timestamp == 0.0
        assert set(tick.channels) == set(VitalSignType)
        assert set(tick.values) == set(VitalSignType)
        assert tick.cardiac is not None
        assert tick.enhancement_confidence == 1.0

    def test_presence_detected_on_pulse(self):
        session = _session()
        changes = []
        session.events.subscribe(PresenceChanged, changes.append)

        ticks = [session.process(s) for s in _pulse(300)]

        assert ticks[0].presence.detected is False
        assert ticks[-1].presence.detected is True
        assert len(changes) == 1
        assert changes[0].detected is True
        first = next(t for t in ticks if t.presence.detected)
        assert first.presence.changed is True
        assert first.timestamp == changes[0].timestamp

    def test_flat_signal_no_presence(self):
        session = _session()
        changes = []
        session.events.subscribe(PresenceChanged, changes.append)
        for i in range(150):
            tick = session.process(Sample(timestamp=i * 33.0, raw_value=0.0, filtered_value=0.0))
        assert tick.presence.detected is False
        assert changes == []

    def test_beat_events(self):
        session = _session()
        beats = []
        session.events.subscribe(BeatEvent, beats.append)
        for s in _pulse(300):
            session.process(s)
        assert len(beats) == 11
        assert all(b.heart_rate == 72 for b in beats)
        assert session.cardiac.heart_rate == 72

    def test_arrhythmia_event_on_edge(self):
        session = _session()
        events = []
        session.events.subscribe(ArrhythmiaEvent, events.append)
        for rr in (800.0, 800.0, 800.0, 400.0):
            session.cardiac.tracker.add_interval(rr)
        session.process(next(_pulse(1)))
        session.process(next(_pulse(1, start=1)))
        assert len(events) == 1
        assert events[0].arrhythmia_count == 1

    def test_channel_fault_event(self):
        session = _session()
        faults = []
        session.events.subscribe(ChannelFault, faults.append)
        session.process(next(_pulse(1)))
        tick = session.process(Sample(timestamp=33.0, raw_value=0.0,
                                      filtered_value=float("inf")))
        assert {f.channel for f in faults} == set(VitalSignType)
        assert all(out.faulted for out in tick.channels.values())
        assert tick.cardiac is None

    def test_enhancer_value_used(self):
        plain = _session()
        boosted = MonitoringSession(
            MonitorConfig.from_dict({"cardiac": {"filter_strength": 0.0}}),
            enhancer=ScaleEnhancer(2.0),
        )
        boosted.start()
        sample = next(_pulse(1))
        a = plain.process(sample)
        b = boosted.process(sample)
        assert b.enhancement_confidence == pytest.approx(0.8)
        assert b.values[VitalSignType.CARDIAC] == pytest.approx(
            2.0 * a.values[VitalSignType.CARDIAC]
        )

    def test_broken_enhancer_falls_back(self):
        session = MonitoringSession(enhancer=BrokenEnhancer())
        session.start()
        reference = MonitoringSession()
        reference.start()
        sample = next(_pulse(1))
        tick = session.process(sample)
        assert tick is not None
        assert tick.enhancement_confidence == 0.0
        assert tick.values == reference.process(sample).values

    def test_null_enhancer_protocol(self):
        enhancer = NullEnhancer()
        assert isinstance(enhancer, Enhancer)
        sample = next(_pulse(1))
        assert enhancer.enhance(sample) == (sample.filtered_value, 1.0)


# ---------------------------------------------------------------------------
# Calibration, feedback and reset
# ---------------------------------------------------------------------------

class TestSessionControl:

    def test_observe_environment_publishes(self):
        session = _session()
        updates = []
        session.events.subscribe(CalibrationUpdated, updates.append)
        obs = EnvironmentObservation(noise=0.9, brightness=120.0, motion=0.0, timestamp=0.0)
        assert session.observe_environment(obs) is True
        assert session.observe_environment(obs) is False
        assert len(updates) == 1
        assert updates[0].params.amplitude_threshold == pytest.approx(0.17)

    def test_feedback(self):
        session = _session()
        assert session.apply_feedback(ChannelFeedback(
            channel_id="blood_pressure",
            suggested_adjustments=SuggestedAdjustments(baseline_correction=0.1),
        )) is True
        assert session.hub.get("blood_pressure").baseline_correction == pytest.approx(0.1)

    def test_feedback_disabled(self):
        session = _session(enable_feedback=False)
        assert session.apply_feedback(ChannelFeedback(
            channel_id="spo2",
            suggested_adjustments=SuggestedAdjustments(amplification=2.0),
        )) is False

    def test_reset_preserves_calibration_and_counter(self):
        session = _session()
        session.observe_environment(
            EnvironmentObservation(noise=0.9, brightness=120.0, motion=0.0, timestamp=0.0)
        )
        calibrated = session.calibrator.params
        for s in _pulse(150):
            session.process(s)
        for rr in (800.0, 800.0, 800.0, 400.0):
            session.cardiac.tracker.add_interval(rr)

        session.reset()

        assert session.calibrator.params == calibrated
        assert session.cardiac.arrhythmia_count == 1
        assert session.presence.detected is False
        assert session.cardiac.accepted_peaks == 0
        assert all(d.detected is False for d in session.detectors)

    def test_full_reset_zeroes_counter(self):
        session = _session()
        for rr in (800.0, 800.0, 800.0, 400.0):
            session.cardiac.tracker.add_interval(rr)
        session.full_reset()
        assert session.cardiac.arrhythmia_count == 0
        assert session.samples_processed == 0

    def test_presence_redetected_after_reset(self):
        session = _session()
        changes = []
        session.events.subscribe(PresenceChanged, changes.append)
        for s in _pulse(200):
            session.process(s)
        session.reset()
        for s in _pulse(200, start=200):
            session.process(s)
        assert [c.detected for c in changes] == [True, True]

    def test_snapshot(self):
        session = _session()
        for s in _pulse(30):
            session.process(s)
        snap = session.snapshot()
        assert snap["running"] is True
        assert snap["samples_processed"] == 30
        assert set(snap["channels"]) == {t.value for t in VitalSignType}
        assert set(snap["detectors"]) == {"amplitude", "rhythm", "signal_quality"}
        assert snap["calibration"]["sensitivity_level"] == pytest.approx(0.7)


class TestConfig:

    def test_from_dict_merges(self):
        cfg = MonitorConfig.from_dict({
            "cardiac": {"refractory_ms": 300},
            "fusion": {"source_weights": {"rhythm": 1.5}},
        })
        assert cfg.cardiac.refractory_ms == 300
        assert cfg.cardiac.amplification == 2.2
        assert cfg.fusion.source_weights == {
            "amplitude": 1.0, "rhythm": 1.5, "signal_quality": 0.9,
        }

    def test_from_dict_unknown_key(self):
        with pytest.raises(ConfigurationError):
            MonitorConfig.from_dict({"cardiac": {"refractory": 300}})
        with pytest.raises(ConfigurationError):
            MonitorConfig.from_dict({"ecg": {}})

    def test_invalid_value(self):
        with pytest.raises(ConfigurationError):
            MonitorConfig.from_dict({"calibration": {"rate": 1.5}})


# ---------------------------------------------------------------------------
# EventDispatcher
# ---------------------------------------------------------------------------

class TestEventDispatcher:

    def test_subscribe_and_unsubscribe(self):
        events = EventDispatcher()
        seen = []
        unsubscribe = events.subscribe(PresenceChanged, seen.append)
        events.publish(PresenceChanged(timestamp=1.0, detected=True, confidence=0.9))
        unsubscribe()
        events.publish(PresenceChanged(timestamp=2.0, detected=False, confidence=0.1))
        assert len(seen) == 1

    def test_base_class_receives_everything(self):
        events = EventDispatcher()
        seen = []
        events.subscribe(Event, seen.append)
        events.publish(BeatEvent(timestamp=1.0, heart_rate=70, confidence=0.9))
        events.publish(PresenceChanged(timestamp=2.0, detected=True, confidence=0.9))
        assert [type(e) for e in seen] == [BeatEvent, PresenceChanged]

    def test_failing_listener_does_not_block_others(self):
        events = EventDispatcher()
        seen = []

        def broken(event):
            raise ValueError("boom")

        events.subscribe(BeatEvent, broken)
        events.subscribe(BeatEvent, seen.append)
        events.publish(BeatEvent(timestamp=1.0, heart_rate=70, confidence=0.9))
        assert len(seen) == 1

    def test_history_bounded(self):
        events = EventDispatcher(history_size=5)
        for i in range(12):
            events.publish(BeatEvent(timestamp=float(i), heart_rate=60, confidence=1.0))
        history = events.history()
        assert len(history) == 5
        assert history[0].timestamp == 7.0
        assert events.history(PresenceChanged) == []
