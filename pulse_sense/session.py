"""
Monitoring session: the per-tick processing pipeline.

A session owns everything one measurement needs: the calibrator, the
channel hub, the detection sources, the presence fusion and an event
dispatcher.  Nothing is global, so several sessions can run side by side.

Per sample, :meth:`MonitoringSession.process`

1. runs the optional enhancer (falling back to the raw filtered value),
2. feeds the value to every channel through the hub,
3. updates the amplitude, rhythm and quality detectors and submits their
   votes,
4. fuses the votes at the sample timestamp,
5. publishes beat, arrhythmia, presence and fault events.

``stop()`` only clears a flag; a sample already being processed finishes
and later samples are ignored.
"""

from __future__ import annotations

import dataclasses
import logging
import math
import threading
from concurrent.futures import Executor
from typing import Any, Dict, List, Optional, Tuple

from .calibration import AdaptiveCalibrator
from .channels import CardiacChannel
from .config import MonitorConfig
from .detection import (
    AmplitudeDetector,
    DetectionSource,
    FingerPresenceFusion,
    RhythmPatternDetector,
    SignalQualityDetector,
)
from .enhancement import Enhancer, NullEnhancer
from .events import (
    ArrhythmiaEvent,
    BeatEvent,
    CalibrationUpdated,
    ChannelFault,
    EventDispatcher,
    PresenceChanged,
)
from .hub import ChannelHub, create_default_hub
from .types import (
    CardiacResult,
    ChannelFeedback,
    DetectionState,
    EnvironmentObservation,
    Sample,
    TickResult,
    VitalSignType,
)

logger = logging.getLogger(__name__)


class MonitoringSession:
    """
    One PPG measurement.

    Parameters
    ----------
    config:
        Full monitor configuration; defaults are used when omitted.
    enhancer:
        Optional signal enhancer run before the channels.
    executor:
        Optional executor handed to the hub for parallel channel updates.
    """

    def __init__(
        self,
        config: Optional[MonitorConfig] = None,
        enhancer: Optional[Enhancer] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        self.config = config or MonitorConfig()
        self.enhancer: Enhancer = enhancer or NullEnhancer()
        self.events = EventDispatcher()

        self.calibrator = AdaptiveCalibrator(self.config.calibration)
        self.hub: ChannelHub = create_default_hub(self.config, executor=executor)
        self.fusion = FingerPresenceFusion(self.calibrator, self.config.fusion)
        self.detectors: List[DetectionSource] = [
            AmplitudeDetector(self.calibrator, self.config.amplitude),
            RhythmPatternDetector(self.calibrator, self.config.rhythm),
            SignalQualityDetector(self.calibrator, self.config.quality),
        ]
        for detector in self.detectors:
            self.fusion.register_source(detector.source_id)
        self.fusion.add_listener(self._on_presence_change)

        self._lock = threading.RLock()
        self._running = False
        self._samples_processed = 0
        self._last_arrhythmia_count = 0
        self._last_tick: Optional[TickResult] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        with self._lock:
            self._running = True
        logger.info("Monitoring session started")

    def stop(self) -> None:
        """Stop accepting samples; waits for an in-flight sample to finish."""
        with self._lock:
            self._running = False
        logger.info("Monitoring session stopped after %d samples", self._samples_processed)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def samples_processed(self) -> int:
        return self._samples_processed

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process(self, sample: Sample) -> Optional[TickResult]:
        """Run one sample through the pipeline; *None* if the session is stopped."""
        with self._lock:
            if not self._running:
                return None

            value, enhancement_confidence = self._enhance(sample)
            if value != sample.filtered_value:
                sample = dataclasses.replace(sample, filtered_value=value)

            self.hub.process(sample)
            outputs = self.hub.outputs
            for channel_type, output in outputs.items():
                if output.faulted:
                    self.events.publish(ChannelFault(
                        timestamp=sample.timestamp,
                        channel=channel_type,
                        held_value=output.value,
                        error=output.error,
                    ))

            cardiac = self._cardiac_result(sample.timestamp)
            self._update_detectors(sample)
            presence = self.fusion.fuse(sample.timestamp)

            self._samples_processed += 1
            tick = TickResult(
                timestamp=sample.timestamp,
                channels=outputs,
                cardiac=cardiac,
                presence=presence,
                enhancement_confidence=enhancement_confidence,
            )
            self._last_tick = tick
            return tick

    def observe_environment(self, observation: EnvironmentObservation) -> bool:
        with self._lock:
            applied = self.calibrator.observe(observation)
            if applied:
                self.events.publish(CalibrationUpdated(
                    timestamp=observation.timestamp,
                    params=self.calibrator.params,
                ))
            return applied

    def apply_feedback(self, feedback: ChannelFeedback) -> bool:
        with self._lock:
            return self.hub.apply_feedback(feedback)

    # ------------------------------------------------------------------
    # Reset and inspection
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """
        Clear signal history and the presence decision.

        Calibration and the arrhythmia counter survive; use
        :meth:`full_reset` to zero the counter as well.
        """
        with self._lock:
            self.hub.reset()
            self._reset_detection()
        logger.info("Session reset")

    def full_reset(self) -> None:
        with self._lock:
            self.hub.full_reset()
            self._reset_detection()
            self._last_arrhythmia_count = 0
            self._samples_processed = 0
            self.events.clear_history()
        logger.info("Session fully reset")

    @property
    def presence(self) -> DetectionState:
        return self.fusion.state

    @property
    def cardiac(self) -> CardiacChannel:
        return self.hub.get(VitalSignType.CARDIAC)  # type: ignore[return-value]

    @property
    def last_tick(self) -> Optional[TickResult]:
        return self._last_tick

    def snapshot(self) -> Dict[str, Any]:
        """Point-in-time view of the session state, for diagnostics."""
        with self._lock:
            cardiac = self.cardiac.last_result if self.cardiac is not None else None
            presence = self.fusion.state
            return {
                "running": self._running,
                "samples_processed": self._samples_processed,
                "calibration": dataclasses.asdict(self.calibrator.params),
                "presence": dataclasses.asdict(presence),
                "detectors": {
                    d.source_id: dataclasses.asdict(d.vote) for d in self.detectors
                },
                "channels": {
                    channel_type.value: dataclasses.asdict(output)
                    for channel_type, output in self.hub.outputs.items()
                },
                "cardiac": dataclasses.asdict(cardiac) if cardiac is not None else None,
            }

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _enhance(self, sample: Sample) -> Tuple[float, float]:
        try:
            value, confidence = self.enhancer.enhance(sample)
        except Exception:
            logger.exception("Enhancer failed, using unenhanced value")
            return sample.filtered_value, 0.0
        if not (math.isfinite(value) and math.isfinite(confidence)):
            logger.warning("Enhancer returned non-finite output, using unenhanced value")
            return sample.filtered_value, 0.0
        return float(value), min(max(float(confidence), 0.0), 1.0)

    def _cardiac_result(self, timestamp: float) -> Optional[CardiacResult]:
        channel = self.cardiac
        if channel is None:
            return None
        output = self.hub.outputs.get(VitalSignType.CARDIAC)
        if output is None or output.faulted:
            return None

        result = channel.last_result
        if result.is_peak:
            self.events.publish(BeatEvent(
                timestamp=timestamp,
                heart_rate=result.heart_rate,
                confidence=result.confidence,
                rr_intervals=result.rr_intervals,
            ))
        if result.arrhythmia_count > self._last_arrhythmia_count:
            self.events.publish(ArrhythmiaEvent(
                timestamp=timestamp,
                heart_rate=result.heart_rate,
                arrhythmia_count=result.arrhythmia_count,
            ))
        self._last_arrhythmia_count = result.arrhythmia_count
        return result

    def _update_detectors(self, sample: Sample) -> None:
        for detector in self.detectors:
            try:
                vote = detector.update(sample)
            except Exception:
                logger.exception("Detection source %s failed", detector.source_id)
                continue
            self.fusion.submit(vote)

    def _reset_detection(self) -> None:
        for detector in self.detectors:
            detector.reset()
        self.fusion.reset()
        self._last_tick = None

    def _on_presence_change(self, state: DetectionState) -> None:
        self.events.publish(PresenceChanged(
            timestamp=state.timestamp,
            detected=state.detected,
            confidence=state.confidence,
        ))
