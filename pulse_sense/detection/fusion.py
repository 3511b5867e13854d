"""
Finger-presence fusion.

Each registered source keeps one :class:`~pulse_sense.types.DetectionVote`.
:meth:`FingerPresenceFusion.fuse` combines the fresh votes:

* votes older than ``stale_after_ms`` (10 s) are ignored;
* each remaining vote is weighted by its static source weight times a
  linear age decay, from 1.0 at age 0 down to a floor of 0.1 at 10 s;
* the fused confidence is the weighted mean of
  ``confidence if detected else 0``;
* presence is asserted when that mean reaches ``0.5 × (2 - sensitivity)``.

A change of the presence state is honored only if ``hysteresis_ms``
(1000 ms) have passed since the last honored change.  A suppressed change
is remembered as *pending* and honored on the first fusion after the
window has elapsed, if the evidence still supports it.  Listeners are
called only for honored changes.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from ..calibration import AdaptiveCalibrator
from ..config import FusionConfig
from ..signal_stats import clamp
from ..types import DetectionState, DetectionVote

logger = logging.getLogger(__name__)

WEIGHT_BOUNDS = (0.1, 2.0)
HYSTERESIS_BOUNDS = (0.0, 5000.0)

TransitionListener = Callable[[DetectionState], None]


class FingerPresenceFusion:
    """
    Combines detection votes into one stable presence decision.

    Parameters
    ----------
    calibrator:
        Source of ``sensitivity_level`` for the decision threshold.
    config:
        Hysteresis, staleness and static source weights.
    """

    def __init__(
        self,
        calibrator: AdaptiveCalibrator,
        config: Optional[FusionConfig] = None,
    ) -> None:
        self.calibrator = calibrator
        self.config = config or FusionConfig()
        self._weights: Dict[str, float] = {}
        self._votes: Dict[str, DetectionVote] = {}
        self._listeners: List[TransitionListener] = []
        self._hysteresis_ms = clamp(self.config.hysteresis_ms, *HYSTERESIS_BOUNDS)
        for source_id, weight in self.config.source_weights.items():
            self.register_source(source_id, weight)
        self._clear_decision()

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def register_source(self, source_id: str, weight: Optional[float] = None) -> None:
        if weight is None:
            weight = self.config.source_weights.get(source_id, 1.0)
        self._weights[source_id] = clamp(weight, *WEIGHT_BOUNDS)
        self._votes[source_id] = DetectionVote(source_id, False, 0.0, float("-inf"))

    def set_source_weight(self, source_id: str, weight: float) -> None:
        if source_id not in self._weights:
            self.register_source(source_id, weight)
            return
        self._weights[source_id] = clamp(weight, *WEIGHT_BOUNDS)
        logger.debug("Source weight for %s set to %.2f", source_id, self._weights[source_id])

    def set_hysteresis(self, milliseconds: float) -> None:
        self._hysteresis_ms = clamp(milliseconds, *HYSTERESIS_BOUNDS)

    @property
    def sources(self) -> List[str]:
        return list(self._votes)

    def submit(self, vote: DetectionVote) -> None:
        """Overwrite the vote slot of ``vote.source_id``."""
        if vote.source_id not in self._votes:
            logger.debug("Registering unknown detection source %r", vote.source_id)
            self.register_source(vote.source_id)
        self._votes[vote.source_id] = DetectionVote(
            source_id=vote.source_id,
            detected=bool(vote.detected),
            confidence=clamp(vote.confidence, 0.0, 1.0),
            last_update_time=vote.last_update_time,
        )

    def update_source(self, source_id: str, detected: bool, confidence: float, now: float) -> None:
        self.submit(DetectionVote(source_id, detected, confidence, now))

    def vote(self, source_id: str) -> Optional[DetectionVote]:
        return self._votes.get(source_id)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: TransitionListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: TransitionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------

    @property
    def detected(self) -> bool:
        return self._detected

    @property
    def state(self) -> DetectionState:
        return self._state

    def threshold(self) -> float:
        return 0.5 * (2.0 - self.calibrator.params.sensitivity_level)

    def fuse(self, now: float) -> DetectionState:
        """Recompute the presence decision at time *now* (ms)."""
        stale_after = self.config.stale_after_ms
        weighted_sum = 0.0
        total_weight = 0.0
        active = 0
        recent = 0
        for source_id, vote in self._votes.items():
            age = max(0.0, now - vote.last_update_time)
            if age > stale_after:
                continue
            age_factor = max(self.config.min_age_weight, 1.0 - age / stale_after)
            weight = self._weights.get(source_id, 1.0) * age_factor
            weighted_sum += (vote.confidence if vote.detected else 0.0) * weight
            total_weight += weight
            recent += 1
            if vote.detected:
                active += 1

        confidence = weighted_sum / total_weight if total_weight > 0.0 else 0.0
        threshold = self.threshold()
        candidate = confidence >= threshold

        changed = False
        if candidate != self._detected:
            window_open = (
                self._last_change_time is None
                or now - self._last_change_time >= self._hysteresis_ms
            )
            if window_open:
                self._detected = candidate
                self._last_change_time = now
                self._pending = None
                self._state_changes += 1
                changed = True
                logger.info(
                    "Finger presence %s: confidence=%.2f threshold=%.2f sources=%d/%d",
                    "DETECTED" if candidate else "LOST", confidence, threshold, active, recent,
                )
            elif self._pending is not candidate:
                self._pending = candidate
                logger.debug("Presence change to %s suppressed by hysteresis", candidate)
        else:
            self._pending = None

        self._confidence = confidence
        self._state = DetectionState(
            detected=self._detected,
            confidence=confidence,
            threshold=threshold,
            active_sources=active,
            recent_sources=recent,
            changed=changed,
            pending=self._pending,
            last_change_time=self._last_change_time,
            timestamp=now,
        )
        if changed:
            self._notify(self._state)
        return self._state

    def statistics(self, now: float) -> Dict[str, Any]:
        return {
            "current_state": {
                "detected": self._detected,
                "confidence": self._confidence,
                "last_change_time": self._last_change_time,
                "pending": self._pending,
                "state_changes": self._state_changes,
            },
            "sources": {
                source_id: {
                    "detected": vote.detected,
                    "confidence": vote.confidence,
                    "age_ms": now - vote.last_update_time,
                    "weight": self._weights.get(source_id, 1.0),
                }
                for source_id, vote in self._votes.items()
            },
            "settings": {
                "hysteresis_ms": self._hysteresis_ms,
                "stale_after_ms": self.config.stale_after_ms,
                "threshold": self.threshold(),
            },
        }

    def reset(self) -> None:
        """Drop all votes and the decision; registrations and weights stay."""
        for source_id in self._votes:
            self._votes[source_id] = DetectionVote(source_id, False, 0.0, float("-inf"))
        self._clear_decision()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _clear_decision(self) -> None:
        self._detected = False
        self._confidence = 0.0
        self._last_change_time: Optional[float] = None
        self._pending: Optional[bool] = None
        self._state_changes = 0
        self._state = DetectionState(
            detected=False, confidence=0.0, threshold=self.threshold(),
            active_sources=0, recent_sources=0, changed=False, pending=None,
            last_change_time=None, timestamp=0.0,
        )

    def _notify(self, state: DetectionState) -> None:
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Presence listener %r failed", listener)
