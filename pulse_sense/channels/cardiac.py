"""
Cardiac channel: beat detection, RR intervals, heart rate and arrhythmia.

Beat detection runs a three-state machine on the channel's smoothed values::

    IDLE ──(rising local max above threshold)──▶ PEAK_CANDIDATE
    PEAK_CANDIDATE ──(value still rising)──▶ PEAK_CANDIDATE (candidate moves)
    PEAK_CANDIDATE ──(value falls, refractory elapsed)──▶ ACCEPTED
    PEAK_CANDIDATE ──(value falls, inside refractory)──▶ IDLE
    ACCEPTED ──(next sample)──▶ IDLE

A candidate must be the maximum of the last ``peak_window`` buffered values
and exceed the adaptive threshold: 60 % of the mean of the last ten accepted
peak amplitudes, or ``bootstrap_threshold`` until three peaks exist.  The
refractory period (250 ms) is measured from the previous accepted peak.

Each accepted peak after the first yields an RR interval.  Intervals outside
[250, 2000] ms are discarded; the peak still counts as a beat and becomes
the reference for the next interval.

References
----------
- Task Force of the ESC/NASPE, "Heart rate variability: standards of
  measurement." Circulation, 1996.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from typing import Deque, Optional, Tuple

import numpy as np

from ..config import CardiacConfig
from ..signal_stats import clamp, coefficient_of_variation
from ..types import CardiacResult, CardiacState, SuggestedAdjustments, VitalSignType
from .base import SpecializedChannel

logger = logging.getLogger(__name__)

PEAK_THRESHOLD_BOUNDS = (0.05, 10.0)


class RhythmTracker:
    """
    RR-interval bookkeeping for one monitoring session.

    The arrhythmia counter only ever grows, by one per transition *into* the
    arrhythmic state.  :meth:`reset` keeps it; :meth:`full_reset` zeroes it.
    """

    def __init__(self, config: Optional[CardiacConfig] = None) -> None:
        self.config = config or CardiacConfig()
        self._intervals: Deque[float] = deque(maxlen=self.config.rr_capacity)
        self._heart_rate: int = 0
        self._is_arrhythmia: bool = False
        self._arrhythmia_count: int = 0
        self._deviation: float = 0.0
        self._rmssd: float = 0.0

    def add_interval(self, rr_ms: float) -> bool:
        """Store *rr_ms* if physiologically plausible.  Returns whether it was stored."""
        cfg = self.config
        if not (math.isfinite(rr_ms) and cfg.rr_min_ms <= rr_ms <= cfg.rr_max_ms):
            logger.debug("Discarding RR interval %.1f ms", rr_ms)
            return False

        self._intervals.append(float(rr_ms))
        mean_rr = float(np.mean(self._intervals))
        # halves round up, not to even
        bpm = math.floor(60000.0 / mean_rr + 0.5)
        self._heart_rate = int(clamp(bpm, cfg.hr_min, cfg.hr_max))

        arrhythmic = self._classify()
        if arrhythmic and not self._is_arrhythmia:
            self._arrhythmia_count += 1
            logger.info(
                "Arrhythmia detected: hr=%d deviation=%.2f rmssd=%.1f ms (count=%d)",
                self._heart_rate, self._deviation, self._rmssd, self._arrhythmia_count,
            )
        self._is_arrhythmia = arrhythmic
        return True

    @property
    def intervals(self) -> Tuple[float, ...]:
        return tuple(self._intervals)

    @property
    def heart_rate(self) -> int:
        return self._heart_rate

    @property
    def is_arrhythmia(self) -> bool:
        return self._is_arrhythmia

    @property
    def arrhythmia_count(self) -> int:
        return self._arrhythmia_count

    @property
    def deviation(self) -> float:
        """Max relative deviation from the mean over the rhythm window."""
        return self._deviation

    @property
    def rmssd(self) -> float:
        return self._rmssd

    def reset(self) -> None:
        self._intervals.clear()
        self._heart_rate = 0
        self._is_arrhythmia = False
        self._deviation = 0.0
        self._rmssd = 0.0

    def full_reset(self) -> None:
        self.reset()
        self._arrhythmia_count = 0

    def _classify(self) -> bool:
        cfg = self.config
        window = list(self._intervals)[-cfg.rhythm_window:]
        if len(window) < cfg.min_rhythm_intervals:
            self._deviation = 0.0
            self._rmssd = 0.0
            return False

        rr = np.asarray(window, dtype=np.float64)
        mean_rr = float(np.mean(rr))
        self._deviation = float(np.max(np.abs(rr - mean_rr)) / mean_rr)
        self._rmssd = float(np.sqrt(np.mean(np.diff(rr) ** 2)))

        hr, dev = self._heart_rate, self._deviation
        return (
            (hr > cfg.tachycardia_bpm and dev > cfg.tachycardia_deviation)
            or (hr < cfg.bradycardia_bpm and dev > cfg.bradycardia_deviation)
            or dev > cfg.max_deviation
            or (self._rmssd > cfg.rmssd_ms and dev > cfg.rmssd_deviation)
        )


class CardiacChannel(SpecializedChannel):
    """
    Cardiac channel with beat detection.

    The optimised output emphasises rising peaks (× ``peak_gain``) and
    falling valleys (× ``valley_gain``); :attr:`last_result` carries the
    beat analysis of the most recent sample.
    """

    channel_type = VitalSignType.CARDIAC
    config_class = CardiacConfig

    def __init__(self, config: Optional[CardiacConfig] = None) -> None:
        super().__init__(config)
        self.tracker = RhythmTracker(self.config)
        self._peak_threshold = clamp(self.config.bootstrap_threshold, *PEAK_THRESHOLD_BOUNDS)
        self._threshold_floor: Optional[float] = None
        self._state = CardiacState.IDLE
        self._candidate: Optional[Tuple[float, float]] = None
        self._peak_amplitudes: Deque[float] = deque(maxlen=self.config.peak_history)
        self._last_peak_time: Optional[float] = None
        self._accepted_peaks: int = 0
        self._last_result = CardiacResult(timestamp=0.0)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def last_result(self) -> CardiacResult:
        return self._last_result

    @property
    def state(self) -> CardiacState:
        return self._state

    @property
    def heart_rate(self) -> int:
        return self.tracker.heart_rate

    @property
    def arrhythmia_count(self) -> int:
        return self.tracker.arrhythmia_count

    @property
    def accepted_peaks(self) -> int:
        return self._accepted_peaks

    @property
    def current_threshold(self) -> float:
        """
        Adaptive peak threshold in effect for the next candidate.

        A ``peak_threshold`` from feedback replaces the bootstrap threshold
        and, once enough peaks exist, acts as a floor under the adaptive one.
        """
        if len(self._peak_amplitudes) < self.config.bootstrap_peaks:
            return self._peak_threshold
        adaptive = self.config.peak_threshold_ratio * float(np.mean(self._peak_amplitudes))
        if self._threshold_floor is not None:
            return max(adaptive, self._threshold_floor)
        return adaptive

    def full_reset(self) -> None:
        with self._lock:
            self.reset()
            self.tracker.full_reset()
            self._last_result = CardiacResult(timestamp=0.0)

    # ------------------------------------------------------------------
    # SpecializedChannel hooks
    # ------------------------------------------------------------------

    def _transform(self, value: float, timestamp: float) -> float:
        peak_time = self._step(value, timestamp)
        self._last_result = self._build_result(timestamp, peak_time)
        return self._emphasise(value)

    def _apply_extra_feedback(self, adjustments: SuggestedAdjustments) -> None:
        value = adjustments.peak_threshold
        if value is not None and math.isfinite(value):
            self._peak_threshold = clamp(value, *PEAK_THRESHOLD_BOUNDS)
            self._threshold_floor = self._peak_threshold

    def _reset_state(self) -> None:
        self.tracker.reset()
        self._state = CardiacState.IDLE
        self._candidate = None
        self._peak_amplitudes.clear()
        self._last_peak_time = None
        self._accepted_peaks = 0
        self._last_result = CardiacResult(
            timestamp=0.0, arrhythmia_count=self.tracker.arrhythmia_count
        )

    # ------------------------------------------------------------------
    # Beat detection
    # ------------------------------------------------------------------

    def _step(self, value: float, timestamp: float) -> Optional[float]:
        """Advance the state machine; return the peak time if one was accepted."""
        cfg = self.config
        if len(self._buffer) < cfg.min_samples:
            self._state = CardiacState.IDLE
            self._candidate = None
            return None

        if self._state is CardiacState.ACCEPTED:
            self._state = CardiacState.IDLE

        if self._state is CardiacState.PEAK_CANDIDATE:
            cand_value, cand_time = self._candidate
            if value > cand_value:
                self._candidate = (value, timestamp)
                return None
            self._candidate = None
            if self._last_peak_time is None or cand_time - self._last_peak_time >= cfg.refractory_ms:
                self._accept(cand_value, cand_time)
                self._state = CardiacState.ACCEPTED
                return cand_time
            self._state = CardiacState.IDLE
            return None

        window = self._recent(cfg.peak_window)
        if value >= max(window) and value > window[-2] and value > self.current_threshold:
            self._state = CardiacState.PEAK_CANDIDATE
            self._candidate = (value, timestamp)
        return None

    def _accept(self, amplitude: float, peak_time: float) -> None:
        if self._last_peak_time is not None:
            self.tracker.add_interval(peak_time - self._last_peak_time)
        self._last_peak_time = peak_time
        self._peak_amplitudes.append(amplitude)
        self._accepted_peaks += 1

    def _build_result(self, timestamp: float, peak_time: Optional[float]) -> CardiacResult:
        tracker = self.tracker
        if len(self._buffer) < self.config.min_samples or self._accepted_peaks < 2:
            return CardiacResult(
                timestamp=timestamp,
                heart_rate=tracker.heart_rate,
                arrhythmia_count=tracker.arrhythmia_count,
                rr_intervals=tracker.intervals,
                state=self._state,
            )
        return CardiacResult(
            timestamp=timestamp,
            is_peak=peak_time is not None,
            heart_rate=tracker.heart_rate,
            confidence=self._confidence(),
            is_arrhythmia=tracker.is_arrhythmia,
            arrhythmia_count=tracker.arrhythmia_count,
            rr_intervals=tracker.intervals,
            state=self._state,
            peak_timestamp=peak_time,
        )

    def _confidence(self) -> float:
        cfg = self.config
        intervals = self.tracker.intervals
        rr_score = 0.0
        if len(intervals) >= 2:
            rr_score = clamp(1.0 - coefficient_of_variation(intervals), 0.0, 1.0)
        amplitude_score = 0.0
        if len(self._peak_amplitudes) >= 2:
            amplitude_score = clamp(
                1.0 - coefficient_of_variation(self._peak_amplitudes), 0.0, 1.0
            )
        return clamp(cfg.rr_weight * rr_score + cfg.amplitude_weight * amplitude_score, 0.0, 1.0)

    def _emphasise(self, value: float) -> float:
        recent = self._recent(3)
        if len(recent) < 3:
            return value
        before, previous = recent[0], recent[1]
        if value > self.current_threshold and value > previous > before:
            return value * self.config.peak_gain
        if value < previous < before:
            return value * self.config.valley_gain
        return value
