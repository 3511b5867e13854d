"""
Rhythm-pattern detector.

Looks for a regular pulse in the last ``window_ms`` of filtered values:

1. Find peaks with :func:`scipy.signal.find_peaks`, requiring a prominence of
   ``rhythm_detection_threshold × (max - min)`` of the window.
2. Keep inter-peak intervals in [333, 1500] ms (40 – 180 BPM); at least
   70 % of the intervals must be valid.
3. With at least three valid intervals, the coefficient of variation (CV)
   decides: CV < 0.3 asserts detection.  Confidence is ``1 - CV``.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from typing import Deque, Optional, Tuple

import numpy as np
from scipy.signal import find_peaks

from ..calibration import AdaptiveCalibrator
from ..config import RhythmDetectorConfig
from ..signal_stats import coefficient_of_variation
from ..types import DetectionVote, Sample
from .base import DetectionSource

logger = logging.getLogger(__name__)

_MIN_WINDOW_SAMPLES = 10
_MIN_VALID_FRACTION = 0.7


class RhythmPatternDetector(DetectionSource):
    source_id = "rhythm"

    def __init__(
        self,
        calibrator: AdaptiveCalibrator,
        config: Optional[RhythmDetectorConfig] = None,
    ) -> None:
        super().__init__(calibrator)
        self.config = config or RhythmDetectorConfig()
        self._history: Deque[Tuple[float, float]] = deque()
        self._last_cv: float = float("inf")
        self._intervals: Tuple[float, ...] = ()

    @property
    def last_cv(self) -> float:
        return self._last_cv

    @property
    def intervals(self) -> Tuple[float, ...]:
        """Valid inter-peak intervals found in the current window."""
        return self._intervals

    def update(self, sample: Sample) -> DetectionVote:
        now = sample.timestamp
        if self._history and now < self._history[-1][0]:
            logger.debug("Timestamp went backwards, clearing rhythm history")
            self._history.clear()
        if math.isfinite(sample.filtered_value):
            self._history.append((now, sample.filtered_value))
        while self._history and now - self._history[0][0] > self.config.window_ms:
            self._history.popleft()

        intervals = self._valid_intervals()
        self._intervals = intervals
        if len(intervals) < self.config.min_intervals:
            self._last_cv = float("inf")
            return self._cast(False, 0.0, now)

        cv = coefficient_of_variation(intervals)
        self._last_cv = cv
        return self._cast(cv < self.config.max_cv, 1.0 - cv, now)

    def _valid_intervals(self) -> Tuple[float, ...]:
        if len(self._history) < _MIN_WINDOW_SAMPLES:
            return ()
        times = np.fromiter((t for t, _ in self._history), dtype=np.float64)
        values = np.fromiter((v for _, v in self._history), dtype=np.float64)
        value_range = float(np.ptp(values))
        if value_range <= 0.0:
            return ()

        prominence = self.calibrator.params.rhythm_detection_threshold * value_range
        peaks, _ = find_peaks(values, prominence=prominence)
        if len(peaks) < 2:
            return ()

        intervals = np.diff(times[peaks])
        cfg = self.config
        valid = intervals[(intervals >= cfg.min_interval_ms) & (intervals <= cfg.max_interval_ms)]
        if len(valid) < _MIN_VALID_FRACTION * len(intervals):
            return ()
        return tuple(float(i) for i in valid)

    def _reset_state(self) -> None:
        self._history.clear()
        self._last_cv = float("inf")
        self._intervals = ()
