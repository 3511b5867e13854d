"""
Signal-quality detector.

Quality is the mean of the amplitude and stability scores of the last few
filtered values.  Detection is asserted when quality reaches a floor that
rises with the calibrated false-positive reduction.
"""

from __future__ import annotations

import math
from collections import deque
from typing import Deque, Optional

from ..calibration import AdaptiveCalibrator
from ..config import QualityDetectorConfig
from ..signal_stats import amplitude_score, stability_score
from ..types import DetectionVote, Sample
from .base import DetectionSource


class SignalQualityDetector(DetectionSource):
    source_id = "signal_quality"

    def __init__(
        self,
        calibrator: AdaptiveCalibrator,
        config: Optional[QualityDetectorConfig] = None,
    ) -> None:
        super().__init__(calibrator)
        self.config = config or QualityDetectorConfig()
        self._values: Deque[float] = deque(maxlen=self.config.window)
        self._quality: float = 0.0

    @property
    def quality(self) -> float:
        return self._quality

    @property
    def floor(self) -> float:
        params = self.calibrator.params
        return self.config.base_floor + self.config.floor_gain * params.false_positive_reduction

    def update(self, sample: Sample) -> DetectionVote:
        if math.isfinite(sample.filtered_value):
            self._values.append(sample.filtered_value)
        if len(self._values) < self.config.min_samples:
            self._quality = 0.0
            return self._cast(False, 0.0, sample.timestamp)

        values = list(self._values)
        self._quality = 0.5 * amplitude_score(values, self.config.amplitude_reference) \
            + 0.5 * stability_score(values)
        return self._cast(self._quality >= self.floor, self._quality, sample.timestamp)

    def _reset_state(self) -> None:
        self._values.clear()
        self._quality = 0.0
