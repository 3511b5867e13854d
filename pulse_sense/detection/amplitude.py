"""
Amplitude detector with asymmetric hysteresis.

Detection is asserted after ``required_strong`` (3) consecutive samples at
or above the calibrated amplitude threshold and retracted after
``required_weak`` (5) consecutive samples below it.  Shorter runs never flip
the state.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from ..calibration import AdaptiveCalibrator
from ..config import AmplitudeDetectorConfig
from ..types import DetectionVote, Sample
from .base import DetectionSource

logger = logging.getLogger(__name__)


class AmplitudeDetector(DetectionSource):
    source_id = "amplitude"

    def __init__(
        self,
        calibrator: AdaptiveCalibrator,
        config: Optional[AmplitudeDetectorConfig] = None,
    ) -> None:
        super().__init__(calibrator)
        self.config = config or AmplitudeDetectorConfig()
        self._detected = False
        self._consecutive_strong = 0
        self._consecutive_weak = 0
        self._signal_strength = 0.0

    @property
    def signal_strength(self) -> float:
        return self._signal_strength

    def update(self, sample: Sample) -> DetectionVote:
        threshold = self.calibrator.params.amplitude_threshold
        strength = abs(sample.filtered_value)
        if not math.isfinite(strength):
            strength = 0.0
        self._signal_strength = strength

        if strength >= threshold:
            self._consecutive_strong += 1
            self._consecutive_weak = 0
        else:
            self._consecutive_weak += 1
            self._consecutive_strong = 0

        if not self._detected and self._consecutive_strong >= self.config.required_strong:
            self._detected = True
            logger.debug("Amplitude detection asserted (strength=%.3f threshold=%.3f)",
                         strength, threshold)
        elif self._detected and self._consecutive_weak >= self.config.required_weak:
            self._detected = False
            logger.debug("Amplitude detection retracted (strength=%.3f threshold=%.3f)",
                         strength, threshold)

        if self._detected:
            confidence = strength / (2.0 * threshold)
        else:
            confidence = 1.0 - strength / threshold
        return self._cast(self._detected, confidence, sample.timestamp)

    def _reset_state(self) -> None:
        self._detected = False
        self._consecutive_strong = 0
        self._consecutive_weak = 0
        self._signal_strength = 0.0
