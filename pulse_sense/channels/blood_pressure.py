"""
Blood-pressure channel.

Emphasises the systolic upstroke: rising slope adds to the output, while
excursions below the local baseline are attenuated more strongly than those
above it.  Part of the baseline is removed according to the
``baseline_correction`` factor, which downstream estimators may retune.
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from ..config import BloodPressureConfig
from ..signal_stats import clamp
from ..types import SuggestedAdjustments, VitalSignType
from .base import SpecializedChannel


class BloodPressureChannel(SpecializedChannel):
    channel_type = VitalSignType.BLOOD_PRESSURE
    config_class = BloodPressureConfig

    def __init__(self, config: Optional[BloodPressureConfig] = None) -> None:
        super().__init__(config)
        self._baseline_correction = clamp(self.config.baseline_correction, 0.0, 1.0)

    @property
    def baseline_correction(self) -> float:
        return self._baseline_correction

    def _transform(self, value: float, timestamp: float) -> float:
        cfg = self.config
        recent = self._recent(cfg.baseline_window + 1)
        if len(recent) < 3:
            return value

        baseline = float(np.mean(recent[:-1]))
        slope = value - recent[-2]
        excursion = value - baseline
        gain = cfg.above_gain if excursion >= 0.0 else cfg.below_gain
        systolic = cfg.slope_gain * slope if slope > 0.0 else 0.0
        return baseline * (1.0 - self._baseline_correction) + excursion * gain + systolic

    def _apply_extra_feedback(self, adjustments: SuggestedAdjustments) -> None:
        value = adjustments.baseline_correction
        if value is not None and math.isfinite(value):
            self._baseline_correction = clamp(value, 0.0, 1.0)
