"""
Hydration channel.

Separates the slow tissue-perfusion trend (mean of the last
``trend_window`` values) from the fast pulsatile part and blends them with
fixed weights (0.8 slow / 0.2 fast).  Once a full trend window is
available the blend is scaled by a perfusion factor in [0.5, 1.5].
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from ..config import HydrationConfig
from ..signal_stats import clamp
from ..types import VitalSignType
from .base import SpecializedChannel


class HydrationChannel(SpecializedChannel):
    channel_type = VitalSignType.HYDRATION
    config_class = HydrationConfig

    def __init__(self, config: Optional[HydrationConfig] = None) -> None:
        super().__init__(config)
        self._pulsatile_variance: float = 0.0

    @property
    def pulsatile_variance(self) -> float:
        return self._pulsatile_variance

    def _transform(self, value: float, timestamp: float) -> float:
        cfg = self.config
        recent = self._recent(cfg.trend_window)
        if len(recent) < cfg.fast_window:
            return value

        trend = float(np.mean(recent))
        self._pulsatile_variance = float(np.var(recent[-cfg.fast_window:]))
        blended = cfg.low_frequency_weight * trend + cfg.high_frequency_weight * value

        if len(recent) >= cfg.trend_window:
            perfusion = float(np.ptp(recent)) / (abs(trend) + 0.001)
            blended *= clamp(1.0 + perfusion * cfg.perfusion_weight, 0.5, 1.5)
        return blended

    def _reset_state(self) -> None:
        self._pulsatile_variance = 0.0
