"""Lipids channel: enhances excursions above the local mean."""

from __future__ import annotations

import numpy as np

from ..config import LipidsConfig
from ..types import VitalSignType
from .base import SpecializedChannel


class LipidsChannel(SpecializedChannel):
    channel_type = VitalSignType.LIPIDS
    config_class = LipidsConfig

    def _transform(self, value: float, timestamp: float) -> float:
        cfg = self.config
        recent = self._recent(cfg.mean_window)
        if len(recent) < cfg.mean_window:
            return value
        mean = float(np.mean(recent))
        excursion = value - mean
        if excursion > 0.0:
            return mean + excursion * cfg.enhancement
        return value
