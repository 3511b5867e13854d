"""
Glucose channel.

Keeps the slow band (roughly 0.1 – 0.4 Hz at 25 – 30 Hz sampling) by taking
the difference of a short and a long moving average and amplifying it on
top of the long-term level.
"""

from __future__ import annotations

import numpy as np

from ..config import GlucoseConfig
from ..types import VitalSignType
from .base import SpecializedChannel


class GlucoseChannel(SpecializedChannel):
    channel_type = VitalSignType.GLUCOSE
    config_class = GlucoseConfig

    def _transform(self, value: float, timestamp: float) -> float:
        cfg = self.config
        if len(self._buffer) < cfg.short_window:
            return value
        short = float(np.mean(self._recent(cfg.short_window)))
        long = float(np.mean(self._recent(cfg.long_window)))
        return long + cfg.band_gain * (short - long)
