"""
SpO2 channel.

Splits the value into a slow DC baseline (exponential smoothing,
``alpha = 0.95``) and the fast pulsatile AC component, then re-adds the AC
part multiplied by a fixed emphasis factor.  The perfusion index
``(max - min) / |DC|`` over the last few values is kept for export.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from ..config import SpO2Config
from ..types import VitalSignType
from .base import SpecializedChannel


class SpO2Channel(SpecializedChannel):
    channel_type = VitalSignType.SPO2
    config_class = SpO2Config

    def __init__(self, config: Optional[SpO2Config] = None) -> None:
        super().__init__(config)
        self._dc: Optional[float] = None
        self._perfusion_index: float = 0.0

    @property
    def dc_level(self) -> float:
        return self._dc if self._dc is not None else 0.0

    @property
    def perfusion_index(self) -> float:
        return self._perfusion_index

    def _transform(self, value: float, timestamp: float) -> float:
        cfg = self.config
        if self._dc is None:
            self._dc = value
        else:
            self._dc = cfg.dc_alpha * self._dc + (1.0 - cfg.dc_alpha) * value
        ac = value - self._dc

        recent = self._recent(cfg.perfusion_window)
        if len(recent) >= cfg.perfusion_window and self._dc != 0.0:
            self._perfusion_index = float(np.ptp(recent)) / abs(self._dc)

        return self._dc + cfg.ac_emphasis * ac

    def _reset_state(self) -> None:
        self._dc = None
        self._perfusion_index = 0.0
