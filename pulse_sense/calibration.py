"""
Session-wide adaptive calibration of the presence-detection thresholds.

The calibrator receives ``{noise, brightness, motion}`` observations from an
environment-sensing collaborator and slowly moves every
:class:`~pulse_sense.types.CalibrationParams` field toward a target derived
from the observation::

    new = old + (target - old) * rate        # == old·(1 - rate) + target·rate

With ``0 < rate < 1`` the parameter approaches a fixed target monotonically
and never overshoots it.  Targets and results stay inside :data:`BOUNDS`.
Observations arriving less than ``min_interval_ms`` after the last accepted
one are dropped.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from typing import Deque, Dict, List, Optional, Tuple

from .config import CalibrationConfig
from .signal_stats import clamp
from .types import CalibrationParams, EnvironmentObservation

logger = logging.getLogger(__name__)

BOUNDS: Dict[str, Tuple[float, float]] = {
    "sensitivity_level":          (0.3, 1.0),
    "amplitude_threshold":        (0.05, 0.5),
    "rhythm_detection_threshold": (0.1, 0.4),
    "environment_quality_factor": (0.5, 1.2),
    "false_positive_reduction":   (0.5, 0.9),
    "false_negative_reduction":   (0.3, 0.8),
}

_OPTIMAL_BRIGHTNESS = 120.0
_DARK_BRIGHTNESS = 50.0


def _three_level(value: float, high_at: float, low_at: float,
                 high: float, mid: float, low: float) -> float:
    if value >= high_at:
        return high
    if value <= low_at:
        return low
    return mid


class AdaptiveCalibrator:
    """
    Owns the single :class:`CalibrationParams` instance of a session.

    Parameters
    ----------
    config:
        Smoothing rate, rate limit and initial parameters.
    """

    def __init__(self, config: Optional[CalibrationConfig] = None) -> None:
        self.config = config or CalibrationConfig()
        self._params = self._clamped(self.config.initial.copy())
        self._last_observation_time: Optional[float] = None
        self._last_observation: Optional[EnvironmentObservation] = None
        self._history: Deque[Tuple[float, CalibrationParams]] = deque(
            maxlen=self.config.history_size
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def params(self) -> CalibrationParams:
        """Snapshot of the current parameters (a copy)."""
        return self._params.copy()

    @property
    def last_observation(self) -> Optional[EnvironmentObservation]:
        return self._last_observation

    def observe(self, observation: EnvironmentObservation) -> bool:
        """
        Fold one environmental observation into the parameters.

        Returns *True* if the observation was applied, *False* if it was
        rate-limited or unusable.
        """
        values = (observation.noise, observation.brightness,
                  observation.motion, observation.timestamp)
        if not all(math.isfinite(v) for v in values):
            logger.warning("Ignoring non-finite environment observation: %s", observation)
            return False

        if self._last_observation_time is not None:
            elapsed = observation.timestamp - self._last_observation_time
            if elapsed < self.config.min_interval_ms:
                logger.debug("Calibration observation dropped (%.0f ms since last)", elapsed)
                return False

        observation = EnvironmentObservation(
            noise=clamp(observation.noise, 0.0, 1.0),
            brightness=clamp(observation.brightness, 0.0, 255.0),
            motion=clamp(observation.motion, 0.0, 1.0),
            timestamp=observation.timestamp,
        )
        targets = self.targets_for(observation)
        rate = self.config.rate
        for name, (low, high) in BOUNDS.items():
            old = getattr(self._params, name)
            target = getattr(targets, name)
            setattr(self._params, name, clamp(old + (target - old) * rate, low, high))

        self._last_observation_time = observation.timestamp
        self._last_observation = observation
        self._history.append((observation.timestamp, self._params.copy()))
        logger.debug(
            "Calibration updated: sensitivity=%.3f amplitude=%.3f rhythm=%.3f quality=%.3f",
            self._params.sensitivity_level,
            self._params.amplitude_threshold,
            self._params.rhythm_detection_threshold,
            self._params.environment_quality_factor,
        )
        return True

    def targets_for(self, observation: EnvironmentObservation) -> CalibrationParams:
        """
        Piecewise targets for one observation.

        Noise raises sensitivity and the amplitude threshold, darkness raises
        the amplitude threshold further, motion raises the rhythm threshold
        and false-positive suppression while relaxing false-negative
        suppression.
        """
        noise, brightness, motion = observation.noise, observation.brightness, observation.motion

        amplitude = _three_level(noise, 0.7, 0.4, 0.35, 0.25, 0.15)
        if brightness < _DARK_BRIGHTNESS:
            amplitude += 0.05

        quality = (
            1.0
            - 0.3 * noise
            - 0.4 * motion
            - 0.2 * abs(brightness - _OPTIMAL_BRIGHTNESS) / 200.0
        )

        targets = CalibrationParams(
            sensitivity_level=_three_level(noise, 0.6, 0.2, 0.9, 0.75, 0.6),
            amplitude_threshold=amplitude,
            rhythm_detection_threshold=_three_level(motion, 0.6, 0.2, 0.3, 0.2, 0.15),
            environment_quality_factor=quality,
            false_positive_reduction=_three_level(motion, 0.6, 0.2, 0.9, 0.7, 0.6),
            false_negative_reduction=_three_level(motion, 0.6, 0.2, 0.3, 0.5, 0.7),
        )
        return self._clamped(targets)

    def history(self) -> List[Tuple[float, CalibrationParams]]:
        """``(timestamp, params)`` for the most recent accepted updates."""
        return list(self._history)

    def reset(self) -> None:
        """Return to the configured initial parameters."""
        self._params = self._clamped(self.config.initial.copy())
        self._last_observation_time = None
        self._last_observation = None
        self._history.clear()
        logger.info("Adaptive calibration reset to defaults")

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _clamped(params: CalibrationParams) -> CalibrationParams:
        for name, (low, high) in BOUNDS.items():
            setattr(params, name, clamp(getattr(params, name), low, high))
        return params
