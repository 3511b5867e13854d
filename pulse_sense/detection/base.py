"""Common interface of the presence detection sources."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..calibration import AdaptiveCalibrator
from ..signal_stats import clamp
from ..types import DetectionVote, Sample


class DetectionSource(ABC):
    """
    A small independent classifier voting on finger presence.

    Sources read thresholds from the session's calibrator on every update,
    so calibration changes take effect on the next sample.
    """

    source_id: str

    def __init__(self, calibrator: AdaptiveCalibrator) -> None:
        self.calibrator = calibrator
        self._vote = DetectionVote(self.source_id, False, 0.0, float("-inf"))

    @abstractmethod
    def update(self, sample: Sample) -> DetectionVote:
        """Consume one sample and return the source's current vote."""

    @property
    def vote(self) -> DetectionVote:
        return self._vote

    @property
    def detected(self) -> bool:
        return self._vote.detected

    def reset(self) -> None:
        self._vote = DetectionVote(self.source_id, False, 0.0, float("-inf"))
        self._reset_state()

    def _reset_state(self) -> None:
        """Clear source-specific state."""

    def _cast(self, detected: bool, confidence: float, timestamp: float) -> DetectionVote:
        self._vote = DetectionVote(
            source_id=self.source_id,
            detected=detected,
            confidence=clamp(confidence, 0.0, 1.0),
            last_update_time=timestamp,
        )
        return self._vote
