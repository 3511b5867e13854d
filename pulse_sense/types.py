"""
Value types shared by every pulse_sense component.

All timestamps are milliseconds on the host's acquisition clock.  The core
never reads the wall clock on its own; time always arrives with a sample or
an observation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple, Union


class VitalSignType(str, Enum):
    CARDIAC        = "cardiac"
    SPO2           = "spo2"
    BLOOD_PRESSURE = "blood_pressure"
    GLUCOSE        = "glucose"
    LIPIDS         = "lipids"
    HYDRATION      = "hydration"


class CardiacState(str, Enum):
    IDLE           = "idle"
    PEAK_CANDIDATE = "peak_candidate"
    ACCEPTED       = "accepted"


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Sample:
    """
    One preprocessed PPG sample, produced once per acquisition tick.

    Parameters
    ----------
    timestamp:
        Acquisition time in milliseconds.
    raw_value, filtered_value, amplified_value:
        Outputs of the external preprocessor.  The core works on
        ``filtered_value``.
    quality:
        Preprocessor quality estimate, 0 – 100.
    finger_detected:
        The preprocessor's own (unfused) presence guess.
    """

    timestamp: float
    raw_value: float
    filtered_value: float
    amplified_value: float = 0.0
    quality: float = 0.0
    finger_detected: bool = False


@dataclass(frozen=True)
class EnvironmentObservation:
    noise: float        # 0 – 1
    brightness: float   # 0 – 255
    motion: float       # 0 – 1
    timestamp: float


@dataclass(frozen=True)
class SuggestedAdjustments:
    amplification:       Optional[float] = None
    filter_strength:     Optional[float] = None
    peak_threshold:      Optional[float] = None
    baseline_correction: Optional[float] = None


@dataclass(frozen=True)
class ChannelFeedback:
    """Retuning request from a downstream estimator, applied once."""

    channel_id: Union[VitalSignType, str]
    signal_quality: float = 0.0
    success: bool = True
    suggested_adjustments: SuggestedAdjustments = field(default_factory=SuggestedAdjustments)
    timestamp: float = 0.0


# ---------------------------------------------------------------------------
# State shared between components
# ---------------------------------------------------------------------------

@dataclass
class DetectionVote:
    source_id: str
    detected: bool
    confidence: float
    last_update_time: float


@dataclass
class CalibrationParams:
    sensitivity_level:          float = 0.7
    amplitude_threshold:        float = 0.15
    rhythm_detection_threshold: float = 0.2
    environment_quality_factor: float = 1.0
    false_positive_reduction:   float = 0.7
    false_negative_reduction:   float = 0.5

    def copy(self) -> "CalibrationParams":
        return CalibrationParams(**vars(self))


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ChannelOutput:
    value: float
    quality: float
    faulted: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class CardiacResult:
    """
    Per-sample cardiac analysis.

    ``is_peak`` is only ever true once two peaks have been accepted and at
    least five samples are buffered; before that the result is the empty
    result (confidence 0).
    """

    timestamp: float
    is_peak: bool = False
    heart_rate: int = 0
    confidence: float = 0.0
    is_arrhythmia: bool = False
    arrhythmia_count: int = 0
    rr_intervals: Tuple[float, ...] = ()
    state: CardiacState = CardiacState.IDLE
    peak_timestamp: Optional[float] = None


@dataclass(frozen=True)
class DetectionState:
    detected: bool
    confidence: float
    threshold: float
    active_sources: int
    recent_sources: int
    changed: bool
    pending: Optional[bool]
    last_change_time: Optional[float]
    timestamp: float


@dataclass(frozen=True)
class TickResult:
    timestamp: float
    channels: Dict[VitalSignType, ChannelOutput]
    cardiac: Optional[CardiacResult]
    presence: DetectionState
    enhancement_confidence: float = 1.0

    @property
    def values(self) -> Dict[VitalSignType, float]:
        return {k: out.value for k, out in self.channels.items()}
