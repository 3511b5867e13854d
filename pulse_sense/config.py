"""
Tunable defaults for every pulse_sense component.

The numeric thresholds below are starting points, not physiological law;
hosts override them per session by passing a :class:`MonitorConfig` (or a
nested dictionary through :meth:`MonitorConfig.from_dict`).
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

from .errors import ConfigurationError
from .types import CalibrationParams

FILTER_STRATEGY_NAMES = ("lms", "rls")


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigurationError(message)


# ---------------------------------------------------------------------------
# Adaptive filter
# ---------------------------------------------------------------------------

@dataclass
class FilterConfig:
    strategy: str = "lms"
    n_taps: int = 8
    adaptation_rate: float = 0.01
    leakage: float = 0.9999             # LMS only
    forgetting_factor: float = 0.99     # RLS only
    delta: float = 0.01                 # RLS only, P0 = I / delta

    def __post_init__(self) -> None:
        _require(self.strategy in FILTER_STRATEGY_NAMES,
                 f"unknown filter strategy {self.strategy!r}")
        _require(self.n_taps >= 1, "n_taps must be >= 1")
        _require(0.0 < self.adaptation_rate < 1.0, "adaptation_rate must be in (0, 1)")
        _require(0.0 < self.leakage <= 1.0, "leakage must be in (0, 1]")
        _require(0.0 < self.forgetting_factor <= 1.0, "forgetting_factor must be in (0, 1]")
        _require(self.delta > 0.0, "delta must be > 0")


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------

@dataclass
class ChannelConfig:
    amplification: float = 1.0
    filter_strength: float = 0.5
    buffer_size: int = 100
    quality_window: int = 30
    amplitude_reference: float = 1.0
    filter: FilterConfig = field(default_factory=FilterConfig)

    def __post_init__(self) -> None:
        _require(self.buffer_size >= 5, "buffer_size must be >= 5")
        _require(self.quality_window >= 3, "quality_window must be >= 3")
        _require(self.amplitude_reference > 0.0, "amplitude_reference must be > 0")


@dataclass
class CardiacConfig(ChannelConfig):
    amplification: float = 2.2
    filter_strength: float = 0.35
    filter: FilterConfig = field(default_factory=lambda: FilterConfig(strategy="rls"))

    # Peak acceptance
    min_samples: int = 5
    peak_window: int = 5
    peak_threshold_ratio: float = 0.6
    peak_history: int = 10
    bootstrap_threshold: float = 0.3
    bootstrap_peaks: int = 3
    refractory_ms: float = 250.0

    # RR bookkeeping
    rr_min_ms: float = 250.0
    rr_max_ms: float = 2000.0
    rr_capacity: int = 10
    hr_min: int = 30
    hr_max: int = 220

    # Arrhythmia rule, evaluated over the last ``rhythm_window`` intervals
    rhythm_window: int = 5
    min_rhythm_intervals: int = 3
    tachycardia_bpm: float = 100.0
    tachycardia_deviation: float = 0.25
    bradycardia_bpm: float = 50.0
    bradycardia_deviation: float = 0.30
    max_deviation: float = 0.20
    rmssd_ms: float = 50.0
    rmssd_deviation: float = 0.15

    # Output emphasis
    peak_gain: float = 1.5
    valley_gain: float = 0.7

    # Confidence blend
    rr_weight: float = 0.7
    amplitude_weight: float = 0.3

    def __post_init__(self) -> None:
        super().__post_init__()
        _require(self.min_samples >= self.peak_window >= 2, "need min_samples >= peak_window >= 2")
        _require(0.0 < self.rr_min_ms < self.rr_max_ms, "invalid RR bounds")
        _require(self.rr_capacity >= 1 and self.peak_history >= 1, "capacities must be >= 1")
        _require(self.rhythm_window >= self.min_rhythm_intervals >= 2,
                 "need rhythm_window >= min_rhythm_intervals >= 2")
        _require(self.hr_min < self.hr_max, "hr_min must be below hr_max")


@dataclass
class SpO2Config(ChannelConfig):
    amplification: float = 1.5
    filter_strength: float = 0.8
    dc_alpha: float = 0.95
    ac_emphasis: float = 2.0
    perfusion_window: int = 10

    def __post_init__(self) -> None:
        super().__post_init__()
        _require(0.0 < self.dc_alpha < 1.0, "dc_alpha must be in (0, 1)")


@dataclass
class BloodPressureConfig(ChannelConfig):
    amplification: float = 1.2
    filter_strength: float = 0.25
    baseline_window: int = 10
    baseline_correction: float = 0.5
    above_gain: float = 1.25
    below_gain: float = 0.6
    slope_gain: float = 0.5


@dataclass
class GlucoseConfig(ChannelConfig):
    amplification: float = 1.5
    filter_strength: float = 0.2
    short_window: int = 8
    long_window: int = 75
    band_gain: float = 1.5

    def __post_init__(self) -> None:
        super().__post_init__()
        _require(1 <= self.short_window < self.long_window <= self.buffer_size,
                 "need 1 <= short_window < long_window <= buffer_size")


@dataclass
class LipidsConfig(ChannelConfig):
    amplification: float = 1.2
    filter_strength: float = 0.25
    mean_window: int = 10
    enhancement: float = 1.5


@dataclass
class HydrationConfig(ChannelConfig):
    amplification: float = 2.0
    filter_strength: float = 0.15
    buffer_size: int = 150
    trend_window: int = 30
    fast_window: int = 5
    low_frequency_weight: float = 0.8
    high_frequency_weight: float = 0.2
    perfusion_weight: float = 1.3


# ---------------------------------------------------------------------------
# Presence detection
# ---------------------------------------------------------------------------

@dataclass
class AmplitudeDetectorConfig:
    required_strong: int = 3
    required_weak: int = 5

    def __post_init__(self) -> None:
        _require(self.required_strong >= 1 and self.required_weak >= 1,
                 "hysteresis counts must be >= 1")


@dataclass
class RhythmDetectorConfig:
    window_ms: float = 5000.0
    min_interval_ms: float = 333.0
    max_interval_ms: float = 1500.0
    min_intervals: int = 3
    max_cv: float = 0.3

    def __post_init__(self) -> None:
        _require(self.min_intervals >= 2, "min_intervals must be >= 2")
        _require(0.0 < self.min_interval_ms < self.max_interval_ms, "invalid interval bounds")


@dataclass
class QualityDetectorConfig:
    window: int = 10
    min_samples: int = 5
    base_floor: float = 0.3
    floor_gain: float = 0.2
    amplitude_reference: float = 1.0

    def __post_init__(self) -> None:
        _require(self.window >= self.min_samples >= 3, "need window >= min_samples >= 3")


@dataclass
class FusionConfig:
    hysteresis_ms: float = 1000.0
    stale_after_ms: float = 10000.0
    min_age_weight: float = 0.1
    source_weights: Dict[str, float] = field(default_factory=lambda: {
        "amplitude": 1.0,
        "rhythm": 1.3,
        "signal_quality": 0.9,
    })

    def __post_init__(self) -> None:
        _require(self.hysteresis_ms >= 0.0, "hysteresis_ms must be >= 0")
        _require(self.stale_after_ms > 0.0, "stale_after_ms must be > 0")
        _require(0.0 <= self.min_age_weight <= 1.0, "min_age_weight must be in [0, 1]")


@dataclass
class CalibrationConfig:
    rate: float = 0.1
    min_interval_ms: float = 2000.0
    history_size: int = 50
    initial: CalibrationParams = field(default_factory=CalibrationParams)

    def __post_init__(self) -> None:
        _require(0.0 < self.rate < 1.0, "calibration rate must be in (0, 1)")
        _require(self.history_size >= 1, "history_size must be >= 1")


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

@dataclass
class MonitorConfig:
    cardiac: CardiacConfig = field(default_factory=CardiacConfig)
    spo2: SpO2Config = field(default_factory=SpO2Config)
    blood_pressure: BloodPressureConfig = field(default_factory=BloodPressureConfig)
    glucose: GlucoseConfig = field(default_factory=GlucoseConfig)
    lipids: LipidsConfig = field(default_factory=LipidsConfig)
    hydration: HydrationConfig = field(default_factory=HydrationConfig)
    amplitude: AmplitudeDetectorConfig = field(default_factory=AmplitudeDetectorConfig)
    rhythm: RhythmDetectorConfig = field(default_factory=RhythmDetectorConfig)
    quality: QualityDetectorConfig = field(default_factory=QualityDetectorConfig)
    fusion: FusionConfig = field(default_factory=FusionConfig)
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    enable_feedback: bool = True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MonitorConfig":
        """
        Build a config from nested dictionaries, e.g.::

            MonitorConfig.from_dict({"cardiac": {"refractory_ms": 300},
                                     "fusion": {"hysteresis_ms": 1500}})

        Keys that are not config fields raise :class:`ConfigurationError`.
        """
        return _build(cls, data)


def _build(cls, data: Mapping[str, Any]):
    default = cls()
    known = {f.name for f in dataclasses.fields(cls)}
    kwargs: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in known:
            raise ConfigurationError(f"{cls.__name__} has no field {key!r}")
        current = getattr(default, key)
        if dataclasses.is_dataclass(current) and isinstance(value, Mapping):
            kwargs[key] = _build(type(current), value)
        elif isinstance(current, dict) and isinstance(value, Mapping):
            kwargs[key] = {**current, **value}
        else:
            kwargs[key] = value
    return cls(**kwargs)
