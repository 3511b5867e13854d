"""
pulse_sense: PPG signal core for fingertip vital-sign monitoring.

Feed preprocessed samples to a :class:`MonitoringSession`; it runs the
specialised measurement channels, tracks heart rhythm and decides whether a
finger is on the sensor.
"""

from .config import MonitorConfig
from .errors import ChannelProcessingError, ConfigurationError, PulseSenseError
from .hub import ChannelHub, create_default_hub
from .session import MonitoringSession
from .types import (
    CardiacResult,
    ChannelFeedback,
    EnvironmentObservation,
    Sample,
    SuggestedAdjustments,
    TickResult,
    VitalSignType,
)

__version__ = "0.1.0"
__author__ = "pulse_sense"

__all__ = [
    "MonitoringSession",
    "MonitorConfig",
    "ChannelHub",
    "create_default_hub",
    "Sample",
    "EnvironmentObservation",
    "ChannelFeedback",
    "SuggestedAdjustments",
    "CardiacResult",
    "TickResult",
    "VitalSignType",
    "PulseSenseError",
    "ConfigurationError",
    "ChannelProcessingError",
]
