"""
pulse_sense.channels – one specialised channel per measurement.
"""

from .base import SpecializedChannel
from .blood_pressure import BloodPressureChannel
from .cardiac import CardiacChannel, RhythmTracker
from .glucose import GlucoseChannel
from .hydration import HydrationChannel
from .lipids import LipidsChannel
from .spo2 import SpO2Channel

__all__ = [
    "SpecializedChannel",
    "CardiacChannel",
    "RhythmTracker",
    "SpO2Channel",
    "BloodPressureChannel",
    "GlucoseChannel",
    "LipidsChannel",
    "HydrationChannel",
]
