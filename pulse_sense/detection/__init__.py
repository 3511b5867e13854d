"""
pulse_sense.detection – finger-presence sources and their fusion.
"""

from .amplitude import AmplitudeDetector
from .base import DetectionSource
from .fusion import FingerPresenceFusion
from .quality import SignalQualityDetector
from .rhythm import RhythmPatternDetector

__all__ = [
    "DetectionSource",
    "AmplitudeDetector",
    "RhythmPatternDetector",
    "SignalQualityDetector",
    "FingerPresenceFusion",
]
