"""
Exception types raised by pulse_sense.

Only configuration problems escape to the host application.  Faults inside
the per-sample path are caught and contained by the component that owns
them (see :class:`pulse_sense.hub.ChannelHub`).
"""

from __future__ import annotations


class PulseSenseError(Exception):
    """Base class for all pulse_sense errors."""


class ConfigurationError(PulseSenseError, ValueError):
    """A configuration value is outside its valid range."""


class ChannelProcessingError(PulseSenseError):
    """A channel transform produced an unusable value."""

    def __init__(self, channel: str, message: str) -> None:
        super().__init__(f"{channel}: {message}")
        self.channel = channel
