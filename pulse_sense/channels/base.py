"""
Specialised signal channel base class.

A channel takes the shared PPG value, tunes it for one measurement and keeps
a quality estimate of its own recent output.  Processing one value runs:

1. Amplify by the channel's amplification factor.
2. Adaptive smoothing (LMS or RLS, from the channel's ``FilterConfig``),
   blended with the amplified value by the filter strength.
3. Append to the bounded channel buffer (FIFO eviction).
4. Variant-specific transform (:meth:`SpecializedChannel._transform`).
   If it raises or yields a non-finite value, the buffer and filter are
   rolled back to their state before the sample.
5. Recompute quality from the recent buffer: amplitude, variance-based
   stability and pulsatility (mean-crossing count).

Processing and feedback for one channel are serialised by a per-channel lock,
so a host that runs channels in parallel can still deliver feedback at any
time.
"""

from __future__ import annotations

import logging
import math
import threading
from abc import ABC, abstractmethod
from collections import deque
from itertools import islice
from typing import Deque, List, Optional, Tuple

from ..adaptive_filter import AdaptiveFilter, create_filter
from ..config import ChannelConfig
from ..errors import ChannelProcessingError
from ..signal_stats import buffer_quality, clamp
from ..types import ChannelFeedback, ChannelOutput, SuggestedAdjustments, VitalSignType

logger = logging.getLogger(__name__)

AMPLIFICATION_BOUNDS = (0.5, 3.0)
FILTER_STRENGTH_BOUNDS = (0.0, 1.0)


def _finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


class SpecializedChannel(ABC):
    """
    Base implementation of an optimised signal channel.

    Subclasses set :attr:`channel_type` and :attr:`config_class` and
    implement :meth:`_transform`.

    Parameters
    ----------
    config:
        Channel tuning.  Defaults to ``config_class()``.
    """

    channel_type: VitalSignType
    config_class = ChannelConfig

    def __init__(self, config: Optional[ChannelConfig] = None) -> None:
        self.config = config if config is not None else self.config_class()
        self._amplification = clamp(self.config.amplification, *AMPLIFICATION_BOUNDS)
        self._filter_strength = clamp(self.config.filter_strength, *FILTER_STRENGTH_BOUNDS)
        self._filter: AdaptiveFilter = create_filter(self.config.filter)
        self._buffer: Deque[float] = deque(maxlen=self.config.buffer_size)
        self._quality: float = 0.0
        self._last_value: float = 0.0
        self._fault_count: int = 0
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def id(self) -> str:
        return self.channel_type.value

    def process_value(self, value: float, timestamp: float = 0.0) -> float:
        """
        Return the optimised value for *value* and update the channel state.

        Raises :class:`ChannelProcessingError` for non-finite input or
        output; :class:`~pulse_sense.hub.ChannelHub` turns that (and any
        other exception) into a held value at quality 0.
        """
        if not math.isfinite(value):
            raise ChannelProcessingError(self.id, f"non-finite input {value!r}")

        with self._lock:
            filter_state = self._filter.snapshot()
            evicted = self._buffer[0] if len(self._buffer) == self._buffer.maxlen else None

            amplified = value * self._amplification
            filtered = self._filter.process(amplified)
            smoothed = amplified + self._filter_strength * (filtered - amplified)
            self._buffer.append(smoothed)

            try:
                output = float(self._transform(smoothed, timestamp))
                if not math.isfinite(output):
                    raise ChannelProcessingError(self.id, f"non-finite output {output!r}")
            except Exception:
                # a faulted sample leaves no trace in the buffer or filter
                self._buffer.pop()
                if evicted is not None:
                    self._buffer.appendleft(evicted)
                self._filter.restore(filter_state)
                raise

            self._quality = self._compute_quality()
            self._last_value = output
            return output

    def hold_last_value(self) -> float:
        """Fault path: keep the last good value and drop quality to zero."""
        with self._lock:
            self._quality = 0.0
            self._fault_count += 1
            return self._last_value

    def apply_feedback(self, feedback: ChannelFeedback) -> None:
        """Apply suggested adjustments, clamped to safe bounds."""
        adjustments = feedback.suggested_adjustments
        with self._lock:
            if _finite(adjustments.amplification):
                self._amplification = clamp(adjustments.amplification, *AMPLIFICATION_BOUNDS)
            if _finite(adjustments.filter_strength):
                self._filter_strength = clamp(adjustments.filter_strength, *FILTER_STRENGTH_BOUNDS)
            self._apply_extra_feedback(adjustments)
        logger.debug(
            "Feedback applied to %s: amplification=%.2f filter_strength=%.2f",
            self.id, self._amplification, self._filter_strength,
        )

    def reset(self) -> None:
        """Clear transient buffers and filter state."""
        with self._lock:
            self._buffer.clear()
            self._filter.reset()
            self._quality = 0.0
            self._last_value = 0.0
            self._reset_state()

    def full_reset(self) -> None:
        """Reset plus any cross-session counters (none for most channels)."""
        self.reset()

    @property
    def output(self) -> ChannelOutput:
        return ChannelOutput(value=self._last_value, quality=self._quality)

    @property
    def quality(self) -> float:
        return self._quality

    @property
    def amplification(self) -> float:
        return self._amplification

    @property
    def filter_strength(self) -> float:
        return self._filter_strength

    @property
    def last_value(self) -> float:
        return self._last_value

    @property
    def fault_count(self) -> int:
        return self._fault_count

    @property
    def buffer(self) -> Tuple[float, ...]:
        return tuple(self._buffer)

    # ------------------------------------------------------------------
    # Subclass hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _transform(self, value: float, timestamp: float) -> float:
        """Channel-specific transform of the smoothed value."""

    def _apply_extra_feedback(self, adjustments: SuggestedAdjustments) -> None:
        """Handle channel-specific adjustment fields."""

    def _reset_state(self) -> None:
        """Clear variant-specific transient state."""

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _recent(self, n: int) -> List[float]:
        """The last *n* buffered values (fewer if the buffer is short)."""
        start = max(0, len(self._buffer) - n)
        return list(islice(self._buffer, start, None))

    def _compute_quality(self) -> float:
        return buffer_quality(self._recent(self.config.quality_window),
                              self.config.amplitude_reference)
