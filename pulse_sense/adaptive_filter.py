"""
Adaptive smoothing filters used by the specialised channels.

Two interchangeable strategies share one interface:

* **LMS** – leaky least-mean-squares.  ``O(k)`` per sample.
* **RLS** – recursive least squares with a forgetting factor.  Converges
  faster at ``O(k²)`` per sample.

Both run a ``k``-tap delay line that holds the current sample and the
``k - 1`` samples before it.  Until the delay line is full the input is
passed through unchanged.

The strategy is picked by name from :data:`FILTER_STRATEGIES` through
:func:`create_filter`, so channels never branch on the filter type.

References
----------
- Haykin S., "Adaptive Filter Theory." Prentice Hall, 2002.
- Widrow B., Stearns S., "Adaptive Signal Processing." 1985.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Deque, Dict, Optional, Sequence, Type

import numpy as np

from .config import FilterConfig

logger = logging.getLogger(__name__)


class AdaptiveFilter(ABC):
    """
    Common state for the adaptive strategies.

    Parameters
    ----------
    n_taps:
        Length of the delay line (number of coefficients).
    adaptation_rate:
        Step size of the coefficient update.
    initial_coefficients:
        Starting coefficients.  Defaults to a ``1 / n_taps`` moving
        average so the output is a sensible smoothing from the first
        full delay line.
    """

    def __init__(
        self,
        n_taps: int = 8,
        adaptation_rate: float = 0.01,
        initial_coefficients: Optional[Sequence[float]] = None,
    ) -> None:
        self.n_taps = n_taps
        self.adaptation_rate = adaptation_rate
        if initial_coefficients is None:
            initial = np.full(n_taps, 1.0 / n_taps, dtype=np.float64)
        else:
            initial = np.asarray(initial_coefficients, dtype=np.float64)
            if initial.shape != (n_taps,):
                raise ValueError("initial_coefficients must have n_taps entries")
        self._initial = initial
        self._coefficients = initial.copy()
        self._history = np.zeros(n_taps, dtype=np.float64)
        self._filled = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def process(self, sample: float) -> float:
        """Filter one sample and adapt the coefficients."""
        self._history = np.roll(self._history, 1)
        self._history[0] = sample
        if self._filled < self.n_taps:
            self._filled += 1
            return float(sample)

        output = self._update(float(sample))
        if not np.all(np.isfinite(self._coefficients)) or not np.isfinite(output):
            logger.warning("%s diverged, resetting coefficients", type(self).__name__)
            self.reset()
            return float(sample)
        return output

    def reset(self) -> None:
        self._coefficients = self._initial.copy()
        self._history = np.zeros(self.n_taps, dtype=np.float64)
        self._filled = 0

    def get_coefficients(self) -> np.ndarray:
        return self._coefficients.copy()

    def snapshot(self) -> Dict[str, Any]:
        """Copy of the adaptive state, for :meth:`restore`."""
        return {
            "coefficients": self._coefficients.copy(),
            "history": self._history.copy(),
            "filled": self._filled,
        }

    def restore(self, state: Dict[str, Any]) -> None:
        self._coefficients = state["coefficients"].copy()
        self._history = state["history"].copy()
        self._filled = state["filled"]

    @property
    def ready(self) -> bool:
        """True once the delay line is full and the filter is adapting."""
        return self._filled >= self.n_taps

    # ------------------------------------------------------------------
    # Strategy hook
    # ------------------------------------------------------------------

    @abstractmethod
    def _update(self, sample: float) -> float:
        """Return the filter output for the current delay line and adapt."""

    @classmethod
    @abstractmethod
    def from_config(cls, config: FilterConfig) -> "AdaptiveFilter":
        """Build the strategy from a :class:`FilterConfig`."""


class LMSFilter(AdaptiveFilter):
    """
    Leaky LMS filter.

    Update rule::

        y    = w · x
        e    = d - y
        w    = leakage · w + rate · e · x

    Parameters
    ----------
    leakage:
        Per-step decay (< 1) applied to every coefficient; bounds
        coefficient growth on non-stationary input.
    """

    _ERROR_HISTORY = 50

    def __init__(
        self,
        n_taps: int = 8,
        adaptation_rate: float = 0.01,
        leakage: float = 0.9999,
        initial_coefficients: Optional[Sequence[float]] = None,
    ) -> None:
        super().__init__(n_taps, adaptation_rate, initial_coefficients)
        self.leakage = leakage
        self._errors: Deque[float] = deque(maxlen=self._ERROR_HISTORY)

    def _update(self, sample: float) -> float:
        output = float(np.dot(self._coefficients, self._history))
        error = sample - output
        self._errors.append(error)
        self._coefficients = (
            self.leakage * self._coefficients
            + self.adaptation_rate * error * self._history
        )
        return output

    def mean_square_error(self) -> float:
        """Mean squared prediction error over the last 50 adapted samples."""
        if not self._errors:
            return 0.0
        errors = np.asarray(self._errors, dtype=np.float64)
        return float(np.mean(errors ** 2))

    def reset(self) -> None:
        super().reset()
        self._errors.clear()

    def snapshot(self) -> Dict[str, Any]:
        state = super().snapshot()
        state["errors"] = list(self._errors)
        return state

    def restore(self, state: Dict[str, Any]) -> None:
        super().restore(state)
        self._errors.clear()
        self._errors.extend(state["errors"])

    @classmethod
    def from_config(cls, config: FilterConfig) -> "LMSFilter":
        return cls(config.n_taps, config.adaptation_rate, leakage=config.leakage)


class RLSFilter(AdaptiveFilter):
    """
    Recursive least-squares filter.

    Update rules::

        k = P x / (λ + xᵀ P x)
        e = d - wᵀ x
        w = w + k e
        P = (P - k xᵀ P) / λ

    Parameters
    ----------
    forgetting_factor:
        λ in (0, 1].  Smaller values forget old samples faster.
    delta:
        Regularisation of the initial inverse-correlation matrix,
        ``P0 = I / delta``.
    """

    def __init__(
        self,
        n_taps: int = 8,
        adaptation_rate: float = 0.01,
        forgetting_factor: float = 0.99,
        delta: float = 0.01,
        initial_coefficients: Optional[Sequence[float]] = None,
    ) -> None:
        self.forgetting_factor = forgetting_factor
        self.delta = delta
        super().__init__(n_taps, adaptation_rate, initial_coefficients)
        self._P = np.eye(n_taps, dtype=np.float64) / delta

    def _update(self, sample: float) -> float:
        x = self._history
        Px = self._P @ x
        gain = Px / (self.forgetting_factor + x @ Px)

        output = float(np.dot(self._coefficients, x))
        error = sample - output
        self._coefficients = self._coefficients + gain * error
        self._P = (self._P - np.outer(gain, x @ self._P)) / self.forgetting_factor
        if not np.all(np.isfinite(self._P)):
            self._coefficients = np.full(self.n_taps, np.nan)
        return output

    def reset(self) -> None:
        super().reset()
        self._P = np.eye(self.n_taps, dtype=np.float64) / self.delta

    def snapshot(self) -> Dict[str, Any]:
        state = super().snapshot()
        state["P"] = self._P.copy()
        return state

    def restore(self, state: Dict[str, Any]) -> None:
        super().restore(state)
        self._P = state["P"].copy()

    @classmethod
    def from_config(cls, config: FilterConfig) -> "RLSFilter":
        return cls(
            config.n_taps,
            config.adaptation_rate,
            forgetting_factor=config.forgetting_factor,
            delta=config.delta,
        )


FILTER_STRATEGIES: Dict[str, Type[AdaptiveFilter]] = {
    "lms": LMSFilter,
    "rls": RLSFilter,
}


def create_filter(config: FilterConfig) -> AdaptiveFilter:
    """Instantiate the strategy named by ``config.strategy``."""
    return FILTER_STRATEGIES[config.strategy].from_config(config)
