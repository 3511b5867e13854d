"""
Buffer statistics shared by the channels and the quality detector.

Every score is in [0, 1].  Inputs are plain sequences of floats; short
sequences return the neutral value documented on each function.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def coefficient_of_variation(values: Sequence[float]) -> float:
    """Population std / |mean|.  Returns ``inf`` when the mean is zero."""
    arr = np.asarray(values, dtype=np.float64)
    if arr.size == 0:
        return float("inf")
    mean = float(np.mean(arr))
    if mean == 0.0:
        return float("inf")
    return float(np.std(arr) / abs(mean))


def amplitude_score(values: Sequence[float], reference: float) -> float:
    """Peak-to-peak amplitude relative to ``reference`` (0 for < 2 values)."""
    if len(values) < 2:
        return 0.0
    arr = np.asarray(values, dtype=np.float64)
    return clamp(float(np.ptp(arr)) / reference, 0.0, 1.0)


def stability_score(values: Sequence[float]) -> float:
    """
    Smoothness of successive differences relative to the signal range.

    Large single jumps (> 80 % of the range) score 0.3; a jittery signal
    whose mean step exceeds 30 % of the range scores 0.5; smooth signals
    score 0.7 – 0.9.  Flat or too-short input scores 0.5.
    """
    if len(values) < 3:
        return 0.5
    arr = np.asarray(values, dtype=np.float64)
    value_range = float(np.ptp(arr))
    if value_range <= 0.0:
        return 0.5
    diffs = np.abs(np.diff(arr))
    mean_step = float(np.mean(diffs)) / value_range
    max_step = float(np.max(diffs)) / value_range
    if max_step > 0.8:
        return 0.3
    if mean_step > 0.3:
        return 0.5
    if mean_step > 0.1:
        return 0.7
    return 0.9


def sign_changes(values: Sequence[float]) -> int:
    """Number of crossings of the mean."""
    if len(values) < 2:
        return 0
    arr = np.asarray(values, dtype=np.float64)
    centred = arr - np.mean(arr)
    signs = centred >= 0.0
    return int(np.count_nonzero(signs[1:] != signs[:-1]))


def pulsatility_score(values: Sequence[float]) -> float:
    """
    Score the number of mean crossings.

    No crossing means a flat line or a drift; more crossings than a third of
    the window means noise.  Anything in between looks like a pulse.
    """
    if len(values) < 6:
        return 0.0
    crossings = sign_changes(values)
    if crossings < 1:
        return 0.2
    if crossings > len(values) // 3:
        return 0.3
    return 0.9


def buffer_quality(values: Sequence[float], amplitude_reference: float) -> float:
    """Weighted blend: amplitude 0.4, stability 0.3, pulsatility 0.3."""
    if len(values) < 5:
        return 0.0
    quality = (
        0.4 * amplitude_score(values, amplitude_reference)
        + 0.3 * stability_score(values)
        + 0.3 * pulsatility_score(values)
    )
    return clamp(quality, 0.0, 1.0)
