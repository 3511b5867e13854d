"""
Optional signal enhancement hook.

An enhancer sees each sample before the channels do and returns the value
to process plus a confidence in that value.  The session falls back to the
unenhanced value whenever the enhancer raises or returns something
non-finite.
"""

from __future__ import annotations

from typing import Protocol, Tuple, runtime_checkable

from .types import Sample


@runtime_checkable
class Enhancer(Protocol):
    def enhance(self, sample: Sample) -> Tuple[float, float]:
        ...


class NullEnhancer:
    """Pass-through enhancer."""

    def enhance(self, sample: Sample) -> Tuple[float, float]:
        return sample.filtered_value, 1.0
