"""
Unit tests for the LMS and RLS adaptive filters.
Run with:  pytest tests/test_adaptive_filter.py
"""

from __future__ import annotations

import numpy as np
import pytest

from pulse_sense.adaptive_filter import (
    FILTER_STRATEGIES,
    LMSFilter,
    RLSFilter,
    create_filter,
)
from pulse_sense.config import FilterConfig
from pulse_sense.errors import ConfigurationError


def _sine(n: int, fps: float = 30.0, hz: float = 1.2) -> np.ndarray:
    t = np.arange(n) / fps
    return np.sin(2 * np.pi * hz * t)


class TestLMSFilter:

    def test_passthrough_until_delay_line_full(self):
        f = LMSFilter(n_taps=4)
        inputs = [0.3, -1.2, 2.5, 0.7]
        outputs = [f.process(x) for x in inputs]
        assert outputs == inputs
        assert f.ready is True

    def test_not_ready_initially(self):
        f = LMSFilter(n_taps=8)
        assert f.ready is False
        assert f.mean_square_error() == 0.0

    def test_constant_input_converges(self):
        f = LMSFilter(n_taps=8, adaptation_rate=0.01)
        out = 0.0
        for _ in range(500):
            out = f.process(1.0)
        assert out == pytest.approx(1.0, abs=0.01)

    def test_coefficients_are_a_copy(self):
        f = LMSFilter(n_taps=4)
        coeffs = f.get_coefficients()
        coeffs[:] = 99.0
        assert np.allclose(f.get_coefficients(), 0.25)

    def test_initial_coefficients_shape_checked(self):
        with pytest.raises(ValueError):
            LMSFilter(n_taps=4, initial_coefficients=[1.0, 0.0])

    def test_divergence_resets_and_passes_input(self):
        f = LMSFilter(n_taps=2, adaptation_rate=10.0, leakage=1.0)
        outputs = [f.process(1e3 * (-1) ** i) for i in range(200)]
        assert np.all(np.isfinite(outputs))
        assert np.all(np.isfinite(f.get_coefficients()))

    def test_reset_restores_initial_state(self):
        f = LMSFilter(n_taps=4)
        for x in _sine(50):
            f.process(float(x))
        f.reset()
        assert f.ready is False
        assert f.mean_square_error() == 0.0
        assert np.allclose(f.get_coefficients(), 0.25)

    def test_restore_rewinds_one_sample(self):
        f, reference = LMSFilter(n_taps=4), LMSFilter(n_taps=4)
        for x in _sine(30):
            f.process(float(x))
            reference.process(float(x))
        state = f.snapshot()
        f.process(50.0)
        f.restore(state)
        assert np.allclose(f.get_coefficients(), reference.get_coefficients())
        assert f.mean_square_error() == pytest.approx(reference.mean_square_error())
        assert f.process(0.5) == pytest.approx(reference.process(0.5))


class TestRLSFilter:

    def test_tracks_sine(self):
        f = RLSFilter(n_taps=8)
        signal = _sine(600)
        outputs = np.array([f.process(float(x)) for x in signal])
        error = np.abs(outputs[-100:] - signal[-100:])
        assert float(np.mean(error)) < 0.05

    def test_reset_restores_correlation_matrix(self):
        f = RLSFilter(n_taps=4, delta=0.5)
        for x in _sine(40):
            f.process(float(x))
        f.reset()
        assert np.allclose(f._P, np.eye(4) / 0.5)
        assert f.ready is False

    def test_restore_rewinds_correlation_matrix(self):
        f = RLSFilter(n_taps=4)
        for x in _sine(40):
            f.process(float(x))
        state = f.snapshot()
        P = f._P.copy()
        f.process(-30.0)
        f.restore(state)
        assert np.allclose(f._P, P)
        assert np.allclose(f.get_coefficients(), state["coefficients"])


class TestCreateFilter:

    @pytest.mark.parametrize("name,cls", [("lms", LMSFilter), ("rls", RLSFilter)])
    def test_strategy_selected_by_name(self, name, cls):
        f = create_filter(FilterConfig(strategy=name, n_taps=6))
        assert isinstance(f, cls)
        assert f.n_taps == 6

    def test_registry_matches_config_names(self):
        assert set(FILTER_STRATEGIES) == {"lms", "rls"}

    def test_unknown_strategy_rejected(self):
        with pytest.raises(ConfigurationError):
            FilterConfig(strategy="kalman")

    def test_config_parameters_forwarded(self):
        f = create_filter(FilterConfig(strategy="rls", forgetting_factor=0.95, delta=0.1))
        assert f.forgetting_factor == 0.95
        assert f.delta == 0.1
