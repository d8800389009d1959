"""
Tests for the coarse-to-fine decay / scale fit.
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose

from polish_solver.fitting.bfactor_fit import (
    DecayScaleResult,
    fit_decay_scale,
    weighted_residual,
    decay_model,
    decay_px_to_angstrom,
    decay_angstrom_to_px,
)


@pytest.mark.unit
class TestDecayScaleFit:
    """Test fit_decay_scale on small profiles."""

    def test_small_profile(self):
        """Test a four-bin profile with a hand-checked optimum."""
        power = [10.0, 10.0, 10.0, 10.0]
        cross = [10.0, 8.0, 5.0, 2.0]

        result = fit_decay_scale(power, cross, 0.0, 2.0, 0.0, 5, 3)

        assert isinstance(result, DecayScaleResult)
        assert 0.6 < result.decay < 0.8
        assert abs(result.scale - 1.0) < 0.05
        assert result.lower == 0.0
        assert result.upper == 2.0

    def test_exact_recovery(self):
        """Test that noise-free data is fitted to high precision."""
        r = np.arange(16)
        power = np.ones(16)
        cross = decay_model(r, 0.02, 1.5) * power

        result = fit_decay_scale(power, cross, 0.0, 0.1, 0.2, 20, 5)

        assert_allclose(result.decay, 0.02, atol=1e-5)
        assert_allclose(result.scale, 1.5, rtol=1e-4)
        assert weighted_residual(power, cross, result.decay, result.scale) < 1e-8

    def test_result_within_bounds(self):
        """Test bounds and scale clamp on random profiles."""
        rng = np.random.default_rng(3)
        for _ in range(20):
            power = rng.uniform(0.0, 5.0, size=12)
            cross = rng.normal(0.0, 3.0, size=12)
            b_min, b_max = sorted(rng.uniform(-0.5, 1.0, size=2))
            min_scale = rng.uniform(0.0, 1.0)

            result = fit_decay_scale(power, cross, b_min, b_max, min_scale, 7, 3)

            assert b_min <= result.decay <= b_max
            assert result.scale >= min_scale

    def test_negative_cross_is_clamped(self):
        """Test that an inverted profile gives the minimal scale."""
        power = np.ones(8)
        cross = -np.ones(8)
        result = fit_decay_scale(power, cross, 0.0, 1.0, 0.3, 10, 2)
        assert result.scale == 0.3

    def test_deeper_search_never_worse(self):
        """Test that more refinement levels never increase the residual."""
        rng = np.random.default_rng(11)
        r = np.arange(20)
        power = rng.uniform(1.0, 2.0, size=20)
        cross = decay_model(r, 0.05, 0.9) * power + rng.normal(0.0, 0.05, size=20)

        residuals = []
        for depth in range(6):
            result = fit_decay_scale(power, cross, 0.0, 0.2, 0.1, 4, depth)
            residuals.append(weighted_residual(power, cross, result.decay, result.scale))

        assert all(b <= a + 1e-12 for a, b in zip(residuals, residuals[1:]))

    def test_zero_power(self):
        """Test that a profile without power gives a finite result."""
        result = fit_decay_scale(np.zeros(6), np.zeros(6), -0.1, 0.1, 0.2, 5, 2)
        assert np.isfinite(result.decay)
        assert result.decay == -0.1
        assert result.scale == 0.2

    def test_single_point_interval(self):
        result = fit_decay_scale(np.ones(4), np.ones(4), 0.5, 0.5, 0.0, 3, 2)
        assert result.decay == 0.5

    @pytest.mark.parametrize("steps,depth,b_min,b_max", [
        (1, 2, 0.0, 1.0),
        (0, 2, 0.0, 1.0),
        (5, -1, 0.0, 1.0),
        (5, 2, 1.0, 0.0),
    ])
    def test_invalid_arguments(self, steps, depth, b_min, b_max):
        with pytest.raises(ValueError):
            fit_decay_scale(np.ones(4), np.ones(4), b_min, b_max, 0.0, steps, depth)

    def test_shape_mismatch(self):
        with pytest.raises(ValueError):
            fit_decay_scale(np.ones(4), np.ones(5), 0.0, 1.0, 0.0, 5, 1)


@pytest.mark.unit
class TestResidualAndUnits:

    def test_residual_ignores_empty_bins(self):
        """Test that bins without power do not contribute."""
        power = [0.0, 2.0]
        cross = [5.0, 2.0]
        assert_allclose(weighted_residual(power, cross, 0.0, 1.0), 0.0)

    def test_residual_value(self):
        power = [1.0, 4.0]
        cross = [2.0, 4.0]
        # a e = 1 at both radii, ratios 2 and 1
        assert_allclose(weighted_residual(power, cross, 0.0, 1.0), 1.0)

    def test_unit_conversion_roundtrip(self):
        b_px = decay_angstrom_to_px(150.0, 200, 1.2)
        assert_allclose(b_px, 150.0 / 240.0 ** 2)
        assert_allclose(decay_px_to_angstrom(b_px, 200, 1.2), 150.0)

    def test_result_helpers(self):
        result = DecayScaleResult(decay=0.1, scale=2.0, lower=0.0, upper=1.0,
                                  steps=5, depth=1)
        assert_allclose(result.model([0.0, 2.0]), [2.0, 2.0 * np.exp(-0.1)])
        assert_allclose(result.decay_angstrom(10, 2.0), 40.0)
