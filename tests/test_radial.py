"""
Tests for radial binning and frequency filters of half-complex images.
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose

from polish_solver.spatial.radial import (
    radius_map,
    frequency_coords,
    RadialAccumulator,
    RadialProfile,
)
from polish_solver.spatial.filters import hollow_weight, band_limit_envelope, crop_corner


def random_image(s, rng):
    return np.fft.rfft2(rng.standard_normal((s, s)))


@pytest.mark.unit
class TestFrequencyGrid:
    """Test radius map and frequency coordinates."""

    def test_radius_map_shape_and_values(self):
        """Test the half-complex layout of the radius map."""
        r = radius_map(4)
        assert r.shape == (4, 3)
        assert r[0, 0] == 0
        assert r[0, 2] == 2
        assert r[3, 0] == 1     # row 3 holds y = -1
        assert r[2, 2] == 3     # sqrt(8) rounds to 3

    def test_radius_map_is_read_only(self):
        """Test that the cached map cannot be modified."""
        r = radius_map(8)
        with pytest.raises(ValueError):
            r[0, 0] = 5

    def test_frequency_coords_wrap(self):
        """Test that rows past s/2 hold negative frequencies."""
        x, y = frequency_coords(8)
        assert_allclose(x.ravel(), [0, 1, 2, 3, 4])
        assert_allclose(y.ravel(), [0, 1, 2, 3, 4, -3, -2, -1])


@pytest.mark.unit
class TestRadialAccumulator:
    """Test accumulation of radial power and cross terms."""

    @pytest.fixture
    def rng(self):
        return np.random.default_rng(7)

    def test_identical_images(self, rng):
        """Test that cross equals power when observation equals prediction."""
        acc = RadialAccumulator(16)
        img = random_image(16, rng)
        acc.add(img, img)
        prof = acc.profile()
        assert len(prof) == 9
        assert_allclose(prof.cross, prof.power)
        assert np.all(prof.power > 0)
        assert acc.count == 1

    def test_total_power(self, rng):
        """Test that the bins sum to the power inside the radius limit."""
        s = 16
        img = random_image(s, rng)
        acc = RadialAccumulator(s)
        acc.add(img, img)
        inside = radius_map(s) < s // 2 + 1
        assert_allclose(acc.power.sum(), np.sum(np.abs(img[inside]) ** 2))

    def test_ctf_and_weight(self, rng):
        """Test that the CTF multiplies the prediction and the weight both sums."""
        s = 16
        obs = random_image(s, rng)
        pred = random_image(s, rng)

        plain = RadialAccumulator(s)
        plain.add(obs, pred)

        modulated = RadialAccumulator(s)
        modulated.add(obs, pred, weight=np.full((s, s // 2 + 1), 0.5),
                      ctf=np.full((s, s // 2 + 1), 2.0))

        assert_allclose(modulated.power, 0.5 * 4.0 * plain.power)
        assert_allclose(modulated.cross, 0.5 * 2.0 * plain.cross)

    def test_merge_matches_single_accumulator(self, rng):
        """Test that merging partial sums equals accumulating everything at once."""
        s = 12
        pairs = [(random_image(s, rng), random_image(s, rng)) for _ in range(4)]

        full = RadialAccumulator(s)
        for obs, pred in pairs:
            full.add(obs, pred)

        a = RadialAccumulator(s)
        b = RadialAccumulator(s)
        for obs, pred in pairs[:1]:
            a.add(obs, pred)
        for obs, pred in pairs[1:]:
            b.add(obs, pred)

        combined = a + b
        assert combined.count == 4
        assert_allclose(combined.power, full.power)
        assert_allclose(combined.cross, full.cross)

    def test_merge_rejects_other_box_size(self):
        with pytest.raises(ValueError):
            RadialAccumulator(8).merge(RadialAccumulator(10))

    def test_shape_mismatch(self):
        """Test that a full-size image is rejected."""
        acc = RadialAccumulator(8)
        with pytest.raises(ValueError):
            acc.add(np.zeros((8, 8), complex), np.zeros((8, 5), complex))


@pytest.mark.unit
class TestRadialProfile:

    def test_ratio_masks_empty_bins(self):
        prof = RadialProfile(power=[0.0, 2.0, 4.0], cross=[1.0, 1.0, 2.0])
        ratio = prof.ratio()
        assert np.isnan(ratio[0])
        assert_allclose(ratio[1:], [0.5, 0.5])
        assert_allclose(prof.radii, [0, 1, 2])

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            RadialProfile(power=[1.0, 2.0], cross=[1.0])


@pytest.mark.unit
class TestFilters:
    """Test frequency weights and cropping."""

    def test_hollow_weight(self):
        """Test that low frequencies are excluded."""
        w = hollow_weight(16, 3.0)
        assert w.shape == (16, 9)
        assert w[0, 0] == 0.0
        assert w[0, 2] == 0.0
        assert w[0, 3] == 1.0
        assert w[0, 8] == 1.0

    def test_hollow_weight_outer_limit(self):
        w = hollow_weight(16, 2.0, 5.0)
        assert w[0, 4] == 1.0
        assert w[0, 5] == 0.0

    def test_band_limit_envelope(self):
        """Test the raised cosine falloff between rad_in and rad_out."""
        img = np.ones((32, 17))
        out = band_limit_envelope(img, 4.0, 6.0)
        assert out[0, 3] == 1.0
        assert_allclose(out[0, 5], 0.5)
        assert out[0, 6] == 0.0
        assert out[0, 10] == 0.0
        # input is not modified
        assert np.all(img == 1.0)

    def test_band_limit_envelope_hard_edge(self):
        out = band_limit_envelope(np.ones((16, 9)), 4.0, 4.0)
        assert out[0, 3] == 1.0
        assert out[0, 4] == 0.0

    def test_crop_corner_keeps_origin_neighbourhood(self):
        """Test that both small positive and negative shifts survive the crop."""
        img = np.arange(64, dtype=float).reshape(8, 8)
        out = crop_corner(img, 4, 4)
        rows = [0, 1, 6, 7]
        assert_allclose(out, img[np.ix_(rows, rows)])

    def test_crop_corner_small_input(self):
        img = np.ones((4, 4))
        assert crop_corner(img, 8, 8) is img
