"""Unit tests for terrain metrics."""

import numpy as np
import pytest

from lemraster.terrain import (
    drainage_density,
    get_slopes,
    hillshade,
    mean_relief,
    slope,
    topographic_divergence,
)


class TestSlopes:

    @pytest.mark.unit
    def test_face_slopes_shape(self, ridge, bpbp):
        rows, cols = get_slopes(ridge, 10.0, bpbp)
        assert rows.shape == (13, 10)
        assert cols.shape == (12, 11)
        np.testing.assert_allclose(cols, 0.0)
        assert rows[1, 0] == pytest.approx(0.2)

    @pytest.mark.unit
    def test_gradient_of_plane(self):
        z = np.tile(np.arange(6, dtype=float) * 2.0, (4, 1))
        np.testing.assert_allclose(slope(z, 10.0), 0.2)

    @pytest.mark.unit
    def test_divergence_flat(self, bpbp):
        z = np.zeros((5, 5))
        np.testing.assert_allclose(topographic_divergence(z, 1.0, bpbp), 0.0)


class TestHillshade:

    @pytest.mark.unit
    def test_flat(self):
        hs = hillshade(np.zeros((5, 5)), 10.0)
        np.testing.assert_allclose(hs, np.sin(np.radians(45.0)))

    @pytest.mark.unit
    def test_range(self, rough_surface):
        hs = hillshade(rough_surface * 50.0, 1.0)
        assert hs.shape == rough_surface.shape
        assert hs.min() >= 0.0
        assert hs.max() <= 1.0

    @pytest.mark.unit
    def test_north_facing_slope_lit(self):
        # surface rising southward faces the north-western light
        z = np.repeat(np.arange(5, dtype=float)[:, None], 5, axis=1)
        flat = np.sin(np.radians(45.0))
        assert np.all(hillshade(z, 1.0) > flat)
        assert np.all(hillshade(-z, 1.0) < flat)

    @pytest.mark.unit
    def test_rejects_1d(self):
        with pytest.raises(ValueError):
            hillshade(np.zeros(5), 1.0)


class TestRelief:

    @pytest.mark.unit
    def test_flat(self):
        assert mean_relief(np.ones((6, 6)), 10.0) == 0.0

    @pytest.mark.unit
    def test_three_pixel_window(self):
        z = np.tile(np.arange(5, dtype=float), (4, 1))
        assert mean_relief(z, 10.0) == pytest.approx(1.6)

    @pytest.mark.unit
    def test_valid_mask(self):
        z = np.tile(np.arange(5, dtype=float), (4, 1))
        valid = np.zeros(z.shape, dtype=bool)
        valid[:, 2] = True
        assert mean_relief(z, 10.0, valid=valid) == pytest.approx(2.0)


class TestDrainageDensity:

    @pytest.mark.unit
    def test_density(self):
        area = np.full((10, 10), 100.0)
        area[0, :5] = 500.0
        assert drainage_density(area, 10.0, 200.0) == pytest.approx(0.005)
        assert drainage_density(area, 10.0, 1e6) == 0.0
