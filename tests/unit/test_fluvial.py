"""Unit tests for fluvial incision."""

import numpy as np
import pytest

from lemraster.boundary import BoundaryModel
from lemraster.flow import FlowRouter
from lemraster.fluvial import (
    channel_width_wolman,
    fluvial_erosion_rate,
    fluvial_incision,
    precipitation_flux,
    stream_power_erosion_rate,
    wash_out,
)


@pytest.fixture
def routed(rough_surface):
    router = FlowRouter(BoundaryModel("bpbp"))
    z = router.fill(rough_surface, dx=10.0)
    return z, router.route(z, dx=10.0)


class TestFluvialIncision:
    """Test implicit stream power incision."""

    @pytest.mark.unit
    def test_linear_never_raises_surface(self, routed):
        z, flow = routed
        znew, result = fluvial_incision(z, flow, K=1e-3, m=0.5, n=1.0, dt=100.0)
        assert result.converged
        assert np.all(znew <= z + 1e-12)
        assert np.any(znew < z)

    @pytest.mark.unit
    def test_nonlinear_never_raises_surface(self, routed):
        z, flow = routed
        znew, result = fluvial_incision(z, flow, K=1e-4, m=0.5, n=1.5, dt=100.0)
        assert np.all(znew <= z + 1e-12)

    @pytest.mark.unit
    def test_stays_above_receiver(self, routed):
        z, flow = routed
        znew, _ = fluvial_incision(z, flow, K=1e-2, m=0.5, n=1.0, dt=1000.0)
        r = flow.receivers
        assert np.all(znew.ravel() >= znew.ravel()[r] - 1e-12)

    @pytest.mark.unit
    def test_outlets_unchanged(self, routed):
        z, flow = routed
        znew, _ = fluvial_incision(z, flow, K=1e-3, m=0.5, n=1.0, dt=100.0)
        np.testing.assert_array_equal(znew[0], z[0])
        np.testing.assert_array_equal(znew[-1], z[-1])

    @pytest.mark.unit
    def test_zero_erodibility(self, routed):
        z, flow = routed
        znew, _ = fluvial_incision(z, flow, K=0.0, m=0.5, n=1.0, dt=100.0)
        np.testing.assert_allclose(znew, z)

    @pytest.mark.unit
    def test_single_cell_linear_solution(self):
        z = np.array([[0.0], [10.0], [20.0]])
        z = np.repeat(z, 3, axis=1)
        z[-1, :] = 0.0
        z[1, :] = 10.0
        flow = FlowRouter(BoundaryModel("bpbp")).route(z, dx=1.0)
        K, dt = 0.1, 1.0
        znew, _ = fluvial_incision(z, flow, K=K, m=0.0, n=1.0, dt=dt)
        F = K * dt / 1.0
        np.testing.assert_allclose(znew[1], 10.0 / (1.0 + F))

    @pytest.mark.unit
    def test_erosion_rate_positive(self, routed):
        z, flow = routed
        e = fluvial_erosion_rate(z, flow, K=1e-3, m=0.5, n=1.0, dt=100.0)
        assert np.all(e >= -1e-12)


class TestFluvialHelpers:
    """Test auxiliary fluvial functions."""

    @pytest.mark.unit
    def test_wash_out(self):
        z = np.ones((3, 3)) * 2.0
        z_old = np.ones((3, 3))
        area = np.zeros((3, 3))
        area[1, 1] = 500.0
        out = wash_out(z, z_old, area, threshold=100.0)
        assert out[1, 1] == 1.0
        assert out[0, 0] == 2.0

    @pytest.mark.unit
    def test_wash_out_disabled(self):
        z = np.ones((3, 3)) * 2.0
        out = wash_out(z, np.ones((3, 3)), np.full((3, 3), 1e6), threshold=-99.0)
        np.testing.assert_array_equal(out, z)

    @pytest.mark.unit
    def test_channel_width(self):
        Q = np.array([4.0, 9.0])
        np.testing.assert_allclose(channel_width_wolman(Q, 2.0, 0.5), [4.0, 6.0])
        np.testing.assert_allclose(channel_width_wolman(Q, 2.0, 1.0), [8.0, 18.0])

    @pytest.mark.unit
    def test_stream_power_threshold(self):
        E = stream_power_erosion_rate(np.ones(2), np.ones(2), np.array([0.1, 1.0]),
                                      K=1.0, n=1.0, m=1.0, threshold=0.5, dx=1.0)
        np.testing.assert_allclose(E, [0.0, 0.5])

    @pytest.mark.unit
    def test_precipitation_flux(self):
        flux = precipitation_flux(0.5, 2.0, (2, 3))
        assert flux.shape == (2, 3)
        assert np.all(flux == 2.0)
