"""Unit tests for implicit hillslope diffusion."""

import numpy as np
import pytest
import scipy.sparse

from lemraster.boundary import BoundaryModel
from lemraster.constants import DEFAULT_CONFIG
from lemraster.hillslope import (
    AdaptiveTimestep,
    HillslopeDiffusionSolver,
    NonlinearCreepSolver,
    _Stencil,
    build_creep_solver,
    find_max_boundary,
    soil_diffusion_fv,
    solve_sparse,
)


def spike(shape=(11, 11), height=10.0):
    z = np.zeros(shape)
    z[shape[0] // 2, shape[1] // 2] = height
    return z


class TestSolveSparse:
    """Test the preconditioned iterative solver."""

    @pytest.mark.unit
    def test_diagonally_dominant_system(self):
        n = 20
        A = scipy.sparse.diags([-1.0, 4.0, -1.0], [-1, 0, 1], shape=(n, n)).tocsr()
        x_true = np.linspace(0.0, 1.0, n)
        b = A @ x_true

        x, result = solve_sparse(A, b, tol=1e-10)
        assert result.converged
        assert result.residual < 1e-8
        np.testing.assert_allclose(x, x_true, atol=1e-8)


class TestLinearDiffusion:
    """Test the nine-point finite difference scheme."""

    @pytest.mark.unit
    def test_zero_diffusivity_is_identity(self, rough_surface):
        solver = HillslopeDiffusionSolver(BoundaryModel("bpbp"), dx=10.0)
        z, result = solver.solve_linear(rough_surface, D=0.0, dt=100.0)
        assert result.converged
        np.testing.assert_allclose(z, rough_surface, atol=1e-10)

    @pytest.mark.unit
    def test_flat_surface_unchanged(self):
        solver = HillslopeDiffusionSolver(BoundaryModel("bpbp"), dx=10.0)
        z0 = np.full((8, 6), 3.0)
        z, _ = solver.solve_linear(z0, D=0.5, dt=100.0)
        np.testing.assert_allclose(z, z0, atol=1e-8)

    @pytest.mark.unit
    def test_spike_spreads(self):
        solver = HillslopeDiffusionSolver(BoundaryModel("bpbp"), dx=1.0, solver_tol=1e-12)
        z0 = spike()
        z, result = solver.solve_linear(z0, D=0.1, dt=1.0)

        assert result.converged
        assert z[5, 5] < z0[5, 5]
        for di, dj in [(-1, 0), (1, 0), (0, -1), (0, 1), (1, 1), (-1, -1)]:
            assert z[5 + di, 5 + dj] > 0.0
        # symmetric spreading, maximum principle
        assert z[4, 5] == pytest.approx(z[6, 5], rel=1e-5)
        assert z[5, 4] == pytest.approx(z[5, 6], rel=1e-5)
        assert z.max() <= z0.max()
        assert z.min() >= -1e-8

    @pytest.mark.unit
    def test_base_level_fixed(self, ridge):
        solver = HillslopeDiffusionSolver(BoundaryModel("bpbp"), dx=10.0)
        z, _ = solver.solve_linear(ridge + 1.0, D=1.0, dt=100.0)
        np.testing.assert_array_equal(z[0], ridge[0] + 1.0)
        np.testing.assert_array_equal(z[-1], ridge[-1] + 1.0)
        assert np.all(z[1:-1] <= ridge[1:-1] + 1.0 + 1e-8)

    @pytest.mark.unit
    @pytest.mark.parametrize("codes", ["nnnn", "pppp", "npnp"])
    def test_mass_conserved_without_base_level(self, codes):
        solver = HillslopeDiffusionSolver(BoundaryModel(codes), dx=1.0, solver_tol=1e-12)
        z0 = spike((9, 7))
        z, result = solver.solve_linear(z0, D=0.2, dt=1.0)
        assert result.converged
        assert z.sum() == pytest.approx(z0.sum(), rel=1e-6)

    @pytest.mark.unit
    def test_nodata_cells_untouched(self, ridge):
        valid = np.ones(ridge.shape, dtype=bool)
        valid[4, 4] = False
        z0 = ridge.copy()
        z0[4, 4] = -99.0
        solver = HillslopeDiffusionSolver(BoundaryModel("bpbp"), dx=10.0)
        z, _ = solver.solve_linear(z0, D=1.0, dt=100.0, valid=valid)
        assert z[4, 4] == -99.0
        assert np.all(z[valid] > -1.0)

    @pytest.mark.unit
    def test_source_term(self):
        solver = HillslopeDiffusionSolver(BoundaryModel("nnnn"), dx=1.0)
        z, _ = solver.solve_linear(np.zeros((4, 4)), D=0.1, dt=2.0, source=0.5)
        np.testing.assert_allclose(z, 1.0, atol=1e-5)

    @pytest.mark.unit
    def test_fd_system_weights(self):
        solver = HillslopeDiffusionSolver(BoundaryModel("nnnn"), dx=2.0)
        z = np.zeros((3, 3))
        stencil = _Stencil(z.shape, solver.boundary)
        A, b = solver.fd_system(z, D=4.0, dt=1.0, stencil=stencil)

        r = 4.0 / 4.0
        r_ = 4.0 / 8.0
        centre = stencil.index[1, 1]
        assert A[centre, centre] == pytest.approx(1.0 + 4 * r + 4 * r_)
        assert A[centre, stencil.index[0, 1]] == pytest.approx(-r)
        assert A[centre, stencil.index[0, 0]] == pytest.approx(-r_)
        corner = stencil.index[0, 0]
        assert A[corner, corner] == pytest.approx(1.0 + 2 * r + r_)


class TestNonlinearDiffusion:
    """Test the nonlinear finite volume scheme."""

    @pytest.mark.unit
    def test_spike_spreads_and_converges(self):
        solver = HillslopeDiffusionSolver(BoundaryModel("bpbp"), dx=10.0, nonlinear=True)
        z0 = spike(height=1.0)
        z, result = solver(z0, D=0.1, dt=100.0)

        assert result.converged
        assert result.iterations >= 1
        assert z[5, 5] < z0[5, 5]
        assert z[4, 5] > z[4, 4] > 0.0

    @pytest.mark.unit
    def test_mass_conserved_no_flux(self):
        solver = HillslopeDiffusionSolver(BoundaryModel("nnnn"), dx=10.0, nonlinear=True,
                                          solver_tol=1e-12)
        z0 = spike((7, 7), height=2.0)
        z, result = solver(z0, D=0.05, dt=100.0)
        assert result.converged
        assert z.sum() == pytest.approx(z0.sum(), rel=1e-6)

    @pytest.mark.unit
    def test_near_critical_slope_clamped(self):
        # step far steeper than the critical slope
        z0 = np.zeros((6, 6))
        z0[3:, :] = 50.0
        z0[-1, :] = 50.0
        solver = HillslopeDiffusionSolver(BoundaryModel("bpbp"), dx=1.0, nonlinear=True,
                                          S_c=np.tan(np.deg2rad(30.0)), margin=1e-3,
                                          max_iter=5)
        z, result = solver(z0, D=0.01, dt=1.0)

        assert solver.nclamped > 0
        assert np.all(np.isfinite(z))
        assert isinstance(result.converged, bool)
        assert result.iterations <= 5

    @pytest.mark.unit
    def test_reports_nonconvergence(self):
        z0 = spike(height=50.0)
        solver = HillslopeDiffusionSolver(BoundaryModel("bpbp"), dx=1.0, nonlinear=True,
                                          max_iter=1, tol=1e-12)
        _, result = solver(z0, D=0.1, dt=10.0)
        assert not result.converged
        assert result.iterations == 1


class TestNonlinearCreepSolver:
    """Test the full grid creep solver."""

    @pytest.fixture
    def params(self):
        p = DEFAULT_CONFIG.copy()
        p.update(resolution=10.0, D=0.01, S_c=30.0, time_step=100.0, max_uplift=1e-3)
        return p

    @pytest.mark.unit
    def test_index_tables(self):
        solver = NonlinearCreepSolver((3, 4), dx=1.0, D=0.1, S_c=0.5)
        t = solver.tables
        assert solver.problem_dimension == 5 * 4
        assert t["k_i_j"][0] == 4
        assert t["k_im1_j"][0] == 0
        assert t["k_ip1_j"][0] == 8
        # east and west wrap
        assert t["k_i_jm1"][0] == 7
        assert t["k_i_jp1"][3] == 4
        assert solver.tables is t

    @pytest.mark.unit
    def test_flat_surface_without_forcing(self, params, bpbp):
        solver = build_creep_solver(params, bpbp, (8, 6))
        z, result = solver.timestep(np.zeros((8, 6)), 100.0, north=0.0, south=0.0)
        assert result.converged
        np.testing.assert_allclose(z, 0.0, atol=1e-8)

    @pytest.mark.unit
    def test_uplift_raises_interior(self, params, bpbp):
        solver = build_creep_solver(params, bpbp, (8, 6))
        z, result = solver.timestep(np.zeros((8, 6)), 100.0, north=0.0, south=0.0,
                                    uplift_rate=1e-3)
        assert result.converged
        assert np.all(z > 0.0)
        assert np.all(z <= 0.1 + 1e-8)
        # periodic east-west, no variation along rows
        np.testing.assert_allclose(z[:, 0], z[:, 3], rtol=1e-6)
        # highest in the middle
        assert z[4, 0] > z[0, 0]

    @pytest.mark.unit
    def test_requires_base_level_north_south(self, params):
        with pytest.raises(ValueError):
            build_creep_solver(params, BoundaryModel("npbp"), (8, 6))
        with pytest.raises(ValueError):
            build_creep_solver(params, BoundaryModel("bnbn"), (8, 6))

    @pytest.mark.unit
    def test_relaxed_tolerance_is_reported(self, params, bpbp):
        solver = build_creep_solver(params, bpbp, (8, 6))
        solver.max_iter = 0
        solver.tol = 1e-12
        z, result = solver.timestep(spike((8, 6)), 100.0, north=0.0, south=0.0)
        assert not result.converged
        assert np.all(np.isfinite(z))

    @pytest.mark.unit
    def test_nodata_cells_untouched(self, params, bpbp, ridge):
        valid = np.ones(ridge.shape, dtype=bool)
        valid[4, 4] = False
        z0 = ridge.copy()
        z0[4, 4] = -99.0
        solver = build_creep_solver(params, bpbp, ridge.shape)
        z, result = solver.timestep(z0, 100.0, north=0.0, south=0.0, valid=valid)
        assert result.converged
        assert z[4, 4] == -99.0
        # neighbours exchange no flux with the no-data cell
        for i, j in [(3, 4), (5, 4), (4, 3), (4, 5)]:
            assert abs(z[i, j] - ridge[i, j]) < 0.1

    @pytest.mark.unit
    def test_soil_diffusion_fv(self, params, bpbp):
        z, result = soil_diffusion_fv(np.zeros((8, 6)), params, bpbp, t=1000.0)
        assert result.converged
        # northern ghost row raised to t * max_uplift pulls the grid up
        assert z[0].mean() > z[-1].mean()

    @pytest.mark.unit
    def test_soil_diffusion_fv_requires_south_base_level(self, params):
        with pytest.raises(ValueError):
            soil_diffusion_fv(np.zeros((8, 6)), params, BoundaryModel("bpnp"), t=0.0)


class TestAdaptiveTimestep:
    """Test adaptive sub-stepping."""

    @pytest.mark.unit
    def test_covers_full_timestep(self, bpbp):
        solver = NonlinearCreepSolver((8, 6), dx=10.0, D=0.01, S_c=np.tan(np.deg2rad(30.0)))
        adaptive = AdaptiveTimestep(tol=1e-5, max_iterations=10)
        z, result = adaptive.advance(solver, np.zeros((8, 6)), 100.0, 0.0, 0.0, uplift_rate=1e-3)

        assert result.iterations >= 1
        assert adaptive.dt is not None
        assert np.all(z > 0.0)
        assert np.all(z <= 0.1 + 1e-8)

    @pytest.mark.unit
    def test_grows_after_quick_convergence(self):
        solver = NonlinearCreepSolver((6, 4), dx=10.0, D=0.01, S_c=1.0)
        adaptive = AdaptiveTimestep()
        adaptive.dt = 10.0
        adaptive.advance(solver, np.zeros((6, 4)), 10.0, 0.0, 0.0)
        assert adaptive.dt == 20.0

    @pytest.mark.unit
    def test_nodata_cells_untouched(self, bpbp, ridge):
        valid = np.ones(ridge.shape, dtype=bool)
        valid[4, 4] = False
        z0 = ridge.copy()
        z0[4, 4] = -99.0
        solver = NonlinearCreepSolver(ridge.shape, dx=10.0, D=0.01, S_c=np.tan(np.deg2rad(30.0)))
        z, _ = AdaptiveTimestep().advance(solver, z0, 100.0, 0.0, 0.0, valid=valid)
        assert z[4, 4] == -99.0
        for i, j in [(3, 4), (5, 4), (4, 3), (4, 5)]:
            assert abs(z[i, j] - ridge[i, j]) < 0.1


class TestFindMaxBoundary:

    @pytest.mark.unit
    def test_edges(self):
        z = np.arange(12, dtype=float).reshape((3, 4)) - 2.0
        assert find_max_boundary(z, 0) == 1.0
        assert find_max_boundary(z, 2) == 9.0
        assert find_max_boundary(z, 3) == 6.0
        assert find_max_boundary(-np.ones((2, 2)), 1) == 0.0
