'''This file is part of LEMRaster.
   
LEMRaster is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
   
LEMRaster is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.
   
You should have received a copy of the GNU General Public License
along with LEMRaster.  If not, see <http://www.gnu.org/licenses/>.
   
LEMRaster  Copyright (C) 2015 LEMRaster developers

'''

import logging
import numpy as np
import scipy.sparse
import scipy.sparse.linalg

# package modules
from lemraster.constants import D8_OFFSETS
from lemraster.utils import ConvergenceResult, format_log

# initialize logger
logger = logging.getLogger(__name__)


def solve_sparse(A, b, x0=None, maxiter=200, tol=1e-6):
    '''Solve sparse system with ILU preconditioned BiCGSTAB

    Parameters
    ----------
    A : scipy.sparse matrix
        Square system matrix
    b : numpy.ndarray
        Right-hand side
    x0 : numpy.ndarray, optional
        Initial guess (default: ``b``)
    maxiter : int, optional
        Maximum number of iterations (default: 200)
    tol : float, optional
        Relative residual tolerance (default: 1e-6)

    Returns
    -------
    x : numpy.ndarray
        Solution
    result : ConvergenceResult
        Convergence of the iterative solver

    '''

    A = scipy.sparse.csc_matrix(A)
    if x0 is None:
        x0 = b.copy()

    ilu = scipy.sparse.linalg.spilu(A, drop_tol=0., fill_factor=1.)
    M = scipy.sparse.linalg.LinearOperator(A.shape, ilu.solve)

    niter = [0]
    def count(xk):
        niter[0] += 1

    x, info = scipy.sparse.linalg.bicgstab(A, b, x0=x0, rtol=tol, atol=0.,
                                           maxiter=maxiter, M=M, callback=count)

    bnorm = np.linalg.norm(b)
    residual = np.linalg.norm(b - A @ x) / (bnorm if bnorm > 0. else 1.)

    return x, ConvergenceResult(info == 0, niter[0], residual)


class _Stencil:
    '''Index bookkeeping of the cells solved for in a diffusion step

    Cells on base-level edges and no-data cells are fixed; their
    elevations enter the right-hand side. Neighbours beyond a
    periodic edge wrap, neighbours beyond any other edge do not
    exist (no flux).

    '''

    def __init__(self, shape, boundary, valid=None):
        self.shape = shape
        self.boundary = boundary
        self.valid = np.ones(shape, dtype=bool) if valid is None else valid
        self.free = ~boundary.base_level_mask(shape) & self.valid
        self.rows, self.cols = np.nonzero(self.free)
        self.size = self.rows.size
        self.index = -np.ones(shape, dtype=int)
        self.index[self.rows, self.cols] = np.arange(self.size)


    def neighbour(self, di, dj):
        '''Row, column and existence of the neighbour at an offset'''

        ny, nx = self.shape
        rr = self.rows + di
        cc = self.cols + dj
        exists = np.ones(self.size, dtype=bool)

        if self.boundary.ns_periodic:
            rr = rr % ny
        else:
            exists &= (rr >= 0) & (rr < ny)
        if self.boundary.ew_periodic:
            cc = cc % nx
        else:
            exists &= (cc >= 0) & (cc < nx)

        rr = np.clip(rr, 0, ny - 1)
        cc = np.clip(cc, 0, nx - 1)
        exists &= self.valid[rr, cc]

        return rr, cc, exists


class HillslopeDiffusionSolver:
    '''Implicit hillslope diffusion over the cells off base level

    Solves

    .. math::

        z - \\Delta t \\nabla \\cdot \\left(\\frac{D \\nabla z}{1 - (|\\nabla z| / S_c)^2}\\right)
        = z_{old} + \\Delta t \\, s

    for one timestep with either a linear nine-point finite
    difference stencil or a nonlinear five-point finite volume
    stencil whose coefficients are updated by Picard iteration.
    Cells on base-level edges are held at their elevation.

    Example
    -------
    >>> solver = HillslopeDiffusionSolver(BoundaryModel('bpbp'), dx=10.)
    >>> z, result = solver(z, D=0.02, dt=100.)

    '''


    def __init__(self, boundary, dx, S_c=np.tan(np.deg2rad(30.)), nonlinear=False,
                 margin=1e-3, max_iter=200, tol=1e-5, solver_maxiter=200, solver_tol=1e-6):
        '''Class initialization

        Parameters
        ----------
        boundary : BoundaryModel
            Boundary conditions
        dx : float
            Grid cell size
        S_c : float, optional
            Critical gradient (default: tan 30 degrees)
        nonlinear : bool, optional
            Use the nonlinear critical slope formulation (default: False)
        margin : float, optional
            Smallest allowed denominator ``1 - (S/S_c)^2`` (default: 1e-3)
        max_iter : int, optional
            Maximum number of Picard iterations (default: 200)
        tol : float, optional
            Maximum elevation change between Picard iterations (default: 1e-5)
        solver_maxiter : int, optional
            Maximum iterations of the sparse solver (default: 200)
        solver_tol : float, optional
            Relative tolerance of the sparse solver (default: 1e-6)

        '''

        self.boundary = boundary
        self.dx = dx
        self.S_c = S_c
        self.nonlinear = nonlinear
        self.margin = margin
        self.max_iter = max_iter
        self.tol = tol
        self.solver_maxiter = solver_maxiter
        self.solver_tol = solver_tol
        self.nclamped = 0


    def __call__(self, z, D, dt, source=None, valid=None):
        if self.nonlinear:
            return self.solve_nonlinear(z, D, dt, source=source, valid=valid)
        else:
            return self.solve_linear(z, D, dt, source=source, valid=valid)


    def fd_system(self, z, D, dt, stencil):
        '''Assemble the linear nine-point system

        Axis neighbours are weighted with ``r = D dt / dx^2``, diagonal
        neighbours with ``r_ = D dt / (dx sqrt 2)^2``. The diagonal
        holds one plus the weights of all existing neighbours.

        Returns
        -------
        A : scipy.sparse.csr_matrix
            System matrix
        b : numpy.ndarray
            Right-hand side without source terms

        '''

        r = D * dt / self.dx**2
        r_ = D * dt / (self.dx * np.sqrt(2.))**2

        diag = np.ones(stencil.size)
        b = z[stencil.rows, stencil.cols].copy()
        p = np.arange(stencil.size)
        ii, jj, vv = [], [], []

        for k, (di, dj) in enumerate(D8_OFFSETS):
            w = r if k < 4 else r_
            rr, cc, exists = stencil.neighbour(di, dj)
            q = stencil.index[rr, cc]
            isfree = exists & (q >= 0)
            isfixed = exists & (q < 0)

            diag[exists] += w
            ii.append(p[isfree])
            jj.append(q[isfree])
            vv.append(np.full(np.sum(isfree), -w))
            b[isfixed] += w * z[rr[isfixed], cc[isfixed]]

        A = scipy.sparse.coo_matrix((np.concatenate(vv), (np.concatenate(ii), np.concatenate(jj))),
                                    shape=(stencil.size, stencil.size))
        A = (A + scipy.sparse.diags(diag)).tocsr()

        return A, b


    def fv_system(self, z_iter, z_old, D, dt, stencil):
        '''Assemble the nonlinear five-point system for the current iterate

        The flux coefficient towards each axis neighbour is
        ``front / (1 - (dz / (S_c dx))^2)`` with ``front = D dt / dx^2``,
        evaluated on ``z_iter``. The denominator is clamped at
        ``margin``.

        Returns
        -------
        A : scipy.sparse.csr_matrix
            System matrix
        b : numpy.ndarray
            Right-hand side without source terms

        '''

        front = D * dt / self.dx**2
        inv_term = 1. / (self.dx**2 * self.S_c**2)

        zp = z_iter[stencil.rows, stencil.cols]
        diag = np.ones(stencil.size)
        b = z_old[stencil.rows, stencil.cols].copy()
        p = np.arange(stencil.size)
        ii, jj, vv = [], [], []

        for di, dj in D8_OFFSETS[:4]:
            rr, cc, exists = stencil.neighbour(di, dj)
            q = stencil.index[rr, cc]

            den = 1. - (zp - z_iter[rr, cc])**2 * inv_term
            clamped = exists & (den < self.margin)
            self.nclamped += np.sum(clamped)
            w = front / np.maximum(den, self.margin)

            isfree = exists & (q >= 0)
            isfixed = exists & (q < 0)

            diag[exists] += w[exists]
            ii.append(p[isfree])
            jj.append(q[isfree])
            vv.append(-w[isfree])
            b[isfixed] += w[isfixed] * z_old[rr[isfixed], cc[isfixed]]

        A = scipy.sparse.coo_matrix((np.concatenate(vv), (np.concatenate(ii), np.concatenate(jj))),
                                    shape=(stencil.size, stencil.size))
        A = (A + scipy.sparse.diags(diag)).tocsr()

        return A, b


    def solve_linear(self, z, D, dt, source=None, valid=None):
        '''Single linear diffusion step

        Parameters
        ----------
        z : numpy.ndarray
            2D elevation field
        D : float
            Diffusivity
        dt : float
            Timestep
        source : numpy.ndarray, optional
            Source rate added as ``dt * source``
        valid : numpy.ndarray, optional
            Mask of cells that do not hold no-data

        Returns
        -------
        z : numpy.ndarray
            Diffused elevation field
        result : ConvergenceResult
            Convergence of the sparse solver

        '''

        z = np.array(z, dtype=float)
        stencil = _Stencil(z.shape, self.boundary, valid)
        if stencil.size == 0:
            return z, ConvergenceResult(True, 0, 0.)

        A, b = self.fd_system(z, D, dt, stencil)
        if source is not None:
            b += dt * np.broadcast_to(source, z.shape)[stencil.rows, stencil.cols]

        x, result = solve_sparse(A, b, x0=z[stencil.rows, stencil.cols],
                                 maxiter=self.solver_maxiter, tol=self.solver_tol)
        if not result.converged:
            logger.warning(format_log('Linear diffusion solver not converged',
                                      iterations=result.iterations,
                                      residual=result.residual))

        z[stencil.rows, stencil.cols] = x
        return z, result


    def solve_nonlinear(self, z, D, dt, source=None, valid=None):
        '''Nonlinear diffusion step by Picard iteration

        The system is rebuilt from the latest iterate until the
        maximum elevation change between iterations drops below
        ``tol`` or ``max_iter`` iterations are done.

        Returns
        -------
        z : numpy.ndarray
            Diffused elevation field
        result : ConvergenceResult
            Convergence of the Picard iteration, residual is the last
            maximum elevation change

        '''

        z_old = np.array(z, dtype=float)
        stencil = _Stencil(z_old.shape, self.boundary, valid)
        if stencil.size == 0:
            return z_old, ConvergenceResult(True, 0, 0.)

        self.nclamped = 0
        z_iter = z_old.copy()
        max_diff = np.inf
        converged = False

        for it in range(1, self.max_iter + 1):
            A, b = self.fv_system(z_iter, z_old, D, dt, stencil)
            if source is not None:
                b += dt * np.broadcast_to(source, z_old.shape)[stencil.rows, stencil.cols]

            x, _ = solve_sparse(A, b, x0=z_iter[stencil.rows, stencil.cols],
                                maxiter=self.solver_maxiter, tol=self.solver_tol)

            max_diff = np.max(np.abs(x - z_iter[stencil.rows, stencil.cols]))
            z_iter[stencil.rows, stencil.cols] = x

            if not np.isfinite(max_diff):
                break
            if max_diff <= self.tol:
                converged = True
                break

        if self.nclamped > 0:
            logger.warning(format_log('Near-critical slopes clamped',
                                      nrfaces=self.nclamped,
                                      margin=self.margin))
        if not converged:
            logger.warning(format_log('Nonlinear diffusion not converged',
                                      iterations=it,
                                      maxdiff=max_diff))

        return z_iter, ConvergenceResult(converged, it, max_diff)


class NonlinearCreepSolver:
    '''Full grid implicit nonlinear creep with fixed north and south elevations

    The grid is extended with a ghost row on the north and south side
    holding prescribed elevations; the east and west edges wrap. The
    system of all ``(nrows + 2) * ncols`` nodes is solved repeatedly,
    updating the nonlinear flux coefficients, until the mean absolute
    elevation change between iterations drops below the tolerance.
    Whenever ``max_iter`` iterations pass without convergence the
    tolerance is relaxed tenfold and counting restarts.

    Use :func:`build_creep_solver` to create an instance from a model
    configuration.

    '''


    def __init__(self, shape, dx, D, S_c, tol=0.01, max_iter=100,
                 solver_maxiter=500, solver_tol=1e-8, margin=1e-3):
        self.shape = shape
        self.dx = dx
        self.D = D
        self.S_c = S_c
        self.tol = tol
        self.max_iter = max_iter
        self.solver_maxiter = solver_maxiter
        self.solver_tol = solver_tol
        self.margin = margin
        self.nclamped = 0
        self._tables = None


    @property
    def problem_dimension(self):
        return (self.shape[0] + 2) * self.shape[1]


    @property
    def tables(self):
        '''Vectorized node indices of each grid cell and its four neighbours'''

        if self._tables is None:
            ny, nx = self.shape
            row, col = np.mgrid[0:ny, 0:nx]
            self._tables = dict(
                k_i_j=(nx * (row + 1) + col).ravel(),
                k_ip1_j=(nx * (row + 2) + col).ravel(),
                k_im1_j=(nx * row + col).ravel(),
                k_i_jp1=(nx * (row + 1) + (col + 1) % nx).ravel(),
                k_i_jm1=(nx * (row + 1) + (col - 1) % nx).ravel(),
            )
        return self._tables


    def assemble(self, z_iter, z_old, dt, north, south, uplift_rate=0., fluvial_rate=0., D=None,
                 valid=None):
        '''Assemble the full grid system for the current iterate

        No-data cells, marked false in ``valid``, get identity rows
        holding their elevation and exchange no flux with their
        neighbours.

        Returns
        -------
        A : scipy.sparse.csr_matrix
            System matrix of size ``problem_dimension``
        b : numpy.ndarray
            Right-hand side

        '''

        if D is None:
            D = self.D
        ny, nx = self.shape
        t = self.tables

        front = dt * D / self.dx**2
        inv_term = 1. / (self.dx**2 * self.S_c**2)

        if valid is None:
            valid = np.ones(self.shape, dtype=bool)
        vp = np.vstack((np.ones((1, nx), dtype=bool), valid, np.ones((1, nx), dtype=bool)))

        def coefficient(dz, active):
            dz = np.where(active, dz, 0.)
            den = 1. - dz**2 * inv_term
            self.nclamped += np.sum(den < self.margin)
            return np.where(active, front / np.maximum(den, self.margin), 0.)

        # ghost rows copy the edge rows
        zp = np.vstack((z_iter[:1,:], z_iter, z_iter[-1:,:]))
        zc = zp[1:-1,:]

        A = coefficient(zp[2:,:] - zc, valid & vp[2:,:]).ravel()
        B = coefficient(zc - zp[:-2,:], valid & vp[:-2,:]).ravel()
        C = coefficient(np.roll(zc, -1, axis=1) - zc, valid & np.roll(valid, -1, axis=1)).ravel()
        D_ = coefficient(zc - np.roll(zc, 1, axis=1), valid & np.roll(valid, 1, axis=1)).ravel()

        ghosts = np.concatenate((np.arange(nx), np.arange((ny + 1) * nx, (ny + 2) * nx)))
        rows = np.concatenate((ghosts, t['k_i_j'], t['k_i_j'], t['k_i_j'], t['k_i_j'], t['k_i_j']))
        cols = np.concatenate((ghosts, t['k_ip1_j'], t['k_im1_j'], t['k_i_jp1'], t['k_i_jm1'], t['k_i_j']))
        vals = np.concatenate((np.ones(ghosts.size), -A, -B, -C, -D_, 1. + A + B + C + D_))

        n = self.problem_dimension
        M = scipy.sparse.coo_matrix((vals, (rows, cols)), shape=(n, n)).tocsr()

        rhs = z_old + dt * np.asarray(uplift_rate) - dt * np.asarray(fluvial_rate)
        rhs = np.where(valid, rhs, z_old)

        b = np.zeros(n)
        b[:nx] = north
        b[(ny + 1) * nx:] = south
        b[t['k_i_j']] = rhs.ravel()

        return M, b


    def iterate(self, z, z_old, dt, north, south, tol, max_iter, norm='mean', **kwargs):
        '''Picard iterations until the elevation change drops below ``tol``

        Returns
        -------
        z : numpy.ndarray
            Latest iterate
        result : ConvergenceResult
            Convergence, residual is the last mean or maximum change

        '''

        ny, nx = self.shape
        t = self.tables
        z = np.array(z, dtype=float)
        residual = np.inf

        for it in range(1, max_iter + 1):
            A, b = self.assemble(z, z_old, dt, north, south, **kwargs)
            x0 = b.copy()
            x0[t['k_i_j']] = z.ravel()
            x, _ = solve_sparse(A, b, x0=x0, maxiter=self.solver_maxiter, tol=self.solver_tol)

            z_new = x[t['k_i_j']].reshape((ny, nx))
            change = np.abs(z_new - z)
            residual = np.mean(change) if norm == 'mean' else np.max(change)
            z = z_new

            if not residual > tol:
                return z, ConvergenceResult(bool(np.isfinite(residual)), it, residual)

        return z, ConvergenceResult(False, max_iter, residual)


    def timestep(self, z, dt, north, south, uplift_rate=0., fluvial_rate=0., D=None, valid=None):
        '''One creep timestep with self-relaxing tolerance

        Parameters
        ----------
        z : numpy.ndarray
            2D elevation field
        dt : float
            Timestep
        north : float
            Elevation of the northern ghost row
        south : float
            Elevation of the southern ghost row
        uplift_rate : float or numpy.ndarray, optional
            Uplift rate included in the implicit step (default: 0)
        fluvial_rate : float or numpy.ndarray, optional
            Fluvial erosion rate included in the implicit step (default: 0)
        D : float, optional
            Diffusivity (default: value given at initialization)
        valid : numpy.ndarray, optional
            Mask of cells that do not hold no-data

        Returns
        -------
        z : numpy.ndarray
            Elevation field after the timestep
        result : ConvergenceResult
            ``converged`` is false if the tolerance had to be relaxed

        '''

        z_old = np.array(z, dtype=float)
        self.nclamped = 0
        tol = self.tol
        relaxed = 0
        iterations = 0

        while True:
            z, result = self.iterate(z if iterations else z_old, z_old, dt, north, south,
                                     tol, self.max_iter + 1, norm='mean',
                                     uplift_rate=uplift_rate, fluvial_rate=fluvial_rate, D=D,
                                     valid=valid)
            iterations += result.iterations
            if result.converged or not np.isfinite(result.residual):
                break
            tol *= 10.
            relaxed += 1
            logger.warning(format_log('Creep iteration not converged, relaxing tolerance',
                                      tolerance=tol,
                                      residual=result.residual))

        if valid is not None:
            z[~valid] = z_old[~valid]

        if self.nclamped > 0:
            logger.warning(format_log('Near-critical slopes clamped',
                                      nrfaces=self.nclamped,
                                      margin=self.margin))

        converged = relaxed == 0 and bool(np.isfinite(result.residual))
        return z, ConvergenceResult(converged, iterations, result.residual)


class AdaptiveTimestep:
    '''Sub-stepping policy for the nonlinear creep solver

    The requested timestep is covered by sub-steps. A sub-step that
    converges in a single iteration doubles the size of the next
    one; a sub-step that needs ``max_iterations`` is discarded and
    retried with a tenth of its size. The last accepted sub-step size
    is remembered for the next call.

    '''


    def __init__(self, tol=1e-5, max_iterations=10, grow=2., shrink=10., min_fraction=1e-6):
        self.tol = tol
        self.max_iterations = max_iterations
        self.grow = grow
        self.shrink = shrink
        self.min_fraction = min_fraction
        self.dt = None


    def advance(self, solver, z, dt, north, south, valid=None, **kwargs):
        '''Advance ``z`` over ``dt`` in adaptive sub-steps

        No-data cells, marked false in ``valid``, keep their value.

        Returns
        -------
        z : numpy.ndarray
            Elevation field after ``dt``
        result : ConvergenceResult
            ``converged`` is false if a sub-step was accepted at the
            smallest allowed size without converging, ``iterations``
            is the number of accepted sub-steps

        '''

        z = np.array(z, dtype=float)
        z_start = z.copy()
        t = 0.
        sub = dt if self.dt is None else min(self.dt, dt)
        nsteps = 0
        converged = True
        residual = 0.

        while t < dt * (1. - 1e-12):
            sub = min(sub, dt - t)
            z_new, result = solver.iterate(z, z, sub, north, south, self.tol,
                                           self.max_iterations, norm='max', valid=valid, **kwargs)

            if result.iterations >= self.max_iterations and not result.converged \
               and sub / self.shrink >= dt * self.min_fraction:
                sub /= self.shrink
                logger.info(format_log('Slowing down creep timestep',
                                       timestep=sub,
                                       maxresidual=result.residual))
                continue

            converged &= result.converged
            residual = max(residual, result.residual)
            z = z_new
            t += sub
            nsteps += 1
            self.dt = sub

            if result.iterations == 1:
                sub *= self.grow
                self.dt = sub
                logger.debug(format_log('Speeding up creep timestep', timestep=sub))

        if valid is not None:
            z[~valid] = z_start[~valid]

        return z, ConvergenceResult(converged, nsteps, residual)


def build_creep_solver(p, boundary, shape, D=None):
    '''Create a full grid creep solver from a model configuration

    Raises
    ------
    ValueError
        If the north and south edges are not base level or the east
        and west edges are not periodic

    '''

    boundary.require(north='b', south='b')
    if not boundary.ew_periodic:
        msg = 'Full grid creep solver requires periodic east and west boundaries [%s]' \
            % ''.join(boundary.codes)
        logger.error(msg)
        raise ValueError(msg)

    return NonlinearCreepSolver(shape, p['resolution'],
                                p['D'] if D is None else D,
                                np.tan(np.deg2rad(p['S_c'])),
                                tol=p['tol_creep'],
                                max_iter=p['max_iter_creep'],
                                solver_maxiter=p['max_iter_creep_solver'],
                                solver_tol=p['tol_creep_solver'],
                                margin=p['critical_slope_margin'])


def find_max_boundary(z, edge):
    '''Maximum of the elevations along an edge, not below zero'''

    z = np.asarray(z)
    edge = edge % 4
    values = {0: z[0,:], 1: z[:,-1], 2: z[-1,:], 3: z[:,0]}[edge]
    return max(0., float(np.max(values)))


def soil_diffusion_fv(z, p, boundary, t, D=None, uplift_rate=0., fluvial_rate=0.):
    '''Creep timestep between a fixed south edge at zero and a rising north edge

    The north ghost row sits at ``t * max_uplift``.

    Raises
    ------
    ValueError
        If the south edge is not base level

    '''

    if boundary.classify('south') != 'b':
        msg = 'Finite volume creep requires a base-level south boundary [%s]' % ''.join(boundary.codes)
        logger.error(msg)
        raise ValueError(msg)

    solver = build_creep_solver(p, boundary, np.shape(z), D=D)
    return solver.timestep(z, p['time_step'], north=t * p['max_uplift'], south=0.,
                           uplift_rate=uplift_rate, fluvial_rate=fluvial_rate)
