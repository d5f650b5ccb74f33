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
from numba import njit

# package modules
from lemraster.utils import ConvergenceResult, format_log

# initialize logger
logger = logging.getLogger(__name__)


def fluvial_incision(z, flow, K, m, n, dt, tol=1e-3, max_iter=100):
    '''Implicit stream power incision in flow order (Braun and Willett, 2013)

    Every node is visited once, base level first, so that a node is
    solved against the already updated elevation of its receiver.
    For ``n = 1`` the implicit update is solved directly, otherwise a
    Newton iteration on

    .. math::

        z - z_{old} + K A^m \\Delta t \\left(\\frac{z - z_r}{\\Delta x}\\right)^n = 0

    is performed per node. Nodes without a receiver are left
    unchanged.

    Parameters
    ----------
    z : numpy.ndarray
        2D elevation field
    flow : FlowInfo
        Flow routing of ``z``
    K : float
        Erodibility
    m : float
        Drainage area exponent
    n : float
        Slope exponent
    dt : float
        Timestep
    tol : float, optional
        Newton correction tolerance (default: 1e-3)
    max_iter : int, optional
        Maximum number of Newton iterations per node (default: 100)

    Returns
    -------
    z : numpy.ndarray
        Incised elevation field
    result : ConvergenceResult
        Convergence of the Newton iterations, the residual is the
        number of nodes that did not converge

    '''

    zi = np.array(z, dtype=float).ravel()
    area = flow.pixels * flow.dx**2

    nfail, maxit = _fastscape(zi, flow.stack, flow.receivers, flow.length_code, area,
                              float(K), float(m), float(n), float(dt), flow.dx,
                              float(tol), int(max_iter))

    if nfail > 0:
        logger.warning(format_log('Fluvial Newton iteration not converged',
                                  nrcells=nfail, maxiterations=maxit))

    return zi.reshape(np.shape(z)), ConvergenceResult(nfail == 0, maxit, nfail)


@njit(cache=True)
def _fastscape(z, stack, receivers, length_code, area, K, m, n, dt, dx, tol, max_iter):
    linear = abs(n - 1.) < 1e-4
    diag = dx * np.sqrt(2.)
    nfail = 0
    maxit = 0

    for k in range(stack.size):
        node = stack[k]
        code = length_code[node]
        r = receivers[node]
        if code == 0 or r == node:
            continue
        L = dx if code == 1 else diag

        if linear:
            F = K * area[node]**m * dt / L
            z[node] = (z[node] + z[r] * F) / (1. + F)
        else:
            zold = z[node]
            zr = z[r]
            if zold <= zr:
                continue
            F = K * area[node]**m * dt
            znew = zold
            converged = False
            it = 0
            while it < max_iter:
                it += 1
                slope = (znew - zr) / L
                eps = (znew - zold + F * slope**n) / (1. + F * (n / L) * slope**(n - 1.))
                zprev = znew
                znew -= eps
                if znew <= zr:
                    znew = .5 * (zprev + zr)
                if abs(eps) <= tol:
                    converged = True
                    break
            if not converged:
                nfail += 1
            if it > maxit:
                maxit = it
            z[node] = znew

    return nfail, maxit


def fluvial_erosion_rate(z, flow, K, m, n, dt, **kwargs):
    '''Erosion rate of one incision step without changing the surface

    Returns
    -------
    numpy.ndarray
        Erosion rate, positive where the surface is lowered

    '''

    znew, _ = fluvial_incision(z, flow, K, m, n, dt, **kwargs)
    return (np.asarray(z) - znew) / dt


def wash_out(z, z_old, area, threshold):
    '''Reset cells with large drainage area to their previous elevation

    Hillslope diffusion does not act in channels. Cells whose
    drainage area, computed on the surface before the timestep,
    exceeds ``threshold`` are restored to ``z_old``.

    Parameters
    ----------
    z : numpy.ndarray
        Elevation after diffusion
    z_old : numpy.ndarray
        Elevation before the timestep
    area : numpy.ndarray
        Drainage area of ``z_old``
    threshold : float
        Drainage area threshold, negative disables wash out

    Returns
    -------
    numpy.ndarray
        Elevation field

    '''

    z = np.array(z, dtype=float)
    if threshold < 0:
        return z
    ix = area > threshold
    z[ix] = z_old[ix]
    return z


def channel_width_wolman(Q, k_w, b):
    '''Channel width from discharge, ``w = k_w Q^b``

    Typical values are ``k_w = 2.77`` and ``b = 0.56`` (Emmett, 1975),
    ``b`` is often assumed 0.5.

    '''

    Q = np.asarray(Q, dtype=float)
    if b == 1.:
        return Q * k_w
    elif b == .5:
        return k_w * np.sqrt(Q)
    else:
        return k_w * Q**b


def stream_power_erosion_rate(width, Q, divergence, K, n, m, threshold, dx):
    '''Explicit stream power erosion rate with erosion threshold

    ``E = K (w / dx) S^n Q^m - threshold``, clipped at zero.

    '''

    E = K * (np.asarray(width) / dx) * np.asarray(divergence)**n * np.asarray(Q)**m - threshold
    return np.maximum(E, 0.)


def precipitation_flux(rate, dx, shape):
    '''Uniform precipitation flux per cell'''

    return np.full(shape, dx * dx * rate)
