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

# package modules
from lemraster.constants import RHO_CRUST, RHO_MANTLE, GRAVITY
from lemraster.utils import ConvergenceResult, detrend, format_log, next_power_of_two

# initialize logger
logger = logging.getLogger(__name__)


def airy_isostasy(z, root, rho_c=RHO_CRUST, rho_m=RHO_MANTLE, valid=None):
    '''Local isostatic compensation of the surface load

    The load, surface elevation plus root depth, is redistributed
    over a root and a surface elevation such that the root depth
    balances the crust above it:

    .. math::

        r = \\frac{z + r_{old}}{1 + (\\rho_m - \\rho_c) / \\rho_c}

    The sum of elevation and root depth is conserved. No-data cells,
    marked false in ``valid``, keep their elevation and root.

    Parameters
    ----------
    z : numpy.ndarray
        2D elevation field
    root : numpy.ndarray
        2D root depth field
    rho_c : float, optional
        Density of the crust (default: 2650)
    rho_m : float, optional
        Density of the mantle (default: 3300)
    valid : numpy.ndarray, optional
        Mask of cells that do not hold no-data

    Returns
    -------
    z : numpy.ndarray
        Compensated elevation field
    root : numpy.ndarray
        Updated root depth

    '''

    load = z + root
    new_root = load / (1. + (rho_m - rho_c) / rho_c)

    if valid is None:
        return load - new_root, new_root
    return np.where(valid, load - new_root, z), np.where(valid, new_root, root)


def calculate_airy(z, rho_c=RHO_CRUST, rho_m=RHO_MANTLE):
    '''Root depth of a fully compensated surface'''

    return z * rho_c / (rho_m - rho_c)


def calculate_root(z, rigidity, boundary, rho_c=RHO_CRUST, rho_m=RHO_MANTLE, g=GRAVITY,
                   valid=None):
    '''Flexural root depth of the present surface (Vening Meinesz)

    The surface is detrended and zero-padded to powers of two in both
    directions. Its centred spectrum is multiplied with the filter

    .. math::

        \\frac{\\rho_c / (\\rho_m - \\rho_c)}
        {1 + 4 \\cdot 4D / \\left(\\sqrt{(\\rho_m - \\rho_c) g} (\\pi k)^4\\right)}

    where ``k`` is computed from the fractional row and column
    indices ``i / Ly`` and ``j / Lx`` of the centred spectrum. The
    filter is zero where ``k`` vanishes. After the inverse transform
    the trend is added back and cells on base-level edges are set to
    zero.

    No-data cells, marked false in ``valid``, carry the mean elevation
    of the valid cells as load.

    Parameters
    ----------
    z : numpy.ndarray
        2D elevation field
    rigidity : float
        Flexural rigidity
    boundary : BoundaryModel
        Boundary conditions
    valid : numpy.ndarray, optional
        Mask of cells that do not hold no-data

    Returns
    -------
    numpy.ndarray
        Root depth

    '''

    if valid is not None:
        z = np.where(valid, z, z[valid].mean() if np.any(valid) else 0.)

    ny, nx = z.shape
    Ly = next_power_of_two(ny)
    Lx = next_power_of_two(nx)

    detrended, trend = detrend(z, shape=(Ly, Lx))

    spectrum = np.fft.fftshift(np.fft.fft2(detrended))

    i, j = np.mgrid[0:Ly, 0:Lx]
    k = np.sqrt((i / Ly)**2 + (j / Lx)**2)
    with np.errstate(divide='ignore'):
        stiffness = 4. * rigidity / (np.sqrt((rho_m - rho_c) * g) * (np.pi * k)**4)
    coeff = (rho_c / (rho_m - rho_c)) / (1. + 4. * stiffness)
    coeff[k == 0.] = 0.

    filtered = np.real(np.fft.ifft2(np.fft.ifftshift(spectrum * coeff)))

    root = filtered[:ny,:nx] + trend
    root[boundary.base_level_mask(z.shape)] = 0.

    return root


def flexural_isostasy_alt(z, root, rigidity, boundary, valid=None, **kwargs):
    '''Single flexural update of surface and root

    The change in flexural root depth is subtracted from the surface
    and added to the root. No-data cells keep their elevation and root.

    Returns
    -------
    z : numpy.ndarray
        Compensated elevation field
    root : numpy.ndarray
        Updated root depth

    '''

    difference = calculate_root(z, rigidity, boundary, valid=valid, **kwargs) - root
    if valid is not None:
        difference[~valid] = 0.
    return z - difference, root + difference


def flexural_isostasy(z, root, rigidity, boundary, alpha, tol=1e-4, max_iter=200, valid=None,
                      **kwargs):
    '''Under-relaxed iterative flexural compensation

    Each iteration moves a fraction ``alpha`` of the change in root
    depth from the surface to the root, until the largest change is
    below ``tol`` or ``max_iter`` iterations are done.

    Parameters
    ----------
    z : numpy.ndarray
        2D elevation field
    root : numpy.ndarray
        2D root depth field
    rigidity : float
        Flexural rigidity
    boundary : BoundaryModel
        Boundary conditions
    alpha : float
        Relaxation factor
    tol : float, optional
        Tolerance on the maximum root change (default: 1e-4)
    max_iter : int, optional
        Maximum number of iterations (default: 200)
    valid : numpy.ndarray, optional
        Mask of cells that do not hold no-data, these keep their
        elevation and root

    Returns
    -------
    z : numpy.ndarray
        Compensated elevation field
    root : numpy.ndarray
        Updated root depth
    result : ConvergenceResult
        Convergence of the relaxation

    '''

    z = np.array(z, dtype=float)
    root = np.array(root, dtype=float)
    max_error = np.inf

    for it in range(1, max_iter + 1):
        difference = calculate_root(z, rigidity, boundary, valid=valid, **kwargs) - root
        if valid is not None:
            difference[~valid] = 0.
        z -= alpha * difference
        root += alpha * difference

        max_error = np.max(np.abs(difference))
        if max_error <= tol:
            return z, root, ConvergenceResult(True, it, max_error)

    logger.warning(format_log('Flexural isostasy not converged',
                              iterations=max_iter,
                              maxerror=max_error))

    return z, root, ConvergenceResult(False, max_iter, max_error)
