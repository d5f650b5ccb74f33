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

# initialize logger
logger = logging.getLogger(__name__)


UPLIFT_MODES = {
    0 : 'block',
    1 : 'tilt',
    2 : 'gaussian',
    3 : 'quadratic',
}


def generate_uplift_field(shape, mode, max_uplift, boundary):
    '''Uplift rate field from one of the built-in templates

    ========= ===================================================
    mode      uplift rate
    ========= ===================================================
    0 block   ``U`` everywhere
    1 tilt    ``U (nrows - i - 1) / (nrows - 1)``, maximum in north
    2 gauss   ``U 1.1^-((i-mu_i)^2/2s_i^2 + (j-mu_j)^2/2s_j^2)``
    3 dome    ``U (1 - (2i/(nrows-1) - 1)^2 - (2j/(ncols-1) - 1)^2)``,
              not below zero
    ========= ===================================================

    The gaussian is centred at ``(nrows // 2, ncols // 2)`` with a
    width of a tenth of the grid size. Cells on base-level edges do
    not uplift.

    Parameters
    ----------
    shape : tuple
        Grid shape (nrows, ncols)
    mode : int
        Uplift template
    max_uplift : float
        Maximum uplift rate ``U``
    boundary : BoundaryModel
        Boundary conditions

    Returns
    -------
    numpy.ndarray
        Uplift rate per cell

    '''

    ny, nx = shape
    i, j = np.mgrid[0:ny, 0:nx].astype(float)

    if mode not in UPLIFT_MODES:
        msg = 'Unknown uplift mode [%s]' % mode
        logger.error(msg)
        raise ValueError(msg)

    if mode == 1:
        uplift = (ny - i - 1.) * max_uplift / max(ny - 1., 1.)
    elif mode == 2:
        mu_i, mu_j = ny // 2, nx // 2
        sigma_i, sigma_j = max(ny // 10, 1), max(nx // 10, 1)
        uplift = max_uplift * 1.1**(-((i - mu_i)**2 / (2. * sigma_i**2) +
                                      (j - mu_j)**2 / (2. * sigma_j**2)))
    elif mode == 3:
        uplift = max_uplift * (-(2. * i / max(ny - 1., 1.) - 1.)**2
                               - (2. * j / max(nx - 1., 1.) - 1.)**2 + 1.)
        uplift = np.maximum(uplift, 0.)
    else:
        uplift = np.full(shape, float(max_uplift))

    uplift[boundary.base_level_mask(shape)] = 0.

    return uplift


def uplift_at_cell(row, col, shape, mode, max_uplift, boundary):
    '''Uplift rate of a single cell'''

    if boundary.is_base_level(row, col, *shape):
        return 0.
    return generate_uplift_field(shape, mode, max_uplift, boundary)[row, col]


def uplift_surface(z, uplift, dt, valid=None):
    '''Raise the surface by ``uplift * dt`` outside base level and no-data cells

    Parameters
    ----------
    z : numpy.ndarray
        2D elevation field
    uplift : numpy.ndarray
        Uplift rate field, zero on base-level cells
    dt : float
        Timestep
    valid : numpy.ndarray, optional
        Mask of cells that do not hold no-data

    Returns
    -------
    numpy.ndarray
        Uplifted elevation field

    '''

    z = np.array(z, dtype=float)
    if valid is None:
        z += uplift * dt
    else:
        z[valid] += (uplift * dt)[valid]
    return z
