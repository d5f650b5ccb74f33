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

import math
import numpy as np
from scipy import ndimage


def get_slopes(z, dx, boundary):
    '''Slopes across cell faces of a buffered surface

    Parameters
    ----------
    z : numpy.ndarray
        2D elevation field with shape (nrows, ncols)
    dx : float
        Grid cell size
    boundary : BoundaryModel
        Boundary conditions used to buffer the surface

    Returns
    -------
    slopes_rows : numpy.ndarray
        Slopes between rows, shape (nrows+1, ncols). Entry ``[i,j]``
        is the slope between row ``i-1`` and row ``i``.
    slopes_cols : numpy.ndarray
        Slopes between columns, shape (nrows, ncols+1). Entry ``[i,j]``
        is the slope between column ``j-1`` and column ``j``.

    '''

    zb = boundary.buffer(z)
    slopes_cols = np.diff(zb[1:-1,:], axis=1) / dx
    slopes_rows = np.diff(zb[:,1:-1], axis=0) / dx
    return slopes_rows, slopes_cols


def topographic_divergence(z, dx, boundary):
    '''Central difference slope magnitude on a buffered surface'''

    zb = boundary.buffer(z)
    s1 = (zb[1:-1,2:] - zb[1:-1,:-2]) * .5 / dx
    s2 = (zb[2:,1:-1] - zb[:-2,1:-1]) * .5 / dx
    return np.sqrt(s1 * s1 + s2 * s2)


def slope(z, dx):
    '''Gradient magnitude'''

    dz_dy, dz_dx = np.gradient(np.asarray(z, dtype=float), dx, dx)
    return np.hypot(dz_dx, dz_dy)


def hillshade(z, dx, alt_deg=45., az_deg=315., z_factor=1.):
    '''Compute a hillshade (0-1) for a 2D elevation array

    Parameters
    ----------
    z : numpy.ndarray
        2D elevation field
    dx : float
        Grid cell size
    alt_deg : float, optional
        Altitude of the light source in degrees (default: 45)
    az_deg : float, optional
        Azimuth of the light source in degrees, clockwise from north
        (default: 315)
    z_factor : float, optional
        Vertical exaggeration (default: 1)

    Returns
    -------
    numpy.ndarray
        Hillshade values between 0 and 1

    '''

    z = np.asarray(z, dtype=float) * z_factor
    if z.ndim != 2:
        raise ValueError('hillshade expects a 2D array')

    # rows run southward, flip to a northward y-axis
    dz_dy, dz_dx = np.gradient(z, -dx, dx)

    nx, ny, nz = -dz_dx, -dz_dy, np.ones_like(z)
    norm = np.sqrt(nx * nx + ny * ny + nz * nz)
    nx, ny, nz = nx / norm, ny / norm, nz / norm

    az = math.radians(az_deg)
    alt = math.radians(alt_deg)
    lx = math.cos(alt) * math.sin(az)
    ly = math.cos(alt) * math.cos(az)
    lz = math.sin(alt)

    return np.clip(nx * lx + ny * ly + nz * lz, 0., 1.)


def mean_relief(z, dx, radius=0., valid=None):
    '''Mean local relief in a circular moving window

    A radius smaller than one cell gives a 3x3 pixel window.

    Parameters
    ----------
    z : numpy.ndarray
        2D elevation field
    dx : float
        Grid cell size
    radius : float, optional
        Window radius in map units (default: 0)
    valid : numpy.ndarray, optional
        Mask of cells included in the mean

    Returns
    -------
    float
        Mean of maximum minus minimum elevation within the window

    '''

    z = np.asarray(z, dtype=float)
    r = max(1, int(round(radius / dx)))
    ii, jj = np.mgrid[-r:r+1, -r:r+1]
    footprint = ii**2 + jj**2 <= max(r * r, 2)

    relief = ndimage.maximum_filter(z, footprint=footprint, mode='nearest') \
        - ndimage.minimum_filter(z, footprint=footprint, mode='nearest')

    if valid is not None:
        relief = relief[valid]
    return float(np.mean(relief)) if relief.size else 0.


def drainage_density(area, dx, threshold):
    '''Channel length per unit area for a channel initiation area

    Parameters
    ----------
    area : numpy.ndarray
        Drainage area field
    dx : float
        Grid cell size
    threshold : float
        Drainage area from which a cell is a channel

    Returns
    -------
    float
        Drainage density [1/m]

    '''

    area = np.asarray(area)
    nchannel = np.sum(area >= threshold)
    return float(nchannel * dx / (area.size * dx * dx))
