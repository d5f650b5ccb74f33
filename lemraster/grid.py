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
from lemraster.inout import read_ascii_grid, write_ascii_grid

# initialize logger
logger = logging.getLogger(__name__)


class GridField:
    '''Dense 2D field with uniform cell spacing

    The first row of the data array is the northern edge of the grid,
    the first column the western edge. Cells holding the no-data value
    are excluded from all updates.

    Example
    -------
    >>> g = GridField.zeros(10, 20, dx=5.)
    >>> g.shape
    (10, 20)

    '''


    def __init__(self, data, dx, xmin=0., ymin=0., nodata=-99.):
        self.data = np.asarray(data, dtype=float)
        if self.data.ndim != 2:
            raise ValueError('Grid data should be two-dimensional [ndim=%d]' % self.data.ndim)
        self.dx = float(dx)
        self.xmin = float(xmin)
        self.ymin = float(ymin)
        self.nodata = float(nodata)


    @classmethod
    def zeros(cls, nrows, ncols, dx, **kwargs):
        return cls(np.zeros((nrows, ncols)), dx, **kwargs)


    @classmethod
    def read(cls, filename):
        '''Read grid from ESRI ASCII file'''

        data, header = read_ascii_grid(filename)
        logger.debug('Read grid %s [%d x %d]' % (filename, header['nrows'], header['ncols']))
        return cls(data, header['cellsize'],
                   xmin=header['xllcorner'],
                   ymin=header['yllcorner'],
                   nodata=header['NODATA_value'])


    def write(self, filename, data=None):
        '''Write grid, or another field on the same geometry, to ESRI ASCII file'''

        if data is None:
            data = self.data
        self.check_shape(data)
        write_ascii_grid(filename, data, self.header)


    @property
    def header(self):
        return dict(ncols=self.ncols,
                    nrows=self.nrows,
                    xllcorner=self.xmin,
                    yllcorner=self.ymin,
                    cellsize=self.dx,
                    NODATA_value=self.nodata)


    @property
    def nrows(self):
        return self.data.shape[0]


    @property
    def ncols(self):
        return self.data.shape[1]


    @property
    def shape(self):
        return self.data.shape


    @property
    def valid(self):
        '''Mask of cells that do not hold the no-data value'''
        return self.data != self.nodata


    def copy(self, data=None):
        '''Copy of the grid, optionally with different data on the same geometry'''

        if data is None:
            data = self.data.copy()
        self.check_shape(data)
        return GridField(data, self.dx, xmin=self.xmin, ymin=self.ymin, nodata=self.nodata)


    def check_shape(self, arr):
        '''Raise if an array does not match the grid dimensions'''

        if np.shape(arr) != self.shape:
            raise ValueError('Array shape does not match grid [%s != %s]'
                             % (np.shape(arr), self.shape))
