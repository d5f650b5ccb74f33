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
from lemraster.constants import BASE_LEVEL, PERIODIC, BOUNDARY_CODES, EDGES
from lemraster.grid import GridField

# initialize logger
logger = logging.getLogger(__name__)


class BoundaryModel:
    '''Boundary conditions at the four grid edges

    Edges are ordered north, east, south, west. The first grid row is
    the northern edge, the first grid column the western edge. Each
    edge is either base level (``b``, fixed elevation and sediment
    sink), periodic (``p``, wraps to the opposite edge) or no-flux
    (``n``).

    Example
    -------
    >>> bc = BoundaryModel('bpbp')
    >>> bc.classify('north')
    'b'
    >>> bc.is_periodic(1)
    True

    '''

    
    def __init__(self, codes='bpbp'):
        '''Class initialization

        Parameters
        ----------
        codes : str or list
            Four boundary codes ordered north, east, south, west

        Raises
        ------
        ValueError
            If the codes are not four of ``b``, ``p`` or ``n``

        '''

        if isinstance(codes, str):
            codes = list(codes.strip())
        codes = [str(c).strip().lower()[:1] for c in codes]

        if len(codes) != 4:
            raise ValueError('Boundary code should have four entries [%s]' % ''.join(codes))
        for c in codes:
            if c not in BOUNDARY_CODES:
                raise ValueError('Unknown boundary condition [%s]' % c)

        self.codes = tuple(codes)

        # opposing edges are periodic together
        for axis, (e1, e2) in enumerate([(0, 2), (1, 3)]):
            if (self.codes[e1] == PERIODIC) != (self.codes[e2] == PERIODIC):
                logger.warning('Only one of the %s and %s boundaries is periodic, '
                               'assuming both are periodic' % (EDGES[e1], EDGES[e2]))


    def __repr__(self):
        return 'BoundaryModel(%r)' % ''.join(self.codes)


    def classify(self, edge):
        '''Boundary code of an edge given by index or name'''

        if isinstance(edge, str):
            edge = EDGES.index(edge.lower())
        return self.codes[edge]


    def is_periodic(self, edge):
        '''Edge wraps to its opposite edge'''

        if isinstance(edge, str):
            edge = EDGES.index(edge.lower())
        return self.codes[edge] == PERIODIC or self.codes[(edge + 2) % 4] == PERIODIC


    @property
    def ns_periodic(self):
        return self.is_periodic(0)


    @property
    def ew_periodic(self):
        return self.is_periodic(1)


    def is_base_level(self, row, col, nrows, ncols):
        '''Cell lies on an edge held at base level'''

        return (row == 0 and self.codes[0] == BASE_LEVEL) or \
            (col == ncols - 1 and self.codes[1] == BASE_LEVEL) or \
            (row == nrows - 1 and self.codes[2] == BASE_LEVEL) or \
            (col == 0 and self.codes[3] == BASE_LEVEL)


    def base_level_mask(self, shape):
        '''Boolean mask of base-level cells'''

        mask = np.zeros(shape, dtype=bool)
        if self.codes[0] == BASE_LEVEL:
            mask[0,:] = True
        if self.codes[1] == BASE_LEVEL:
            mask[:,-1] = True
        if self.codes[2] == BASE_LEVEL:
            mask[-1,:] = True
        if self.codes[3] == BASE_LEVEL:
            mask[:,0] = True
        return mask


    def interpret(self, nrows, ncols):
        '''Split the grid into fixed and free directions

        The fixed dimension is the axis of the last base-level edge
        found (0 for north-south, 1 for east-west); the other axis may
        wrap periodically.

        Returns
        -------
        dimension : int
            0 if the north and south edges are fixed, 1 if east and west
        periodic : bool
            Free axis is periodic
        size : int
            Number of cells that are not on the fixed edges

        '''

        dimension = 0
        for i, c in enumerate(self.codes):
            if c == BASE_LEVEL:
                dimension = i % 2

        periodic = self.is_periodic(1 - dimension)

        if dimension == 0:
            size = (nrows - 2) * ncols
        else:
            size = nrows * (ncols - 2)

        return dimension, periodic, size


    def require(self, **codes):
        '''Raise unless edges carry the given codes

        Example
        -------
        >>> BoundaryModel('bpbp').require(north='b', south='b')

        '''

        for edge, code in codes.items():
            if self.classify(edge) != code:
                msg = 'Unsupported boundary condition at %s edge [%s != %s]' \
                    % (edge, self.classify(edge), code)
                logger.error(msg)
                raise ValueError(msg)


    def buffer(self, z, north=None, south=None):
        '''Pad a field with one ring of ghost cells

        Corner cells copy the nearest interior corner. The north and
        south rows receive a fixed elevation when one is given and
        copy the adjacent interior row otherwise. The east and west
        columns wrap when the east-west axis is periodic and replicate
        the adjacent column otherwise.

        Parameters
        ----------
        z : numpy.ndarray
            2D field with shape (nrows, ncols)
        north : float, optional
            Fixed elevation of the northern ghost row
        south : float, optional
            Fixed elevation of the southern ghost row

        Returns
        -------
        numpy.ndarray
            Padded field with shape (nrows+2, ncols+2)

        '''

        z = np.asarray(z)
        ny, nx = z.shape
        buff = np.zeros((ny + 2, nx + 2))

        buff[1:-1,1:-1] = z

        # corners
        buff[0,0] = z[0,0]
        buff[0,-1] = z[0,-1]
        buff[-1,0] = z[-1,0]
        buff[-1,-1] = z[-1,-1]

        if self.ew_periodic:
            buff[1:-1,0] = z[:,-1]
            buff[1:-1,-1] = z[:,0]
        else:
            buff[1:-1,0] = z[:,0]
            buff[1:-1,-1] = z[:,-1]

        if north is None:
            buff[0,1:-1] = z[0,:]
        else:
            buff[0,:] = north
        if south is None:
            buff[-1,1:-1] = z[-1,:]
        else:
            buff[-1,:] = south

        return buff


    def buffer_grid(self, grid, **kwargs):
        '''Padded copy of a :class:`~lemraster.grid.GridField`, origin shifted by one cell'''

        return GridField(self.buffer(grid.data, **kwargs), grid.dx,
                         xmin=grid.xmin - grid.dx,
                         ymin=grid.ymin - grid.dx,
                         nodata=grid.nodata)
