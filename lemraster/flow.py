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
from heapq import heappush, heappop
from numba import njit

# package modules
from lemraster.constants import D8_OFFSETS

# initialize logger
logger = logging.getLogger(__name__)


class FlowInfo:
    '''Single flow direction routing of a grid

    Attributes
    ----------
    stack : numpy.ndarray
        Node indices ordered from base level upstream, every receiver
        precedes its donors
    receivers : numpy.ndarray
        Receiver node of each node, nodes without receiver point to
        themselves
    length_code : numpy.ndarray
        Flow length code of each node: 0 no receiver, 1 cardinal, 2
        diagonal
    pixels : numpy.ndarray
        Number of contributing pixels of each node, itself included

    Nodes are numbered row-major: ``node = row * ncols + col``.

    '''


    def __init__(self, stack, receivers, length_code, pixels, shape, dx):
        self.stack = stack
        self.receivers = receivers
        self.length_code = length_code
        self.pixels = pixels
        self.shape = shape
        self.dx = dx


    @property
    def drainage_area(self):
        '''Contributing drainage area of each cell'''
        return (self.pixels * self.dx**2).reshape(self.shape)


    def node(self, row, col):
        return row * self.shape[1] + col


    def row_col(self, node):
        return divmod(node, self.shape[1])


class FlowRouter:
    '''D8 steepest descent flow routing honouring boundary conditions

    Cells on base-level edges are outlets. Periodic edges connect to
    the opposite edge, no-flux edges have no neighbours beyond the
    grid. No-data cells neither drain nor receive flow.

    Example
    -------
    >>> router = FlowRouter(BoundaryModel('bpbp'))
    >>> flow = router.route(z, dx=10.)
    >>> area = flow.drainage_area

    '''


    def __init__(self, boundary):
        self.boundary = boundary


    def route(self, z, dx, valid=None):
        '''Compute flow order, receivers and contributing area

        Parameters
        ----------
        z : numpy.ndarray
            2D elevation field
        dx : float
            Grid cell size
        valid : numpy.ndarray, optional
            Mask of cells taking part in routing (default: all)

        Returns
        -------
        FlowInfo
            Routing of the field

        '''

        z = np.asarray(z, dtype=float)
        if valid is None:
            valid = np.ones(z.shape, dtype=bool)
        outlets = self.boundary.base_level_mask(z.shape)

        receivers, length_code = _d8_receivers(z, float(dx), outlets, valid,
                                               self.boundary.ns_periodic,
                                               self.boundary.ew_periodic,
                                               D8_OFFSETS)
        stack = _build_stack(receivers)
        pixels = _accumulate(stack, receivers)

        return FlowInfo(stack, receivers, length_code, pixels, z.shape, float(dx))


    def fill(self, z, dx, min_slope=1e-5, valid=None):
        '''Fill depressions using a priority-flood algorithm

        The flood starts from the base-level cells, or from all outer
        cells if no edge is base level, and raises every cell to at
        least ``min_slope`` above the cell it is reached from, so the
        filled surface drains to the outlets.

        Parameters
        ----------
        z : numpy.ndarray
            2D elevation field
        dx : float
            Grid cell size
        min_slope : float, optional
            Gradient imposed on filled cells (default: 1e-5)
        valid : numpy.ndarray, optional
            Mask of cells to fill (default: all)

        Returns
        -------
        numpy.ndarray
            Filled elevation field

        '''

        filled = np.array(z, dtype=float)
        ny, nx = filled.shape
        if valid is None:
            valid = np.ones(filled.shape, dtype=bool)

        seeds = self.boundary.base_level_mask(filled.shape)
        if not np.any(seeds):
            seeds[0,:] = seeds[-1,:] = seeds[:,0] = seeds[:,-1] = True
        seeds &= valid

        processed = ~valid
        queue = []
        for i, j in zip(*np.nonzero(seeds)):
            heappush(queue, (filled[i,j], i, j))
            processed[i,j] = True

        ns_periodic = self.boundary.ns_periodic
        ew_periodic = self.boundary.ew_periodic
        while queue:
            elev, r, c = heappop(queue)
            for k, (di, dj) in enumerate(D8_OFFSETS):
                nr, nc = r + di, c + dj
                if nr < 0 or nr >= ny:
                    if not ns_periodic:
                        continue
                    nr %= ny
                if nc < 0 or nc >= nx:
                    if not ew_periodic:
                        continue
                    nc %= nx
                if processed[nr,nc]:
                    continue
                dist = dx if k < 4 else dx * np.sqrt(2.)
                filled[nr,nc] = max(filled[nr,nc], elev + min_slope * dist)
                heappush(queue, (filled[nr,nc], nr, nc))
                processed[nr,nc] = True

        nfilled = np.sum(filled > z)
        if nfilled:
            logger.debug('Filled %d cells' % nfilled)

        return filled


@njit(cache=True)
def _d8_receivers(z, dx, outlets, valid, ns_periodic, ew_periodic, offsets):
    ny, nx = z.shape
    receivers = np.arange(ny * nx)
    length_code = np.zeros(ny * nx, dtype=np.int64)
    diag = dx * np.sqrt(2.)

    for i in range(ny):
        for j in range(nx):
            if outlets[i,j] or not valid[i,j]:
                continue
            node = i * nx + j
            smax = 0.
            for k in range(8):
                ii = i + offsets[k,0]
                jj = j + offsets[k,1]
                if ii < 0 or ii >= ny:
                    if not ns_periodic:
                        continue
                    ii = ii % ny
                if jj < 0 or jj >= nx:
                    if not ew_periodic:
                        continue
                    jj = jj % nx
                if not valid[ii,jj]:
                    continue
                dist = dx if k < 4 else diag
                s = (z[i,j] - z[ii,jj]) / dist
                if s > smax:
                    smax = s
                    receivers[node] = ii * nx + jj
                    length_code[node] = 1 if k < 4 else 2

    return receivers, length_code


@njit(cache=True)
def _build_stack(receivers):
    n = receivers.size

    # donors in compressed row format
    ndonors = np.zeros(n, dtype=np.int64)
    for i in range(n):
        if receivers[i] != i:
            ndonors[receivers[i]] += 1
    offset = np.zeros(n + 1, dtype=np.int64)
    for i in range(n):
        offset[i+1] = offset[i] + ndonors[i]
    donors = np.zeros(offset[n], dtype=np.int64)
    fill = offset[:n].copy()
    for i in range(n):
        r = receivers[i]
        if r != i:
            donors[fill[r]] = i
            fill[r] += 1

    # depth first from every outlet
    stack = np.zeros(n, dtype=np.int64)
    todo = np.zeros(n, dtype=np.int64)
    nstack = 0
    for i in range(n):
        if receivers[i] != i:
            continue
        top = 0
        todo[0] = i
        while top >= 0:
            node = todo[top]
            top -= 1
            stack[nstack] = node
            nstack += 1
            for k in range(offset[node], offset[node+1]):
                top += 1
                todo[top] = donors[k]

    return stack


@njit(cache=True)
def _accumulate(stack, receivers):
    pixels = np.ones(stack.size)
    for k in range(stack.size - 1, -1, -1):
        node = stack[k]
        r = receivers[node]
        if r != node:
            pixels[r] += pixels[node]
    return pixels
