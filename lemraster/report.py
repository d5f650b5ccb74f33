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

import os
import logging
import numpy as np
import matplotlib.pyplot as plt

# package modules
from lemraster.constants import REPORT_COLUMNS, CYCLE_REPORT_COLUMNS, FINAL_REPORT_COLUMNS
from lemraster.terrain import hillshade, mean_relief, drainage_density, slope
from lemraster.utils import format_log

# initialize logger
logger = logging.getLogger(__name__)


def erosion_rate(z, z_old, uplift, dt, valid=None, nodata=-99.):
    '''Erosion rate per cell over the last timestep

    .. math::

        e = \\frac{z_{old} - z + U \\Delta t}{\\Delta t}

    Cells holding no-data get the no-data value.

    '''

    e = (z_old - z + uplift * dt) / dt
    if valid is not None:
        e = np.where(valid, e, nodata)
    return e


class _Accumulator:
    '''Mean and range of a scalar over a forcing cycle'''

    def __init__(self):
        self.reset()

    def reset(self):
        self.sum = 0.
        self.max = 0.
        self.min = -99.
        self.n = 0

    def add(self, value):
        self.sum += value
        if value > self.max:
            self.max = value
        if self.min == -99. or value < self.min:
            self.min = value
        self.n += 1

    @property
    def mean(self):
        return self.sum / self.n if self.n else 0.

    @property
    def range(self):
        return self.max - self.min


class ReportWriter:
    '''Tabular reports and raster frames of a model run

    Writes, prefixed with the run name in the output directory:

    * ``<name>_report``, one row per timestep
    * ``<name>_cycle_report``, one row per completed forcing cycle
    * ``<name>_final``, summary of all runs
    * ``.<name>_frame_metadata``, one row per raster frame
    * ``<name><frame>.asc`` and optional ``_hillshade``, ``_erosion``
      rasters, ``<name><cycle>_cycle_erosion.asc`` and ``<name>_sa``
      slope-area tables

    The writer also keeps the erosion statistics of the run.

    '''


    def __init__(self, p, grid):
        self.p = p
        self.grid = grid
        self.name = p['run_name']
        self.output_dir = p['output_dir'] or '.'
        self.files = {}

        self.total_erosion = 0.
        self.total_response = 0.
        self.response = 0.
        self.erosion = 0.
        self.erosion_last_step = 0.
        self.max_erosion = 0.
        self.min_erosion = -99.

        self.phase_pos = 1
        self.cycle_start = 0.
        self.cycle_stats = dict(erosion=_Accumulator(),
                                elevation=_Accumulator(),
                                relief0=_Accumulator(),
                                relief10=_Accumulator())
        self.erosion_cycle_field = None


    def __enter__(self):
        return self


    def __exit__(self, *args):
        self.close()


    def path(self, suffix, prefix=''):
        return os.path.join(self.output_dir, '%s%s%s' % (prefix, self.name, suffix))


    def open(self, key, suffix, columns, prefix=''):
        '''Open a report file and write its header once'''

        if key not in self.files:
            if not os.path.exists(self.output_dir):
                os.makedirs(self.output_dir)
            fp = open(self.path(suffix, prefix=prefix), 'w')
            fp.write('%s\n' % self.name)
            fp.write('\t'.join(columns) + '\n')
            self.files[key] = fp
            logger.debug('Opened report %s' % fp.name)
        return self.files[key]


    def close(self):
        for fp in self.files.values():
            fp.close()
        self.files = {}


    def reset_run(self):
        '''Reset the statistics of a single run'''

        self.erosion = 0.
        self.erosion_last_step = 0.
        self.max_erosion = 0.
        self.min_erosion = -99.
        self.total_erosion = 0.
        for acc in self.cycle_stats.values():
            acc.reset()
        self.cycle_start = 0.
        self.erosion_cycle_field = None


    def is_reporting(self, clock):
        return self.p['reporting'] and clock.current_time > self.p['report_delay']


    def write_report(self, clock, z, z_old, uplift, K, D, area, base_level, valid=None):
        '''Update erosion statistics and append a row to the timestep report

        Parameters
        ----------
        clock : SimulationClock
            Model clock
        z : numpy.ndarray
            Elevation after the timestep
        z_old : numpy.ndarray
            Elevation before the timestep
        uplift : numpy.ndarray
            Uplift rate field
        K : float
            Current erodibility
        D : float
            Current diffusivity
        area : numpy.ndarray
            Drainage area
        base_level : numpy.ndarray
            Mask of base-level cells
        valid : numpy.ndarray, optional
            Mask of cells that do not hold no-data

        Returns
        -------
        float
            Mean erosion rate off base level

        '''

        dt = clock.time_step
        p = self.p
        reporting = self.is_reporting(clock)
        if not clock.recording:
            clock.check_recording()

        e = erosion_rate(z, z_old, uplift, dt)
        inside = ~base_level if valid is None else ~base_level & valid

        self.erosion_last_step = self.erosion
        self.erosion = float(np.mean(e[inside])) if np.any(inside) else 0.

        cycling = (clock.initial_steady_state or clock.cycle_steady_check) and clock.forcing_varies
        if p['print_erosion_cycle'] and cycling:
            if self.erosion_cycle_field is None:
                self.erosion_cycle_field = np.zeros(z.shape)
            self.erosion_cycle_field += e

        if clock.recording:
            self.total_erosion += self.erosion

        # local response
        if self.erosion > self.erosion_last_step:
            self.max_erosion = self.erosion
        elif self.erosion < self.erosion_last_step:
            self.min_erosion = self.erosion
        if self.min_erosion != -99. and self.max_erosion - self.min_erosion > self.response:
            self.response = self.max_erosion - self.min_erosion
        if clock.recording:
            self.max_erosion = max(self.max_erosion, self.erosion)
            if self.min_erosion == -99. or self.erosion < self.min_erosion:
                self.min_erosion = self.erosion

        cells = z[valid] if valid is not None else z
        max_elev = float(np.max(cells))
        mean_elev = float(np.mean(cells))
        relief0 = mean_relief(z, self.grid.dx, 0., valid=valid)
        relief10 = mean_relief(z, self.grid.dx, 10., valid=valid)

        if reporting:
            row = [clock.current_time, clock.periodicity]
            if p['fluvial']:
                row.append(K)
            if p['hillslope']:
                row.append(D)
            row += [self.erosion, self.total_erosion, int(clock.steady_state),
                    max_elev, mean_elev, relief0, relief10,
                    drainage_density(area, self.grid.dx, 20.),
                    drainage_density(area, self.grid.dx, 200.)]

            columns = [c for c in REPORT_COLUMNS
                       if not (c == 'K' and not p['fluvial']) and not (c == 'D' and not p['hillslope'])]
            fp = self.open('report', '_report', columns)
            fp.write('\t'.join(['%g' % v for v in row]) + '\n')

        if cycling:
            self.cycle_report(clock, mean_elev, relief0, relief10)

        return self.erosion


    def cycle_report(self, clock, elevation, relief0, relief10):
        '''Aggregate statistics per forcing cycle

        A cycle ends when the unit sine forcing evaluated one timestep
        ahead rises above its mean after having been at or below it.
        The mean and range of erosion, elevation and relief over the
        cycle are written, the cycle counter advances and, when
        steady state is judged per cycle, the record of cycle averaged
        erosion shifts.

        '''

        stats = self.cycle_stats
        if clock.current_time == 0.:
            for acc in stats.values():
                acc.reset()

        t_next = clock.current_time + clock.time_step
        p = clock.periodicity

        if clock.periodic_parameter(1., 1., t=t_next) > 1.:
            if self.phase_pos == 0:
                clock.cycle_number += 1
                mean_erosion = stats['erosion'].mean

                if self.is_reporting(clock):
                    fp = self.open('cycle', '_cycle_report', CYCLE_REPORT_COLUMNS)
                    row = [clock.cycle_number - 1, self.cycle_start, clock.current_time, p,
                           mean_erosion, stats['erosion'].range,
                           stats['elevation'].mean, stats['elevation'].range,
                           stats['relief0'].mean, stats['relief0'].range,
                           stats['relief10'].mean, stats['relief10'].range]
                    fp.write('\t'.join(['%g' % v for v in row]) + '\n')
                    self.cycle_start = clock.current_time

                if self.p['print_erosion_cycle'] and self.erosion_cycle_field is not None:
                    field = self.erosion_cycle_field / max(stats['erosion'].n, 1)
                    self.write_raster('%d_cycle_erosion.asc' % (clock.cycle_number - 1), field)
                    self.erosion_cycle_field = None

                if clock.cycle_steady_check:
                    clock.erosion_cycle_record = clock.erosion_cycle_record[1:] + [mean_erosion]

                logger.debug(format_log('Completed forcing cycle',
                                        cycle=clock.cycle_number - 1,
                                        erosion=mean_erosion))

                for acc in stats.values():
                    acc.reset()
            self.phase_pos = 1
        else:
            self.phase_pos = 0

        stats['elevation'].add(elevation)
        stats['erosion'].add(self.erosion)
        stats['relief0'].add(relief0)
        stats['relief10'].add(relief10)


    def final_report(self, clock, num_runs, K_amplitude, D_amplitude, nonconverged=0):
        '''Write the summary of all runs'''

        if clock.forcing_varies:
            run_time = clock.current_time - clock.time_delay - clock.periodicity
        else:
            run_time = clock.current_time - clock.time_delay

        averaged = self.total_erosion / (run_time * num_runs) if run_time * num_runs != 0. else 0.
        response = self.response / num_runs if clock.initial_steady_state else -99.
        row = [self.total_erosion, averaged, response, K_amplitude, D_amplitude,
               clock.periodicity, clock.current_time - clock.end_time, nonconverged]

        if not os.path.exists(self.output_dir):
            os.makedirs(self.output_dir)
        with open(self.path('_final'), 'w') as fp:
            fp.write('%s\n' % self.name)
            fp.write('\t'.join(FINAL_REPORT_COLUMNS) + '\n')
            fp.write('\t'.join(['%g' % v for v in row]) + '\n')

        logger.info(format_log('Wrote final report',
                               totalerosion=self.total_erosion,
                               averaged=averaged,
                               response=response))

        return dict(zip(FINAL_REPORT_COLUMNS, row))


    def write_raster(self, suffix, data):
        self.grid.write(self.path(suffix), data)


    def print_rasters(self, frame, clock, z, K, D, erosion=None, area=None):
        '''Write a numbered raster frame and its metadata

        Parameters
        ----------
        frame : int
            Frame number
        clock : SimulationClock
            Model clock
        z : numpy.ndarray
            Elevation field
        K : float
            Current erodibility
        D : float
            Current diffusivity
        erosion : numpy.ndarray, optional
            Erosion rate field, written if erosion output is enabled
        area : numpy.ndarray, optional
            Drainage area, used for the slope-area table

        '''

        p = self.p
        grid = self.grid

        fp = self.open('frames', '_frame_metadata',
                       ('Frame_num', 'Time', 'K', 'D', 'Erosion', 'Max_uplift'), prefix='.')
        fp.write('\t'.join(['%g' % v for v in [frame, clock.current_time, K, D,
                                               self.erosion, p['max_uplift']]]) + '\n')
        fp.flush()

        if p['print_elevation']:
            grid.write(self.path('%d.asc' % frame), z)
        if p['print_hillshade']:
            hs = hillshade(z, grid.dx, 45., 315., 1.)
            grid.write(self.path('%d_hillshade.asc' % frame), 255. * hs)
            plt.imsave(self.path('%d_hillshade.png' % frame), hs, cmap='gray', vmin=0., vmax=1.)
        if p['print_erosion'] and erosion is not None:
            grid.write(self.path('%d_erosion.asc' % frame), erosion)
        if p['print_slope_area'] and area is not None:
            self.slope_area_data(self.path('_sa'), z, grid.dx, area, valid=z != grid.nodata)

        logger.debug('Wrote frame %d at t=%g' % (frame, clock.current_time))


    def slope_area_data(self, filename, z, dx, area, valid=None):
        '''Table of elevation, slope and drainage area per cell'''

        s = slope(z, dx)
        mask = np.ones(np.shape(z), dtype=bool) if valid is None else valid
        data = np.column_stack((np.asarray(z)[mask], s[mask], np.asarray(area)[mask]))

        with open(filename, 'w') as fp:
            fp.write('%s\n' % os.path.basename(filename))
            fp.write('Elevation\tSlope\tArea\n')
            np.savetxt(fp, data, fmt='%g', delimiter='\t')
