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
from lemraster.boundary import BoundaryModel
from lemraster.clock import SimulationClock
from lemraster.constants import DEFAULT_CONFIG
from lemraster.flow import FlowRouter
from lemraster.fluvial import fluvial_incision, wash_out
from lemraster.forcing import make_forcing
from lemraster.grid import GridField
from lemraster.hillslope import (HillslopeDiffusionSolver, AdaptiveTimestep,
                                 build_creep_solver, find_max_boundary)
from lemraster.inout import read_configfile
from lemraster.isostasy import airy_isostasy, flexural_isostasy, flexural_isostasy_alt
from lemraster.report import ReportWriter, erosion_rate
from lemraster.uplift import generate_uplift_field, uplift_surface
from lemraster.utils import format_log

# initialize logger
logger = logging.getLogger(__name__)


class LandscapeEvolutionEngine:
    '''Raster landscape evolution model

    Every timestep applies, in order, hillslope diffusion, wash out
    of channel cells, fluvial incision, isostatic compensation and
    uplift, after which the step is reported and the clock advances.
    Runs end on the end condition of the :class:`SimulationClock`.

    Example
    -------
    >>> model = LandscapeEvolutionEngine.from_configfile('model.param')
    >>> model.run_model()

    '''


    def __init__(self, p=None, z=None):
        '''Class initialization

        Parameters
        ----------
        p : dict, optional
            Model configuration (default: :data:`DEFAULT_CONFIG`)
        z : numpy.ndarray, optional
            Initial elevation field, overrides the load file

        '''

        self.p = DEFAULT_CONFIG.copy()
        if p is not None:
            self.p.update(p)
        self.initialized = p is not None

        self.boundary = BoundaryModel(self.p['boundary_code'])
        self.router = FlowRouter(self.boundary)
        self.clock = SimulationClock.from_config(self.p)
        self.K, self.D = make_forcing(self.p)
        self.rng = np.random.default_rng(self.p['seed'])

        self.nonconverged_steps = 0
        self.steady_state_data = None
        self.frame = 1
        self.area = None

        self.initialize(z)


    @classmethod
    def from_configfile(cls, configfile):
        '''Create model from parameter file'''

        p = read_configfile(configfile)
        logger.info(format_log('Read configuration', file=configfile, name=p['run_name']))
        return cls(p)


    def initialize(self, z=None):
        '''Set up grid, uplift field, solvers and reporting

        Without initial topography a flat surface with random noise
        is filled to drain towards base level. Topography given as
        ``z`` or read from the load file sets the grid size, replacing
        ``nrows`` and ``ncols`` of the configuration.

        '''

        p = self.p

        if z is not None:
            self.grid = GridField(z, p['resolution'], xmin=p['xmin'], ymin=p['ymin'], nodata=p['nodata'])
        elif p['load_file'] is not None:
            self.grid = GridField.read(p['load_file'])
            logger.info(format_log('Loaded initial topography', file=p['load_file'],
                                   nrows=self.grid.nrows, ncols=self.grid.ncols))
        else:
            self.grid = GridField.zeros(p['nrows'], p['ncols'], p['resolution'],
                                        xmin=p['xmin'], ymin=p['ymin'], nodata=p['nodata'])
            self.grid.data = self.random_surface_noise(self.grid.data, 0., p['noise'])
            self.grid.data = self.router.fill(self.grid.data, self.grid.dx, p['fill_slope'])

        # supplied topography sets the grid size
        if self.grid.shape != (p['nrows'], p['ncols']):
            logger.warning(format_log('Grid size differs from configuration, using grid size',
                                      nrows=self.grid.nrows, ncols=self.grid.ncols,
                                      configured='%dx%d' % (p['nrows'], p['ncols'])))
            p['nrows'], p['ncols'] = self.grid.shape

        self.dx = self.grid.dx
        self.valid = self.grid.valid
        self.base_level = self.boundary.base_level_mask(self.grid.shape)
        self.z = self.grid.data.copy()
        self.z_old = self.z.copy()
        self.root = np.zeros(self.grid.shape)

        self.uplift = generate_uplift_field(self.grid.shape, p['uplift_mode'],
                                            p['max_uplift'], self.boundary)

        self.diffusion = HillslopeDiffusionSolver(self.boundary, self.dx,
                                                  S_c=np.tan(np.deg2rad(p['S_c'])),
                                                  nonlinear=p['nonlinear'],
                                                  margin=p['critical_slope_margin'],
                                                  max_iter=p['max_iter_nonlinear'],
                                                  tol=p['tol_nonlinear'],
                                                  solver_maxiter=p['max_iter_linear'],
                                                  solver_tol=p['tol_linear'])

        self.creep = None
        self.adaptive = None
        if p['hillslope'] and p['nonlinear']:
            if p['nonlinear_scheme'] in ('creep', 'adaptive'):
                self.creep = build_creep_solver(p, self.boundary, self.grid.shape)
                if p['nonlinear_scheme'] == 'adaptive':
                    self.adaptive = AdaptiveTimestep(tol=p['tol_adaptive'],
                                                     max_iterations=p['max_iter_adaptive'])
            elif p['nonlinear_scheme'] != 'fv':
                msg = 'Unknown nonlinear scheme [%s]' % p['nonlinear_scheme']
                logger.error(msg)
                raise ValueError(msg)

        self.writer = ReportWriter(p, self.grid)

        logger.info(format_log('Model initialized',
                               nrows=self.grid.nrows,
                               ncols=self.grid.ncols,
                               resolution=self.dx,
                               boundary=''.join(self.boundary.codes),
                               timestep=p['time_step'],
                               endtime=p['end_time']))


    def random_surface_noise(self, z, lo, hi, valid=None):
        '''Add uniform noise between ``lo`` and ``hi`` off the fixed edges'''

        z = np.array(z, dtype=float)
        dimension, _, _ = self.boundary.interpret(*z.shape)
        mask = ~self.boundary.base_level_mask(z.shape)
        if dimension == 0:
            mask[0,:] = mask[-1,:] = False
        else:
            mask[:,0] = mask[:,-1] = False
        if valid is not None:
            mask &= valid
        z[mask] += self.rng.uniform(lo, hi, size=np.sum(mask))
        return z


    def get_K(self):
        return self.K.value(self.clock)


    def get_D(self):
        return self.D.value(self.clock)


    @property
    def time(self):
        return self.clock.current_time


    def calculate_erosion_rates(self):
        '''Erosion rate field of the last timestep'''

        return erosion_rate(self.z, self.z_old, self.uplift, self.clock.time_step,
                            valid=self.valid, nodata=self.grid.nodata)


    def erosion_at_cell(self, row, col):
        return self.calculate_erosion_rates()[row, col]


    def hillslope_step(self, D):
        '''Diffuse the surface with the configured scheme'''

        p = self.p
        dt = self.clock.time_step

        if not p['nonlinear']:
            return self.diffusion.solve_linear(self.z, D, dt, valid=self.valid)
        elif self.creep is None:
            return self.diffusion.solve_nonlinear(self.z, D, dt, valid=self.valid)

        north = find_max_boundary(self.z, 0)
        south = find_max_boundary(self.z, 2)
        if self.adaptive is not None:
            z, result = self.adaptive.advance(self.creep, self.z, dt, north, south,
                                               D=D, valid=self.valid)
        else:
            z, result = self.creep.timestep(self.z, dt, north, south, D=D, valid=self.valid)

        # base level and no-data stay put
        fixed = self.base_level | ~self.valid
        z[fixed] = self.z[fixed]
        return z, result


    def isostasy_step(self):
        p = self.p

        if p['flexure']:
            if p['flexure_relaxation'] > 0.:
                z, root, result = flexural_isostasy(self.z, self.root, p['rigidity'], self.boundary,
                                                    p['flexure_relaxation'],
                                                    tol=p['tol_flexure'],
                                                    max_iter=p['max_iter_flexure'],
                                                    valid=self.valid)
                if not result.converged:
                    self.nonconverged_steps += 1
            else:
                z, root = flexural_isostasy_alt(self.z, self.root, p['rigidity'], self.boundary,
                                                valid=self.valid)
        else:
            z, root = airy_isostasy(self.z, self.root, valid=self.valid)

        z[~self.valid] = self.grid.nodata
        self.z, self.root = z, root


    def step(self):
        '''Run all active components for one timestep

        Returns
        -------
        bool
            All iterative solvers converged

        '''

        p = self.p
        clock = self.clock
        converged = True

        self.z_old = self.z.copy()
        K = self.get_K()
        D = self.get_D()

        if p['hillslope']:
            self.z, result = self.hillslope_step(D)
            converged &= bool(result.converged)

        if p['threshold_drainage'] >= 0 and p['hillslope'] and p['fluvial']:
            area = self.router.route(self.z_old, self.dx, valid=self.valid).drainage_area
            self.z = wash_out(self.z, self.z_old, area, p['threshold_drainage'])

        if p['fluvial']:
            flow = self.router.route(self.z, self.dx, valid=self.valid)
            self.area = flow.drainage_area
            self.z, result = fluvial_incision(self.z, flow, K, p['m'], p['n'], clock.time_step,
                                              tol=p['tol_newton'], max_iter=p['max_iter_newton'])
            converged &= bool(result.converged)
        else:
            self.area = self.router.route(self.z, self.dx, valid=self.valid).drainage_area

        if p['isostasy']:
            self.isostasy_step()

        self.z = uplift_surface(self.z, self.uplift, clock.time_step, valid=self.valid)

        self.writer.write_report(clock, self.z, self.z_old, self.uplift, K, D,
                                 self.area, self.base_level, valid=self.valid)

        if not converged:
            self.nonconverged_steps += 1

        return converged


    def print_rasters(self):
        self.writer.print_rasters(self.frame, self.clock, self.z, self.get_K(), self.get_D(),
                                  erosion=self.calculate_erosion_rates(), area=self.area)
        self.frame += 1


    def run_components(self, callback=None):
        '''Timestep until the end condition is met

        Parameters
        ----------
        callback : callable, optional
            Called with the model after every timestep

        '''

        p = self.p
        clock = self.clock

        clock.cycle_number = 1
        clock.switch_delay = 0.
        clock.time_delay = 0.
        self.writer.reset_run()
        self.K.reset()
        self.D.reset()

        self.frame = 1
        nprint = 1
        while True:
            if clock.check_if_hung():
                logger.warning(format_log('Model took too long to reach steady state, assumed to be stuck',
                                          time=clock.current_time))
                break

            clock.check_periodicity_switch()

            self.step()
            clock.advance()

            if p['print_interval'] > 0 and nprint % p['print_interval'] == 0:
                self.print_rasters()
            logger.debug('Time: %g years' % clock.current_time)
            nprint += 1

            clock.check_steady_state(self.z, self.z_old)

            if callback is not None:
                callback(self)

            if clock.check_end_condition():
                break

        if p['print_interval'] == 0 or (p['print_interval'] > 0 and (nprint - 1) % p['print_interval'] != 0):
            self.print_rasters()

        logger.info(format_log('Run finished',
                               time=clock.current_time,
                               steady=clock.initial_steady_state,
                               erosion=self.writer.erosion))


    def run_model(self, callback=None):
        '''Run the configured number of runs and write the final report'''

        for run in range(self.p['num_runs']):
            if not self.initialized:
                logger.warning('Model has not been initialized with a parameter file, all values are defaults')

            self.clock.initial_steady_state = False
            self.clock.recording = False
            self.clock.current_time = 0.
            self.run_components(callback=callback)

        return self.final_report()


    run = run_model


    def final_report(self):
        p = self.p
        try:
            return self.writer.final_report(self.clock, p['num_runs'],
                                            self.K.amplitude, self.D.amplitude,
                                            nonconverged=self.nonconverged_steps)
        finally:
            self.writer.close()


    def reach_steady_state(self):
        '''Bring the surface to steady state under constant forcing

        The surface is perturbed with noise and filled, then run under
        a sine forcing of erodibility until the cycle averaged erosion
        settles, and finally for ten timesteps under the configured
        forcing. The configuration is restored afterwards and the
        surface stored as starting point for
        :meth:`run_model_from_steady_state`.

        '''

        p = self.p
        clock = self.clock

        clock.initial_steady_state = False
        clock.current_time = 0.
        self.writer.reset_run()

        saved = dict(K_mode=self.K.mode, D_mode=self.D.mode, K_amplitude=self.K.amplitude,
                     end_time=clock.end_time, periodicity=clock.periodicity,
                     period_mode=clock.period_mode, print_interval=p['print_interval'],
                     reporting=p['reporting'])

        if not self.initialized:
            logger.warning('Model has not been initialized with a parameter file, all values are defaults')

        self.z = self.random_surface_noise(self.z, 0., p['noise'], valid=self.valid)
        self.z = self.router.fill(self.z, self.dx, p['fill_slope'], valid=self.valid)

        # modest fluvial forcing
        self.K.mode = clock.K_mode = 1
        self.K.amplitude = self.K.base * .3
        clock.end_time = 0.
        clock.period_mode = 1
        clock.cycle_steady_check = True
        p['print_interval'] = 0
        p['reporting'] = False

        logger.info('Producing steady state profile')
        self.run_components()

        # static forcing
        self.K.mode = clock.K_mode = saved['K_mode']
        self.D.mode = clock.D_mode = saved['D_mode']
        self.K.amplitude = saved['K_amplitude']
        clock.end_time = clock.time_step * 10.
        clock.cycle_steady_check = False
        clock.initial_steady_state = False
        clock.current_time = 0.

        logger.info('Producing steady state elevation of base level forcing')
        self.run_components()

        clock.end_time = saved['end_time']
        clock.periodicity = saved['periodicity']
        clock.period_mode = saved['period_mode']
        clock.cycle_steady_check = False
        p['print_interval'] = saved['print_interval']
        p['reporting'] = saved['reporting']

        self.steady_state_data = self.z.copy()
        return self.steady_state_data


    def run_model_from_steady_state(self, callback=None):
        '''Run the configured number of runs starting from the steady state surface'''

        if self.steady_state_data is None:
            logger.warning('Model has not been set to steady state yet, '
                           'run reach_steady_state first')
        else:
            self.z = self.steady_state_data.copy()
        self.writer.total_erosion = 0.
        self.writer.total_response = 0.

        if not self.initialized:
            logger.warning('Model has not been initialized with a parameter file, all values are defaults')

        for run in range(self.p['num_runs']):
            self.clock.current_time = 0.
            self.run_components(callback=callback)

        logger.info('Model finished')
        return self.final_report()
