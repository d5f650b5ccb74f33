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

import numpy as np


#: Densities and gravity used by the isostasy module
RHO_CRUST = 2650.                   # [kg/m^3] Density of crust
RHO_MANTLE = 3300.                  # [kg/m^3] Density of mantle
GRAVITY = 9.81                      # [m/s^2] Gravitational acceleration

#: Boundary codes, ordered north, east, south, west
BASE_LEVEL = 'b'
PERIODIC = 'p'
NO_FLUX = 'n'
BOUNDARY_CODES = (BASE_LEVEL, PERIODIC, NO_FLUX)
EDGES = ('north', 'east', 'south', 'west')

#: Sentinel used for missing values in reports and cycle records
MISSING = -99.

#: Default configuration, overridden by the parameter file
DEFAULT_CONFIG = {

    # --- Run and grid --------------------------------------------------------------------------------------------
    'run_name'                      : 'LSDRM',            # Name used as prefix of all output files
    'output_dir'                    : '.',                # Directory where reports and rasters are written
    'nrows'                         : 100,                # [-] Number of grid rows (ignored when a load file is given)
    'ncols'                         : 100,                # [-] Number of grid columns (ignored when a load file is given)
    'resolution'                    : 10.,                # [m] Grid cell size
    'xmin'                          : 0.,                 # [m] x-coordinate of lower left corner
    'ymin'                          : 0.,                 # [m] y-coordinate of lower left corner
    'nodata'                        : -99.,               # [-] No-data value of elevation grids
    'load_file'                     : None,               # Filename of ESRI ASCII grid with initial topography
    'noise'                         : 0.1,                # [m] Maximum amplitude of initial random surface noise
    'fill_slope'                    : 1e-5,               # [-] Minimum gradient imposed when filling depressions
    'seed'                          : None,               # [-] Seed of the random generator for surface noise
    'boundary_code'                 : 'bpbp',             # Boundary codes north, east, south, west (b, p or n)

    # --- Time ----------------------------------------------------------------------------------------------------
    'time_step'                     : 100.,               # [yr] Model timestep
    'end_time'                      : 10000.,             # [yr|cycles] End time, meaning depends on end_time_mode
    'end_time_mode'                 : 0,                  # [-] 0 absolute, 1 after steady state, 2 cycles after steady state, 3 whole cycles after steady state
    'num_runs'                      : 1,                  # [-] Number of repeated runs
    'tolerance'                     : 0.0001,             # [m] Steady state tolerance on elevation change per step
    'steady_limit'                  : -1.,                # [yr] Time after which elevation based steady state checks stop (negative disables)
    'hung_check'                    : False,              # Abort runs that do not reach steady state in 100 times the end time

    # --- Uplift --------------------------------------------------------------------------------------------------
    'uplift_mode'                   : 0,                  # [-] 0 block, 1 tilt, 2 gaussian, 3 quadratic
    'max_uplift'                    : 0.0005,             # [m/yr] Maximum uplift rate

    # --- Fluvial -------------------------------------------------------------------------------------------------
    'fluvial'                       : True,               # Enable fluvial incision
    'K'                             : 0.0002,             # [m^(1-2m)/yr] Erodibility
    'm'                             : 0.5,                # [-] Drainage area exponent
    'n'                             : 1.,                 # [-] Slope exponent
    'threshold_drainage'            : -99.,               # [m^2] Drainage area above which diffusion is undone (negative disables)
    'max_iter_newton'               : 100,                # [-] Maximum number of Newton iterations per cell
    'tol_newton'                    : 1e-3,               # [m] Newton correction tolerance

    # --- Hillslope -----------------------------------------------------------------------------------------------
    'hillslope'                     : True,               # Enable hillslope diffusion
    'nonlinear'                     : False,              # Use nonlinear (critical slope) diffusion
    'nonlinear_scheme'              : 'fv',               # Nonlinear scheme: fv, creep or adaptive
    'D'                             : 0.02,               # [m^2/yr] Soil diffusivity
    'S_c'                           : 30.,                # [deg] Critical slope
    'critical_slope_margin'         : 1e-3,               # [-] Smallest allowed value of 1 - (S/S_c)^2
    'max_iter_linear'               : 200,                # [-] Maximum iterations of the linear sparse solver
    'tol_linear'                    : 1e-6,               # [-] Relative tolerance of the linear sparse solver
    'max_iter_nonlinear'            : 200,                # [-] Maximum Picard iterations of nonlinear diffusion
    'tol_nonlinear'                 : 1e-5,               # [m] Picard tolerance of nonlinear diffusion
    'max_iter_creep'                : 100,                # [-] Iterations before the creep tolerance is relaxed
    'tol_creep'                     : 0.01,               # [m] Mean change tolerance of the full grid creep solver
    'max_iter_creep_solver'         : 500,                # [-] Maximum iterations of the creep sparse solver
    'tol_creep_solver'              : 1e-8,               # [-] Relative tolerance of the creep sparse solver
    'max_iter_adaptive'             : 10,                 # [-] Iterations before an adaptive sub-step is refined
    'tol_adaptive'                  : 1e-5,               # [m] Maximum change tolerance of adaptive sub-steps

    # --- Isostasy ------------------------------------------------------------------------------------------------
    'isostasy'                      : False,              # Enable isostatic compensation
    'flexure'                       : False,              # Use flexural instead of Airy isostasy
    'rigidity'                      : 1e7,                # [N m] Flexural rigidity
    'flexure_relaxation'            : 0.,                 # [-] Under-relaxation factor, zero for a single update per step
    'max_iter_flexure'              : 200,                # [-] Maximum relaxation iterations
    'tol_flexure'                   : 1e-4,               # [m] Maximum root change tolerance of relaxation

    # --- Periodic forcing ----------------------------------------------------------------------------------------
    'K_mode'                        : 0,                  # [-] 0 constant, 1 sine, 2 square, 3 streamed
    'D_mode'                        : 0,                  # [-] 0 constant, 1 sine, 2 square, 3 streamed
    'K_amplitude'                   : 0.001,              # [-] Amplitude of K forcing as fraction of K
    'D_amplitude'                   : 0.001,              # [-] Amplitude of D forcing as fraction of D
    'K_file'                        : 'K_file',           # Filename of streamed K forcing (time, value)
    'D_file'                        : 'D_file',           # Filename of streamed D forcing (time, value)
    'periodicity'                   : 10000.,             # [yr] Forcing period
    'periodicity_2'                 : 20000.,             # [yr] Secondary forcing period
    'period_mode'                   : 1,                  # [-] 1 single, 2 switch, 3 blend, 4 blend and switch
    'p_ratio'                       : 0.8,                # [-] Weight of the primary period in blended forcing
    'switch_time'                   : None,               # [yr|cycles] Time of the period switch, defaults to end_time / 2

    # --- Output --------------------------------------------------------------------------------------------------
    'reporting'                     : True,               # Write report files
    'report_delay'                  : 0.,                 # [yr] Time before the report is written
    'quiet'                         : False,              # Only log warnings and errors
    'print_interval'                : 10,                 # [-] Number of timesteps between raster output
    'print_elevation'               : True,               # Write elevation rasters
    'print_hillshade'               : False,              # Write hillshade rasters and images
    'print_erosion'                 : False,              # Write erosion rate rasters
    'print_erosion_cycle'           : False,              # Write cycle averaged erosion rasters
    'print_slope_area'              : False,              # Write slope-area tables
}

#: Keys in parameter files and the configuration entries they set
PARAMETER_KEYS = {
    'run name'                      : 'run_name',
    'output dir'                    : 'output_dir',
    'nrows'                         : 'nrows',
    'ncols'                         : 'ncols',
    'resolution'                    : 'resolution',
    'load file'                     : 'load_file',
    'noise'                         : 'noise',
    'seed'                          : 'seed',
    'boundary code'                 : 'boundary_code',
    'time step'                     : 'time_step',
    'end time'                      : 'end_time',
    'end time mode'                 : 'end_time_mode',
    'num runs'                      : 'num_runs',
    'tolerance'                     : 'tolerance',
    'steady limit'                  : 'steady_limit',
    'hung check'                    : 'hung_check',
    'uplift mode'                   : 'uplift_mode',
    'max uplift'                    : 'max_uplift',
    'fluvial'                       : 'fluvial',
    'k'                             : 'K',
    'm'                             : 'm',
    'n'                             : 'n',
    'threshold drainage'            : 'threshold_drainage',
    'hillslope'                     : 'hillslope',
    'non-linear'                    : 'nonlinear',
    'nonlinear scheme'              : 'nonlinear_scheme',
    'd'                             : 'D',
    's_c'                           : 'S_c',
    'isostasy'                      : 'isostasy',
    'flexure'                       : 'flexure',
    'rigidity'                      : 'rigidity',
    'flexure relaxation'            : 'flexure_relaxation',
    'k mode'                        : 'K_mode',
    'd mode'                        : 'D_mode',
    'k amplitude'                   : 'K_amplitude',
    'd amplitude'                   : 'D_amplitude',
    'k file'                        : 'K_file',
    'd file'                        : 'D_file',
    'periodicity'                   : 'periodicity',
    'periodicity 2'                 : 'periodicity_2',
    'period mode'                   : 'period_mode',
    'p ratio'                       : 'p_ratio',
    'switch time'                   : 'switch_time',
    'reporting'                     : 'reporting',
    'report delay'                  : 'report_delay',
    'quiet'                         : 'quiet',
    'print interval'                : 'print_interval',
    'print elevation'               : 'print_elevation',
    'print hillshade'               : 'print_hillshade',
    'print erosion'                 : 'print_erosion',
    'print erosion cycle'           : 'print_erosion_cycle',
    'print slope-area'              : 'print_slope_area',
}

#: Columns of the per-timestep report
REPORT_COLUMNS = ('Time', 'Periodicity', 'K', 'D', 'Erosion', 'Total erosion', 'Steady',
                  'Max_height', 'Mean_height', 'Relief-3px', 'Relief-10m',
                  'Drainage-20m2', 'Drainage-200m2')

#: Columns of the per-cycle report
CYCLE_REPORT_COLUMNS = ('Cycle', 'Start_time', 'End_time', 'Periodicity',
                        'Erosion', 'Erosion_response', 'Elevation', 'Elevation_response',
                        'Relief-3px', 'Relief-3px_response', 'Relief-10m', 'Relief-10m_response')

#: Columns of the final report
FINAL_REPORT_COLUMNS = ('Erosion', 'Averaged', 'Response', 'K amp', 'D amp',
                        'Periodicity', 'Overshoot', 'Nonconverged')

#: D8 neighbour offsets, cardinal directions first
D8_OFFSETS = np.array([[-1, 0], [0, 1], [1, 0], [0, -1],
                       [-1, 1], [1, 1], [1, -1], [-1, -1]], dtype=np.int64)
