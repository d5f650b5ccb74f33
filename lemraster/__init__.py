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

from lemraster.model import LandscapeEvolutionEngine
from lemraster.boundary import BoundaryModel
from lemraster.grid import GridField
from lemraster.clock import SimulationClock
from lemraster.hillslope import HillslopeDiffusionSolver, NonlinearCreepSolver
from lemraster.inout import read_configfile, write_configfile

__version__ = '0.1.0'
