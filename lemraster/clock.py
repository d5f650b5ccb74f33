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
from lemraster.forcing import sine_wave, square_wave
from lemraster.utils import format_log

# initialize logger
logger = logging.getLogger(__name__)


class SimulationClock:
    '''Simulated time, steady state detection and end conditions

    The clock passes through the stages warming up, initial steady
    state reached and recording. Steady state is detected either from
    the per-cell elevation change of a single timestep or, when
    ``cycle_steady_check`` is set, from a record of the last five
    cycle averaged erosion rates. The first detection fixes
    ``time_delay``, the time from which forcing and end times count.

    Example
    -------
    >>> clock = SimulationClock.from_config(p)
    >>> while not clock.check_end_condition():
    ...     clock.advance()

    '''


    def __init__(self, time_step=100., end_time=10000., end_time_mode=0, tolerance=1e-4,
                 steady_limit=-1., periodicity=10000., periodicity_2=20000., period_mode=1,
                 p_ratio=.8, switch_time=None, K_mode=0, D_mode=0, hung_check=False):
        if end_time_mode not in (0, 1, 2, 3):
            msg = 'Unknown end time mode [%s]' % end_time_mode
            logger.error(msg)
            raise ValueError(msg)

        self.time_step = time_step
        self.end_time = end_time
        self.end_time_mode = end_time_mode
        self.tolerance = tolerance
        self.steady_limit = steady_limit
        self.periodicity = periodicity
        self.periodicity_2 = periodicity_2
        self.period_mode = period_mode
        self.p_ratio = min(p_ratio, 1.)
        self.switch_time = end_time / 2. if switch_time is None else switch_time
        self.K_mode = K_mode
        self.D_mode = D_mode
        self.hung_check = hung_check

        self.initial_steady_state = False
        self.cycle_steady_check = False
        self.recording = False
        self.reset()


    @classmethod
    def from_config(cls, p):
        return cls(time_step=p['time_step'],
                   end_time=p['end_time'],
                   end_time_mode=p['end_time_mode'],
                   tolerance=p['tolerance'],
                   steady_limit=p['steady_limit'],
                   periodicity=p['periodicity'],
                   periodicity_2=p['periodicity_2'],
                   period_mode=p['period_mode'],
                   p_ratio=p['p_ratio'],
                   switch_time=p['switch_time'],
                   K_mode=p['K_mode'],
                   D_mode=p['D_mode'],
                   hung_check=p['hung_check'])


    def reset(self):
        '''Rewind to the start of a run'''

        self.current_time = 0.
        self.time_delay = 0.
        self.switch_delay = 0.
        self.cycle_number = 1
        self.steady_state = False
        self.erosion_cycle_record = [-99.] * 5


    @property
    def forcing_varies(self):
        return self.K_mode != 0 or self.D_mode != 0


    @property
    def num_cycles(self):
        '''Number of completed forcing cycles since steady state'''

        if self.forcing_varies:
            return self.cycle_number - 1
        return int((self.current_time - self.time_delay) / self.periodicity)


    def advance(self):
        self.current_time += self.time_step


    def periodic_parameter(self, base, amplitude, t=None):
        '''Sine forcing at the clock time, blended for period modes 3 and 4'''

        if t is None:
            t = self.current_time
        periodicity_2 = self.periodicity_2 if self.period_mode in (3, 4) else None
        return sine_wave(t, base, amplitude, self.periodicity,
                         periodicity_2=periodicity_2,
                         p_weight=self.p_ratio,
                         time_delay=self.time_delay,
                         switch_delay=self.switch_delay)


    def square_wave_parameter(self, base, amplitude, t=None):
        if t is None:
            t = self.current_time
        return square_wave(t, base, amplitude, self.periodicity,
                           time_delay=self.time_delay,
                           switch_delay=self.switch_delay)


    def check_steady_state(self, z, z_old):
        '''Update the steady state flag

        Parameters
        ----------
        z : numpy.ndarray
            Elevation after the timestep
        z_old : numpy.ndarray
            Elevation before the timestep

        Returns
        -------
        bool
            Steady state flag

        '''

        self.steady_state = True

        if self.cycle_steady_check:
            record = self.erosion_cycle_record
            for i in range(4):
                if record[i] == -99. or abs(record[i] - record[i+1]) > self.tolerance:
                    self.steady_state = False
                    return False
        elif self.steady_limit < 0 or self.current_time < self.steady_limit:
            if np.any(np.abs(z - z_old) > self.tolerance):
                self.steady_state = False
                return False

        if not self.initial_steady_state:
            self.initial_steady_state = True
            self.time_delay = self.current_time
            if self.end_time_mode in (1, 3):
                self.end_time += self.time_delay
            logger.info(format_log('Initial steady state reached',
                                   time=self.current_time,
                                   endtime=self.end_time))

        return True


    def check_recording(self):
        '''Start recording once steady state and the first forcing cycle have passed'''

        if self.recording or not self.initial_steady_state:
            return self.recording

        if not self.forcing_varies:
            self.recording = True
        elif int((self.current_time - self.time_delay) / self.periodicity) >= 1:
            self.recording = True

        return self.recording


    def check_end_condition(self):
        '''End of run reached

        ====== ========================================================
        mode   ends when
        ====== ========================================================
        0      ``current_time >= end_time``
        1      steady and ``current_time > end_time + time_step``, the
               end time counting from steady state
        2      steady and more than ``end_time`` forcing cycles passed
        3      as 1, with the end time rounded up to whole cycles
        ====== ========================================================

        '''

        if self.end_time_mode == 1:
            return self.initial_steady_state and \
                self.current_time > self.end_time + self.time_step

        elif self.end_time_mode == 2:
            return self.initial_steady_state and self.num_cycles > self.end_time

        elif self.end_time_mode == 3:
            ncycles = np.ceil((self.end_time - self.time_delay) / self.periodicity)
            if ncycles == 1:
                ncycles += 1
            self.end_time = ncycles * self.periodicity + self.time_delay
            return self.initial_steady_state and \
                self.current_time >= self.end_time + self.time_step

        else:
            return self.current_time >= self.end_time


    def check_periodicity_switch(self):
        '''Swap primary and secondary period once the switch time has passed'''

        if not self.forcing_varies or \
           (not self.initial_steady_state and not self.cycle_steady_check):
            return False
        if self.period_mode not in (2, 4):
            return False

        p = self.periodicity
        if self.end_time_mode == 2:
            t = self.switch_time * p
        elif self.end_time_mode == 3:
            t = np.ceil(self.switch_time / p) * p
        else:
            t = self.switch_time

        if self.current_time - self.time_delay > t + self.switch_delay:
            self.periodicity, self.periodicity_2 = self.periodicity_2, self.periodicity
            self.switch_delay = self.current_time - self.time_delay - self.time_step
            logger.info(format_log('Switched forcing period',
                                   time=self.current_time,
                                   periodicity=self.periodicity))
            return True

        return False


    def check_if_hung(self):
        '''Run has not reached steady state long after its end time'''

        if not self.hung_check or self.initial_steady_state:
            return False

        if self.end_time_mode in (1, 3):
            return self.current_time > self.end_time * 100.
        elif self.end_time_mode == 2:
            return int(self.current_time / self.periodicity) > self.end_time * 100.
        return False


    def snap_periodicity(self):
        '''Round the forcing period up to a whole number of timesteps'''

        self.periodicity = np.ceil(self.periodicity / self.time_step) * self.time_step
        return self.periodicity
