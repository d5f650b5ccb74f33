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

# package modules
from lemraster.inout import read_forcing_series

# initialize logger
logger = logging.getLogger(__name__)


FORCING_MODES = {
    0 : 'constant',
    1 : 'sine',
    2 : 'square',
    3 : 'streamed',
}


def sine_wave(t, base, amplitude, periodicity, periodicity_2=None, p_weight=1.,
              time_delay=0., switch_delay=0.):
    '''Sinusoidal forcing, optionally blended from two periods

    .. math::

        f = b + a \\left(w \\sin\\frac{2 \\pi t'}{P_1} + (1 - w) \\sin\\frac{2 \\pi t'}{P_2}\\right)

    with ``t' = t - time_delay - switch_delay``. Without a second
    period only the first sine is used.

    '''

    phase = (t - time_delay - switch_delay) * 2. * np.pi
    if periodicity_2 is None:
        return np.sin(phase / periodicity) * amplitude + base
    return p_weight * np.sin(phase / periodicity) * amplitude + \
        (1. - p_weight) * np.sin(phase / periodicity_2) * amplitude + base


def square_wave(t, base, amplitude, periodicity, time_delay=0., switch_delay=0.):
    '''Square wave forcing, ``base + amplitude`` during the first half period'''

    wave = int((t - time_delay - switch_delay) / (periodicity / 2.))
    if wave % 2 == 0:
        return base + amplitude
    else:
        return base - amplitude


class StreamedForcing:
    '''Forcing read from a two-column series of times and values

    Times in the series count from the moment steady state was
    reached. Values are linearly interpolated between records, the
    last value is held after the series is exhausted. A missing file
    results in the constant base value.

    Example
    -------
    >>> K = StreamedForcing('K_file', base=2e-4)
    >>> K(t=1500., time_delay=1000.)

    '''


    def __init__(self, filename, base):
        self.filename = filename
        self.base = base
        self.series = None
        self.reset()


    def reset(self):
        '''Rewind to the start of the series'''

        self.index = 0
        self.upr_param = self.base
        self.lwr_param = self.base
        self.upr_t = None
        self.lwr_t = 0.
        self.exhausted = False


    def load(self):
        if self.series is None:
            if self.filename is not None and os.path.exists(self.filename):
                self.series = read_forcing_series(self.filename)
                logger.info('Read forcing series from %s' % self.filename)
            else:
                logger.warning('Forcing file not found, using constant value [%s]' % self.filename)
                self.series = np.zeros((0, 2))
        return self.series


    def __call__(self, t, time_delay=0.):
        series = self.load()

        while self.upr_t is None or t >= self.upr_t:
            if self.index < len(series):
                self.lwr_t = time_delay if self.upr_t is None else self.upr_t
                self.lwr_param = self.upr_param
                self.upr_t = series[self.index, 0] + time_delay
                self.upr_param = series[self.index, 1]
                self.index += 1
                self.exhausted = False
            else:
                self.exhausted = True
                break

        if self.exhausted or self.upr_t == self.lwr_t:
            return self.upr_param
        return (self.upr_param - self.lwr_param) * (t - self.lwr_t) \
            / (self.upr_t - self.lwr_t) + self.lwr_param


class ForcingParameter:
    '''Time-varying model parameter, erodibility or diffusivity

    The forcing only acts after the clock reached its initial steady
    state. A sine forcing of erodibility may additionally act while
    the clock warms up on cycle averaged erosion.

    Parameters
    ----------
    base : float
        Constant value
    mode : int
        Forcing mode, 0 constant, 1 sine, 2 square, 3 streamed
    amplitude : float
        Absolute forcing amplitude
    filename : str, optional
        Series of streamed forcing
    cycle_gated : bool, optional
        Sine forcing also acts during cycle based steady state checks

    '''


    def __init__(self, base, mode=0, amplitude=0., filename=None, cycle_gated=False):
        if mode not in FORCING_MODES:
            msg = 'Unknown forcing mode [%s]' % mode
            logger.error(msg)
            raise ValueError(msg)

        self.base = base
        self.mode = mode
        self.amplitude = amplitude
        self.cycle_gated = cycle_gated
        self.stream = StreamedForcing(filename, base) if mode == 3 else None


    @property
    def varying(self):
        return self.mode != 0


    def reset(self):
        '''Rewind a streamed series to its first record'''

        if self.stream is not None:
            self.stream.reset()


    def is_active(self, clock):
        if self.mode == 1 and self.cycle_gated:
            return clock.initial_steady_state or clock.cycle_steady_check
        return clock.initial_steady_state


    def value(self, clock, t=None):
        '''Parameter value at the clock time, or at ``t`` if given'''

        if self.mode == 0 or not self.is_active(clock):
            return self.base

        if t is None:
            t = clock.current_time

        if self.mode == 1:
            return clock.periodic_parameter(self.base, self.amplitude, t=t)
        elif self.mode == 2:
            return clock.square_wave_parameter(self.base, self.amplitude, t=t)
        else:
            return self.stream(t, time_delay=clock.time_delay)


def make_forcing(p):
    '''Erodibility and diffusivity forcing from a model configuration

    Amplitudes in the configuration are fractions of the base value.

    Returns
    -------
    K : ForcingParameter
        Erodibility
    D : ForcingParameter
        Diffusivity

    '''

    K = ForcingParameter(p['K'], mode=p['K_mode'],
                         amplitude=p['K_amplitude'] * p['K'],
                         filename=p['K_file'], cycle_gated=True)
    D = ForcingParameter(p['D'], mode=p['D_mode'],
                         amplitude=p['D_amplitude'] * p['D'],
                         filename=p['D_file'])

    return K, D
