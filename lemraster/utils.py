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

import re
from collections import namedtuple
import numpy as np
from numpy import ndarray


def isiterable(x):
    '''Check if variable is iterable'''

    if isinstance(x, str):
        return False
    try:
        _ = [i for i in x]
    except TypeError:
        return False
    return True


def print_value(val, fill='<novalue>'):
    '''Construct a string representation from an arbitrary value

    Parameters
    ----------
    val : misc
        Value to be represented as string
    fill : str, optional
        String representation used in case no value is given

    Returns
    -------
    str
        String representation of value

    '''

    if isiterable(val):
        return ' '.join([print_value(x) for x in val])
    elif val is None:
        return fill
    elif isinstance(val, (bool, np.bool_)):
        return 'T' if val else 'F'
    elif isinstance(val, (int, np.integer)):
        return '%d' % val
    elif isinstance(val, (float, np.floating)):
        if abs(val) < 1.:
            return '%0.6f' % val
        else:
            return '%0.2f' % val
    else:
        return str(val)


def format_log(msg, ncolumns=2, **props):
    '''Format log message into columns
    
    Prints log message and additional data into a column format
    that fits into a 70 character terminal.
    
    Parameters
    ----------
    msg : str
        Main log message
    ncolumns : int
        Number of columns
    props : key/value pairs
        Properties to print in column format
        
    Returns
    -------
    str
        Formatted log message
        
    Note
    ----
    Properties names starting with ``min``, ``max`` or ``nr`` are
    respectively replaced by ``min.``, ``max.`` or ``#``.

    '''
            
    fmt = []
    fmt.append(msg)

    i = 0
    fmt.append('')
    for k, v in sorted(props.items()):
        
        if i == ncolumns:
            fmt.append('')
            i = 0
            
        k = re.sub('^min', 'min. ', k)
        k = re.sub('^max', 'max. ', k)
        k = re.sub('^nr', '# ', k)
    
        fmt[-1] += '%-15s: %-10s ' % (k.ljust(15, '.'),
                                      print_value(v))
        i += 1
            
    return '\n'.join([line.rstrip() for line in fmt if line])


def next_power_of_two(n: int) -> int:
    '''Smallest power of two that is not smaller than ``n``'''

    return int(2 ** np.ceil(np.log2(max(n, 1))))


def fit_plane(z: ndarray) -> ndarray:
    '''Least-squares plane through a 2D field

    Parameters
    ----------
    z : numpy.ndarray
        2D field

    Returns
    -------
    numpy.ndarray
        Plane evaluated on the grid of ``z``

    '''

    ny, nx = z.shape
    ii, jj = np.mgrid[0:ny, 0:nx]
    G = np.column_stack((np.ones(z.size), ii.ravel(), jj.ravel()))
    coef, _, _, _ = np.linalg.lstsq(G, z.ravel(), rcond=None)

    return (G @ coef).reshape(z.shape)


def detrend(z: ndarray, shape: tuple=None) -> tuple:
    '''Remove best-fit plane and zero-pad the residual

    Parameters
    ----------
    z : numpy.ndarray
        2D field
    shape : tuple, optional
        Shape of the padded residual (default: shape of ``z``)

    Returns
    -------
    detrended : numpy.ndarray
        Residual padded with zeros to ``shape``
    trend : numpy.ndarray
        Plane removed from ``z``

    '''

    trend = fit_plane(z)

    if shape is None:
        shape = z.shape
    detrended = np.zeros(shape)
    detrended[:z.shape[0], :z.shape[1]] = z - trend

    return detrended, trend


def parse_onoff(value):
    '''Interpret on/off style flags'''

    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('on', 'true', 't', 'yes', '1')


#: Outcome of an iterative solve
ConvergenceResult = namedtuple('ConvergenceResult', ['converged', 'iterations', 'residual'])
