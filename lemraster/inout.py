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
import re
import logging
import numpy as np

# package modules
from lemraster.constants import DEFAULT_CONFIG, PARAMETER_KEYS
from lemraster.utils import parse_onoff, print_value

# initialize logger
logger = logging.getLogger(__name__)


#: Header keys of ESRI ASCII grids in file order
ASCII_HEADER = ('ncols', 'nrows', 'xllcorner', 'yllcorner', 'cellsize', 'NODATA_value')

#: Configuration entries parsed as on/off flags
FLAGS = [k for k, v in DEFAULT_CONFIG.items() if isinstance(v, bool)]


def read_configfile(configfile, load_defaults=True):
    '''Read model configuration file

    Lines are formatted as ``Key: value``. Keys are case-insensitive,
    everything after a ``#`` is a comment. Unknown keys are reported
    and ignored.

    Parameters
    ----------
    configfile : str
        Path to configuration file
    load_defaults : bool, optional
        Start from the default configuration (default: True)

    Returns
    -------
    dict
        Dictionary with configuration

    Raises
    ------
    FileNotFoundError
        If the configuration file does not exist

    See Also
    --------
    write_template

    '''

    p = DEFAULT_CONFIG.copy() if load_defaults else {}

    if not os.path.exists(configfile):
        msg = 'File not found [%s]' % configfile
        logger.error(msg)
        raise FileNotFoundError(msg)

    with open(configfile, 'r') as fp:
        for nr, line in enumerate(fp):
            line = line.split('#')[0].strip()
            if not line or ':' not in line:
                continue
            key, val = line.split(':', 1)
            key = re.sub(r'\s+', ' ', key.strip().lower())
            if key not in PARAMETER_KEYS:
                logger.warning('Line %d: no parameter "%s" expected, check spelling' % (nr + 1, key))
                continue
            name = PARAMETER_KEYS[key]
            p[name] = parse_value(name, val)

    if p.get('p_ratio') is not None and p['p_ratio'] > 1.:
        p['p_ratio'] = 1.

    # relative paths are relative to the configuration file
    for name in ('load_file', 'K_file', 'D_file', 'output_dir'):
        if isinstance(p.get(name), str) and not os.path.isabs(p[name]):
            p[name] = os.path.join(os.path.dirname(os.path.abspath(configfile)), p[name])

    return p


def parse_value(name, val):
    '''Casts a string to the type of the corresponding default

    Parameters
    ----------
    name : str
        Configuration entry
    val : str
        String representation of value

    Returns
    -------
    misc
        Parsed value

    '''

    val = val.strip()
    if name in FLAGS:
        return parse_onoff(val)

    # only the first token counts, trailing words are annotations
    token = val.split()[0] if val else ''
    default = DEFAULT_CONFIG.get(name)

    if name == 'boundary_code':
        return token.lower()
    elif isinstance(default, (int, float)) or default is None:
        if re.match(r'^[+-]?\d+$', token):
            return float(token) if isinstance(default, float) else int(token)
        try:
            return float(token)
        except ValueError:
            return val if default is None else default
    return val


def write_template(filename):
    '''Write template parameter file

    Parameters
    ----------
    filename : str
        Path to the template file

    '''

    lines = [
        '# Template for parameter file',
        'Run Name:\t\ttemplate',
        'NRows:\t\t\t100',
        'NCols:\t\t\t100',
        'Resolution:\t\t1',
        'Boundary code:\t\tbnbn\tNorth, east, south, west',
        '# b = base level, p = periodic, n = no flow (default)',
        'Time step:\t\t50',
        'End time:\t\t2000',
        'End time mode:\t\t0\t(if 1, wait for steady state to set the time to count down)',
        'Uplift mode:\t\t0\tBlock uplift',
        'Max uplift:\t\t0.001',
        'Tolerance:\t\t0.0001',
        'Print interval:\t\t5',
        '#Periodicity:\t\t1000',
        '',
        '#####################',
        'Fluvial:\t\ton',
        'K:\t\t\t0.01',
        'm:\t\t\t0.5',
        'n:\t\t\t1',
        'K mode:\t\t\t0\tconstant',
        '#K amplitude:\t\t0.005',
        '',
        '#####################',
        'Hillslope:\t\ton',
        'Non-linear:\t\toff',
        'Threshold drainage:\t-1\t(if negative, ignored)',
        'D:\t\t\t0.05',
        'S_c:\t\t\t30\tdegrees',
        'D mode:\t\t\t0\tConstant',
        '#D amplitude:\t\t0.005',
        '',
        '#####################',
        'Isostasy:\t\toff',
        'Flexure:\t\toff',
        'Rigidity:\t\t1000000',
    ]

    with open(filename, 'w') as fp:
        fp.write('\n'.join(lines) + '\n')


def write_configfile(configfile, p):
    '''Write model configuration file in the parameter file format

    Only entries that differ from the defaults are written.

    Parameters
    ----------
    configfile : str
        Path to configuration file
    p : dict
        Dictionary with model configuration

    '''

    names = {v: k for k, v in PARAMETER_KEYS.items()}
    with open(configfile, 'w') as fp:
        for name, val in p.items():
            if name not in names or val == DEFAULT_CONFIG.get(name):
                continue
            if isinstance(val, bool):
                val = 'on' if val else 'off'
            elif isinstance(val, float):
                val = repr(val)
            fp.write('%s: %s\n' % (names[name], print_value(val)))


def read_ascii_grid(filename):
    '''Read ESRI ASCII grid

    Parameters
    ----------
    filename : str
        Path to grid file

    Returns
    -------
    data : numpy.ndarray
        2D array, first row is the northern edge
    header : dict
        Grid header with ``ncols``, ``nrows``, ``xllcorner``,
        ``yllcorner``, ``cellsize`` and ``NODATA_value``

    '''

    if not os.path.exists(filename):
        msg = 'File not found [%s]' % filename
        logger.error(msg)
        raise FileNotFoundError(msg)

    header = {'NODATA_value': -9999.}
    with open(filename, 'r') as fp:
        nheader = 0
        for line in fp:
            parts = line.split()
            if len(parts) != 2 or not re.match('^[a-zA-Z_]+$', parts[0]):
                break
            key = parts[0].lower()
            for k in ASCII_HEADER:
                if k.lower() == key:
                    header[k] = float(parts[1])
            nheader += 1

    data = np.loadtxt(filename, skiprows=nheader, ndmin=2)
    header['ncols'] = int(header['ncols'])
    header['nrows'] = int(header['nrows'])

    if data.shape != (header['nrows'], header['ncols']):
        msg = 'Grid dimensions do not match header [%s]' % filename
        logger.error(msg)
        raise ValueError(msg)

    return data, header


def write_ascii_grid(filename, data, header):
    '''Write ESRI ASCII grid

    Parameters
    ----------
    filename : str
        Path to grid file
    data : numpy.ndarray
        2D array, first row is the northern edge
    header : dict
        Grid header, see :func:`read_ascii_grid`

    '''

    with open(filename, 'w') as fp:
        for k in ASCII_HEADER:
            v = header[k]
            if k in ('ncols', 'nrows'):
                fp.write('%-14s%d\n' % (k, v))
            else:
                fp.write('%-14s%s\n' % (k, repr(float(v))))
        np.savetxt(fp, data, fmt='%.6g')


def read_forcing_series(filename):
    '''Read two-column forcing series

    Parameters
    ----------
    filename : str
        Path to file with whitespace separated time and value columns

    Returns
    -------
    numpy.ndarray
        Array with shape (n, 2)

    '''

    series = np.loadtxt(filename, ndmin=2)
    if series.size == 0:
        return np.zeros((0, 2))
    if series.shape[1] != 2:
        # records may wrap over lines, only the order counts
        series = series.ravel()[:series.size // 2 * 2].reshape((-1, 2))

    return series
