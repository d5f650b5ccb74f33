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

import sys
import logging

import click

# package modules
from lemraster.inout import read_configfile, write_template
from lemraster.model import LandscapeEvolutionEngine


def configure_logging(verbose=False, quiet=False, log_file=None):
    '''Attach console and optional file handlers to the package logger'''

    logger = logging.getLogger('lemraster')
    logger.setLevel(logging.DEBUG)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s',
                                  datefmt='%H:%M:%S')

    console = logging.StreamHandler()
    if verbose:
        console.setLevel(logging.DEBUG)
    elif quiet:
        console.setLevel(logging.WARNING)
    else:
        console.setLevel(logging.INFO)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file is not None:
        fh = logging.FileHandler(log_file, mode='w')
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(formatter)
        logger.addHandler(fh)

    return logger


@click.group()
def cli():
    """
    Raster landscape evolution model.
    """


@cli.command()
@click.argument("paramfile", type=click.Path(exists=True))
@click.option("--steady", is_flag=True, help="Reach steady state before the forced run")
@click.option("--log-file", type=click.Path(), default=None, help="Write the full log to a file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
def run(paramfile, steady, log_file, verbose):
    """
    Run a model from a parameter file.

    PARAMFILE: Path to parameter file, see `lemraster template`

    Examples:

        # Run with the configured initial surface
        lemraster run model.param

        # Spin up to steady state first
        lemraster run --steady model.param
    """
    try:
        p = read_configfile(paramfile)
        configure_logging(verbose=verbose, quiet=p['quiet'], log_file=log_file)
        model = LandscapeEvolutionEngine(p)

        if steady:
            model.reach_steady_state()
            summary = model.run_model_from_steady_state()
        else:
            summary = model.run_model()

        if not model.p['quiet']:
            for k, v in summary.items():
                click.echo(f"{k:<12s}: {v:g}")

    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("path", type=click.Path())
def template(path):
    """
    Write a template parameter file.

    PATH: Path of the parameter file to create
    """
    write_template(path)
    click.echo(f"Wrote template parameter file '{path}'")


if __name__ == "__main__":
    cli()
