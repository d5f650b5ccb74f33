"""
Pytest configuration and fixtures for the LEMRaster test suite.
"""
import numpy as np
import pytest

from lemraster.boundary import BoundaryModel
from lemraster.constants import DEFAULT_CONFIG


@pytest.fixture
def config(tmp_path):
    """Small, fast model configuration writing into a temporary directory."""
    p = DEFAULT_CONFIG.copy()
    p.update(
        run_name="test",
        output_dir=str(tmp_path),
        nrows=12,
        ncols=10,
        resolution=10.0,
        seed=42,
        time_step=100.0,
        end_time=1000.0,
        print_interval=0,
        print_elevation=False,
        quiet=True,
    )
    return p


@pytest.fixture
def bpbp():
    """Base level north and south, periodic east and west."""
    return BoundaryModel("bpbp")


@pytest.fixture
def ridge():
    """Ridge between base-level rows of a 12 x 10 grid."""
    ny, nx = 12, 10
    i = np.arange(ny, dtype=float)
    profile = np.minimum(i, ny - 1 - i) * 2.0
    z = np.repeat(profile[:, None], nx, axis=1)
    return z


@pytest.fixture
def rough_surface():
    """Noisy surface with a fixed seed."""
    rng = np.random.default_rng(1)
    z = rng.uniform(0.0, 5.0, size=(12, 10))
    z[0, :] = 0.0
    z[-1, :] = 0.0
    return z
