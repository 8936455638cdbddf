"""Pytest configuration and fixtures for the upwind stencil tests."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add repository root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from upwind import GridContext, UpwindStencil, gradient_velocity_traveltime  # noqa: E402


GRID_CASES = {
    "1d": ((17,), (1.0,)),
    "2d": ((9, 7), (10.0, 5.0)),
    "3d": ((5, 4, 6), (2.0, 1.0, 0.5)),
}


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture(params=list(GRID_CASES), ids=list(GRID_CASES))
def grid(request):
    """Small 1-3D grids with anisotropic sampling."""
    size, sampling = GRID_CASES[request.param]
    return GridContext(size, sampling)


@pytest.fixture
def random_stencil(grid, rng):
    """Stencil built from a random reference field (many local minima)."""
    reference = rng.random(grid.node_count)
    with UpwindStencil(grid).build(reference) as stencil:
        yield stencil, reference


@pytest.fixture
def traveltime_2d():
    """Point-source traveltime on a 2D vertical-gradient model."""
    grid = GridContext((21, 11), (10.0, 10.0))
    t = gradient_velocity_traveltime(grid, (100.0, 0.0), v0=1800.0, gradient=0.6)
    return grid, t
