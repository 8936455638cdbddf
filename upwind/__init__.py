"""
Upwind causal stencil operators on regular grids.

A reference field (typically a first-arrival traveltime) defines a causal
ordering of the grid nodes.  From it the package builds an upwind stencil
and exposes four matched linear operators: the weighted directional
difference, its adjoint, the triangular solve and the adjoint of the solve.
These are the per-iteration building blocks of gradient-based inversions;
the outer solver loop is left to the caller.
"""

from .errors import (
    ConfigurationError,
    OutOfMemoryError,
    StencilError,
    StencilStateError,
)
from .grid import GridContext, initialize_geometry
from .multishot import build_stencils
from .operators import as_linear_operator, dot_test, to_sparse
from .stencil import UpwindStencil
from .synthetic import (
    ShotScenario,
    constant_velocity_traveltime,
    create_shot_scenario,
    gradient_velocity_traveltime,
    surface_sources,
)

__all__ = [
    "ConfigurationError",
    "OutOfMemoryError",
    "StencilError",
    "StencilStateError",
    "GridContext",
    "initialize_geometry",
    "build_stencils",
    "as_linear_operator",
    "dot_test",
    "to_sparse",
    "UpwindStencil",
    "ShotScenario",
    "constant_velocity_traveltime",
    "create_shot_scenario",
    "gradient_velocity_traveltime",
    "surface_sources",
]
