from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

import numpy as np

from .grid import GridContext


@dataclass
class ShotScenario:
    """
    Grid, source positions and one reference traveltime field per source.
    """

    grid: GridContext
    sources: np.ndarray
    traveltimes: List[np.ndarray]
    metadata: Dict[str, object] = field(default_factory=dict)

    @property
    def n_sources(self) -> int:
        return int(self.sources.shape[0])


def _axis_grids(grid: GridContext, origin: Sequence[float] | None) -> List[np.ndarray]:
    """
    Coordinates of every node per axis, each shaped ``grid.shape``.
    """

    coords = grid.coordinates(origin)
    mesh = np.meshgrid(*reversed(coords), indexing="ij")
    return list(reversed(mesh))


def _source_point(grid: GridContext, source: Sequence[float]) -> np.ndarray:
    point = np.asarray(source, dtype=float)
    if point.shape != (grid.ndim,):
        raise ValueError(f"source must have {grid.ndim} coordinates.")
    return point


def constant_velocity_traveltime(
    grid: GridContext,
    source: Sequence[float],
    velocity: float,
    origin: Sequence[float] | None = None,
) -> np.ndarray:
    """
    First-arrival traveltime ``t = r / v`` from a point source, shaped
    ``grid.shape``.
    """

    if velocity <= 0.0:
        raise ValueError("velocity must be positive.")
    point = _source_point(grid, source)
    axes = _axis_grids(grid, origin)
    r2 = sum((a - p) ** 2 for a, p in zip(axes, point))
    return np.sqrt(r2) / velocity


def gradient_velocity_traveltime(
    grid: GridContext,
    source: Sequence[float],
    v0: float,
    gradient: float,
    origin: Sequence[float] | None = None,
) -> np.ndarray:
    """
    Analytic traveltime in a medium with ``v = v0 + gradient * z``.

    ``z`` is the coordinate of the last grid axis (depth for a 2D ``(x, z)``
    grid).  With zero gradient this reduces to
    :func:`constant_velocity_traveltime`.
    """

    if gradient == 0.0:
        return constant_velocity_traveltime(grid, source, v0, origin)

    point = _source_point(grid, source)
    axes = _axis_grids(grid, origin)
    depth = axes[-1]
    v_node = v0 + gradient * depth
    v_source = v0 + gradient * point[-1]
    if np.any(v_node <= 0.0) or v_source <= 0.0:
        raise ValueError("velocity must stay positive over the grid.")

    r2 = sum((a - p) ** 2 for a, p in zip(axes, point))
    # arccosh(1 + u), via log1p for small u
    u = gradient**2 * r2 / (2.0 * v_source * v_node)
    return np.log1p(u + np.sqrt(u * (u + 2.0))) / abs(gradient)


def surface_sources(grid: GridContext, n_sources: int) -> np.ndarray:
    """
    Equidistant sources along axis 0, at the origin of the other axes.
    """

    if n_sources < 1:
        raise ValueError("n_sources must be at least 1.")
    length = (grid.size[0] - 1) * grid.sampling[0]
    positions = np.zeros((n_sources, grid.ndim))
    positions[:, 0] = np.linspace(0.0, length, n_sources)
    return positions


def create_shot_scenario(
    size: Tuple[int, ...] = (61, 31),
    sampling: Tuple[float, ...] = (10.0, 10.0),
    n_sources: int = 4,
    v0: float = 1800.0,
    gradient: float = 0.6,
) -> ShotScenario:
    """
    Surface shots over a vertical-gradient model, ready for multi-shot
    stencil construction.
    """

    grid = GridContext(size, sampling)
    sources = surface_sources(grid, n_sources)
    traveltimes = [
        gradient_velocity_traveltime(grid, src, v0=v0, gradient=gradient)
        for src in sources
    ]
    return ShotScenario(
        grid=grid,
        sources=sources,
        traveltimes=traveltimes,
        metadata={"v0": v0, "gradient": gradient},
    )
