from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence, Tuple

import numpy as np

from .errors import ConfigurationError

MAX_DIM = 3


def _ensure_axis_values(name: str, values: Sequence[float]) -> np.ndarray:
    array = np.asarray(values)
    if array.ndim != 1:
        raise ConfigurationError(f"{name} must be 1-D")
    return array


@dataclass(frozen=True)
class GridContext:
    """
    Regular 1-3D grid shared by every stencil built on it.

    Parameters
    ----------
    size : sequence of int
        Number of samples along each axis.  Axis 0 is the fastest varying one
        in the flat raw-index layout, so ``stride[0] == 1``.
    sampling : sequence of float
        Sampling interval along each axis.

    Flat vectors exchanged with the stencil operators hold ``node_count``
    values in raw-index order.  A numpy array of shape ``grid.shape`` in the
    default C order has exactly that layout (axis 0 is the last numpy axis).
    """

    size: Tuple[int, ...]
    sampling: Tuple[float, ...]
    stride: Tuple[int, ...] = field(init=False)
    inv_sampling2: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        size = _ensure_axis_values("size", self.size)
        sampling = _ensure_axis_values("sampling", self.sampling)

        if not 1 <= size.size <= MAX_DIM:
            raise ConfigurationError(
                f"grid must have between 1 and {MAX_DIM} axes, got {size.size}."
            )
        if sampling.size != size.size:
            raise ConfigurationError("size and sampling must have equal length.")
        if not np.issubdtype(size.dtype, np.integer):
            if np.any(np.mod(size, 1) != 0):
                raise ConfigurationError("size entries must be integers.")
        if np.any(size <= 0):
            raise ConfigurationError("size entries must be positive.")
        sampling = sampling.astype(float)
        if not np.all(np.isfinite(sampling)) or np.any(sampling <= 0.0):
            raise ConfigurationError("sampling entries must be positive and finite.")

        n = tuple(int(s) for s in size)
        strides = []
        total = 1
        for extent in n:
            strides.append(total)
            total *= extent

        inv = 1.0 / (sampling * sampling)
        inv.setflags(write=False)

        object.__setattr__(self, "size", n)
        object.__setattr__(self, "sampling", tuple(float(d) for d in sampling))
        object.__setattr__(self, "stride", tuple(strides))
        object.__setattr__(self, "inv_sampling2", inv)

    @property
    def ndim(self) -> int:
        return len(self.size)

    @property
    def node_count(self) -> int:
        return int(np.prod(self.size))

    @property
    def shape(self) -> Tuple[int, ...]:
        """Numpy (C-order) shape of a field laid out in raw-index order."""
        return tuple(reversed(self.size))

    @classmethod
    def from_axes(cls, *axes: Sequence[float]) -> "GridContext":
        """
        Build a grid from regularly sampled coordinate vectors.

        Axes are given fastest first, e.g. ``GridContext.from_axes(model.x,
        model.z)`` for a velocity array shaped ``(len(z), len(x))``.
        """

        size = []
        sampling = []
        for i, axis in enumerate(axes):
            coords = np.asarray(axis, dtype=float)
            if coords.ndim != 1 or coords.size == 0:
                raise ConfigurationError(f"axis {i} must be a non-empty 1-D vector.")
            if coords.size == 1:
                size.append(1)
                sampling.append(1.0)
                continue
            steps = np.diff(coords)
            if not np.allclose(steps, steps[0], rtol=1e-6, atol=0.0):
                raise ConfigurationError(f"axis {i} is not regularly sampled.")
            size.append(coords.size)
            sampling.append(float(steps[0]))
        return cls(tuple(size), tuple(sampling))

    def flatten(self, values, name: str = "vector") -> np.ndarray:
        """
        Return ``values`` as a flat float vector in raw-index order.
        """

        array = np.asarray(values, dtype=float).reshape(-1)
        if array.size != self.node_count:
            raise ValueError(
                f"{name} must hold {self.node_count} values, got {array.size}."
            )
        return array

    def unravel(self, index) -> Tuple[np.ndarray, ...]:
        """Multi-index (one array per axis, axis 0 first) of raw linear indices."""
        index = np.asarray(index)
        return tuple(
            (index // stride) % extent for stride, extent in zip(self.stride, self.size)
        )

    def coordinates(self, origin: Sequence[float] | None = None) -> Tuple[np.ndarray, ...]:
        if origin is None:
            origin = (0.0,) * self.ndim
        if len(origin) != self.ndim:
            raise ValueError("origin must have one entry per axis.")
        return tuple(
            o + d * np.arange(n) for o, d, n in zip(origin, self.sampling, self.size)
        )


def initialize_geometry(
    ndim: int, size: Sequence[int], sampling: Sequence[float]
) -> GridContext:
    """
    Validate the dimension count and return the grid context for it.
    """

    if not 1 <= ndim <= MAX_DIM:
        raise ConfigurationError(f"dim={ndim} outside 1..{MAX_DIM}")
    if len(size) != ndim or len(sampling) != ndim:
        raise ConfigurationError(
            f"size and sampling must both have {ndim} entries."
        )
    return GridContext(tuple(size), tuple(sampling))
