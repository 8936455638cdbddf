from __future__ import annotations

import logging
from typing import Optional

import numpy as np
from scipy.sparse import csr_matrix
from scipy.sparse.linalg import spsolve_triangular

from .errors import OutOfMemoryError, StencilStateError
from .grid import GridContext

log = logging.getLogger(__name__)


def _allocate(n: int, ndim: int):
    """Per-position arrays: causal bits, direction bits, weights, neighbours."""
    return (
        np.zeros(n, dtype=np.uint8),
        np.zeros(n, dtype=np.uint8),
        np.zeros((n, ndim + 1), dtype=float),
        np.full((n, ndim), -1, dtype=np.int64),
    )


def _causal_system(order: np.ndarray, weight: np.ndarray, neighbors: np.ndarray) -> csr_matrix:
    """
    Lower-triangular matrix of the stencil with rows and columns in causal
    order.  Degenerate rows are identity rows.
    """

    n, ndim = neighbors.shape
    den = weight[:, ndim]
    positions = np.arange(n)
    rank = np.empty_like(order)
    rank[order] = positions

    rows = [positions]
    cols = [positions]
    vals = [np.where(den == 0.0, 1.0, den)]
    for i in range(ndim):
        k = (neighbors[:, i] >= 0) & (den != 0.0)
        rows.append(positions[k])
        cols.append(rank[neighbors[k, i]])
        vals.append(-weight[k, i])

    lower = csr_matrix(
        (np.concatenate(vals), (np.concatenate(rows), np.concatenate(cols))),
        shape=(n, n),
    )
    lower.sort_indices()
    return lower


class UpwindStencil:
    """
    Causal upwind stencil derived from one reference field (e.g. traveltime).

    The stencil approximates the directional derivative along the gradient of
    the reference field.  Nodes are visited in ascending reference order, and
    along every axis the neighbour with the smaller reference value is used,
    provided it is strictly smaller than the node's own value.  The resulting
    system is lower triangular in causal order, which gives four matched
    operators:

    ``forw`` / ``adj``
        weighted one-sided difference and its transpose;
    ``solve`` / ``inverse``
        forward substitution of that system and its transpose.

    Per-node arrays are stored by position in the causal order, not by raw
    node index; ``order[k]`` is the raw index visited at position ``k``.
    ``causal_mask`` and ``direction_mask`` hold one bit per axis (bit ``i``
    for axis ``i``); a set direction bit means the plus neighbour was chosen.
    ``weight[k, :ndim]`` are the per-axis weights and ``weight[k, ndim]`` is
    their sum, zero at source/degenerate nodes.

    Instances are context managers; leaving the block releases the arrays.
    """

    def __init__(self, grid: GridContext) -> None:
        self.grid = grid
        n, ndim = grid.node_count, grid.ndim
        try:
            self.order = np.arange(n, dtype=np.int64)
            (
                self.causal_mask,
                self.direction_mask,
                self.weight,
                self._neighbors,
            ) = _allocate(n, ndim)
        except MemoryError as exc:
            raise OutOfMemoryError(
                f"cannot allocate stencil arrays for {n} nodes in {ndim}-D."
            ) from exc
        self._lower: Optional[csr_matrix] = None
        self._upper: Optional[csr_matrix] = None
        self._built = False
        self._released = False

    @classmethod
    def from_reference(cls, grid: GridContext, reference) -> "UpwindStencil":
        return cls(grid).build(reference)

    def __enter__(self) -> "UpwindStencil":
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "released" if self._released else ("built" if self._built else "empty")
        return f"UpwindStencil(size={self.grid.size}, {state})"

    @property
    def built(self) -> bool:
        return self._built and not self._released

    @property
    def released(self) -> bool:
        return self._released

    @property
    def diagonal(self) -> np.ndarray:
        self._check_ready()
        return self.weight[:, self.grid.ndim]

    @property
    def degenerate(self) -> np.ndarray:
        """Boolean mask over causal positions with zero diagonal weight."""
        return self.diagonal == 0.0

    @property
    def neighbors(self) -> np.ndarray:
        """Raw index of the causal neighbour per position and axis, -1 if none."""
        self._check_ready()
        view = self._neighbors.view()
        view.setflags(write=False)
        return view

    @property
    def rank(self) -> np.ndarray:
        """Position of every raw node index in the causal order."""
        self._check_ready()
        rank = np.empty_like(self.order)
        rank[self.order] = np.arange(self.order.size)
        return rank

    def build(self, reference) -> "UpwindStencil":
        """
        Sort the grid by ``reference`` and compute the upwind stencil.

        ``reference`` is only read during this call.  Ties keep raw-index
        order.  Neighbours with a value equal to the node's own value are not
        causal, so flat plateaus contribute no weight.
        """

        self._check_alive()
        grid = self.grid
        t0 = grid.flatten(reference, "reference")

        order = np.argsort(t0, kind="stable")
        t = t0[order]
        index = grid.unravel(order)

        n, ndim = grid.node_count, grid.ndim
        try:
            causal, direction, weight, neighbors = _allocate(n, ndim)
        except MemoryError as exc:
            raise OutOfMemoryError(
                f"cannot allocate stencil scratch arrays for {n} nodes in {ndim}-D."
            ) from exc

        for i in range(ndim):
            extent = grid.size[i]
            if extent == 1:
                # no neighbour exists along a singleton axis
                continue
            bit = np.uint8(1 << i)
            at_min = index[i] == 0
            at_max = index[i] == extent - 1
            minus = order - grid.stride[i]
            plus = order + grid.stride[i]

            t_minus = t0[np.where(at_min, plus, minus)]
            t_plus = t0[np.where(at_max, minus, plus)]
            use_plus = at_min | (~at_max & (t_plus < t_minus))

            selected = np.where(use_plus, plus, minus)
            t2 = t0[selected]
            is_causal = t2 < t

            direction[use_plus] |= bit
            causal[is_causal] |= bit
            weight[is_causal, i] = (t[is_causal] - t2[is_causal]) * grid.inv_sampling2[i]
            weight[:, ndim] += weight[:, i]
            neighbors[is_causal, i] = selected[is_causal]

        try:
            lower = _causal_system(order, weight, neighbors)
            upper = lower.T.tocsr()
        except MemoryError as exc:
            raise OutOfMemoryError(
                f"cannot assemble the causal system for {n} nodes in {ndim}-D."
            ) from exc

        self.order[:] = order
        self.causal_mask[:] = causal
        self.direction_mask[:] = direction
        self.weight[:] = weight
        self._neighbors[:] = neighbors
        self._lower = lower
        self._upper = upper
        self._built = True

        log.debug(
            "Built upwind stencil on %s grid: %d nodes, %d degenerate",
            "x".join(str(s) for s in grid.size),
            n,
            int(np.count_nonzero(weight[:, ndim] == 0.0)),
        )
        return self

    def release(self) -> None:
        """Drop the stencil arrays; calling it again does nothing."""
        if self._released:
            return
        empty = np.empty(0)
        self.order = empty.astype(np.int64)
        self.causal_mask = empty.astype(np.uint8)
        self.direction_mask = empty.astype(np.uint8)
        self.weight = empty.reshape(0, self.grid.ndim + 1)
        self._neighbors = empty.astype(np.int64).reshape(0, self.grid.ndim)
        self._lower = None
        self._upper = None
        self._released = True
        self._built = False
        log.debug("Released upwind stencil on %s grid", self.grid.size)

    def forw(self, x, out: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Weighted upwind difference ``rhs[j] = sum_i w_i * (x[j] - x[nb_i])``.
        """

        self._check_ready()
        x = self.grid.flatten(x, "x")
        result, flat = self._output(out)

        acc = np.zeros(self.order.size)
        values = x[self.order]
        for i in range(self.grid.ndim):
            k = self._neighbors[:, i] >= 0
            acc[k] += self.weight[k, i] * (values[k] - x[self._neighbors[k, i]])

        flat[self.order] = acc
        return result

    def adj(self, rhs, out: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Transpose of :meth:`forw`.
        """

        self._check_ready()
        rhs = self.grid.flatten(rhs, "rhs")
        values = rhs[self.order]
        result, flat = self._output(out)
        flat.fill(0.0)

        for i in range(self.grid.ndim):
            k = self._neighbors[:, i] >= 0
            w = self.weight[k, i] * values[k]
            flat[self.order[k]] += w
            np.subtract.at(flat, self._neighbors[k, i], w)
        return result

    def solve(
        self, rhs, x0=None, out: Optional[np.ndarray] = None
    ) -> np.ndarray:
        """
        Forward substitution in causal order.

        Every non-degenerate node gets
        ``x[j] = (rhs[j] + sum_i w_i * x[nb_i]) / diagonal``; degenerate nodes
        (sources) take ``x0[j]``, or zero when no ``x0`` is given.
        """

        self._check_ready()
        b = self.grid.flatten(rhs, "rhs")[self.order]
        self._apply_boundary(b, x0)
        y = spsolve_triangular(self._lower, b, lower=True, overwrite_b=True)

        result, flat = self._output(out)
        flat[self.order] = y
        return result

    def inverse(
        self, x, x0=None, out: Optional[np.ndarray] = None
    ) -> np.ndarray:
        """
        Transpose of :meth:`solve`: backward substitution in reverse causal
        order.  Degenerate nodes are overwritten with ``x0[j]`` (or zero).
        """

        self._check_ready()
        b = self.grid.flatten(x, "x")[self.order]
        # degenerate rows have no neighbours, so their values never feed back
        v = spsolve_triangular(self._upper, b, lower=False, overwrite_b=True)
        self._apply_boundary(v, x0)

        result, flat = self._output(out)
        flat[self.order] = v
        return result

    def _apply_boundary(self, values: np.ndarray, x0) -> None:
        """Set degenerate positions of a causally ordered vector to ``x0``."""
        degenerate = self.weight[:, self.grid.ndim] == 0.0
        if x0 is None:
            values[degenerate] = 0.0
        else:
            start = self.grid.flatten(x0, "x0")
            values[degenerate] = start[self.order[degenerate]]

    def _check_alive(self) -> None:
        if self._released:
            raise StencilStateError("stencil has been released.")

    def _check_ready(self) -> None:
        self._check_alive()
        if not self._built:
            raise StencilStateError("stencil has no reference field; call build() first.")

    def _output(self, out: Optional[np.ndarray]):
        n = self.grid.node_count
        if out is None:
            result = np.zeros(n)
            return result, result
        if not isinstance(out, np.ndarray) or out.size != n:
            raise ValueError(f"out must be an ndarray holding {n} values.")
        if out.dtype != np.float64 or not out.flags.c_contiguous:
            raise ValueError("out must be a C-contiguous float64 array.")
        return out, out.reshape(-1)
