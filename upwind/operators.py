from __future__ import annotations

from typing import Callable, Tuple

import numpy as np
from scipy.sparse import csr_matrix
from scipy.sparse.linalg import LinearOperator

from .stencil import UpwindStencil


def as_linear_operator(stencil: UpwindStencil, kind: str = "forward") -> LinearOperator:
    """
    Expose a stencil as ``scipy.sparse.linalg.LinearOperator``.

    Parameters
    ----------
    stencil:
        Built stencil.
    kind:
        ``"forward"`` maps ``matvec``/``rmatvec`` to ``forw``/``adj``;
        ``"solve"`` maps them to ``solve``/``inverse`` (zero boundary values).

    The operator acts on flat raw-index vectors of length ``node_count`` and
    can be handed to ``scipy.sparse.linalg.lsqr`` or similar solvers.
    """

    if kind == "forward":
        mv, rmv = stencil.forw, stencil.adj
    elif kind == "solve":
        mv, rmv = stencil.solve, stencil.inverse
    else:
        raise ValueError(f"kind must be 'forward' or 'solve', got {kind!r}.")

    n = stencil.grid.node_count

    def matvec(x):
        return mv(np.ravel(x))

    def rmatvec(y):
        return rmv(np.ravel(y))

    return LinearOperator(shape=(n, n), matvec=matvec, rmatvec=rmatvec, dtype=np.float64)


def to_sparse(stencil: UpwindStencil) -> csr_matrix:
    """
    Explicit sparse matrix of :meth:`UpwindStencil.forw`.

    Row ``j`` holds the diagonal weight on column ``j`` and ``-w_i`` on the
    causal neighbour of every contributing axis.  Degenerate rows are empty.
    """

    order = stencil.order
    diagonal = stencil.diagonal
    neighbors = stencil.neighbors
    n = stencil.grid.node_count

    nonzero = diagonal != 0.0
    rows = [order[nonzero]]
    cols = [order[nonzero]]
    vals = [diagonal[nonzero]]
    for i in range(stencil.grid.ndim):
        k = neighbors[:, i] >= 0
        rows.append(order[k])
        cols.append(neighbors[k, i])
        vals.append(-stencil.weight[k, i])

    return csr_matrix(
        (np.concatenate(vals), (np.concatenate(rows), np.concatenate(cols))),
        shape=(n, n),
    )


def dot_test(
    forward: Callable[[np.ndarray], np.ndarray],
    adjoint: Callable[[np.ndarray], np.ndarray],
    n: int,
    rng: np.random.Generator | None = None,
) -> Tuple[float, float]:
    """
    Return ``(<forward(x), y>, <x, adjoint(y)>)`` for random ``x`` and ``y``.

    The two numbers agree to rounding when ``adjoint`` is the transpose of
    ``forward``.
    """

    if rng is None:
        rng = np.random.default_rng()
    x = rng.standard_normal(n)
    y = rng.standard_normal(n)
    lhs = float(np.dot(np.ravel(forward(x)), y))
    rhs = float(np.dot(x, np.ravel(adjoint(y))))
    return lhs, rhs
