from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List

import numpy as np

from .grid import GridContext
from .stencil import UpwindStencil

log = logging.getLogger(__name__)


def build_stencils(
    grid: GridContext,
    references: Iterable[np.ndarray],
    max_workers: int | None = None,
) -> List[UpwindStencil]:
    """
    Build one stencil per reference field (e.g. one per shot) in a thread pool.

    Every build reads only its own reference field and the shared immutable
    grid, so builds are independent.  Stencils are returned in input order.
    If any build fails, every stencil of the batch is released and the first
    error is raised.
    """

    fields = list(references)
    if not fields:
        return []

    stencils = [UpwindStencil(grid) for _ in fields]
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [
            executor.submit(stencil.build, field)
            for stencil, field in zip(stencils, fields)
        ]
        errors = [future.exception() for future in futures]

    failed = [exc for exc in errors if exc is not None]
    if failed:
        for stencil in stencils:
            stencil.release()
        raise failed[0]

    log.info("Built %d upwind stencils on %s grid", len(stencils), grid.size)
    return stencils
