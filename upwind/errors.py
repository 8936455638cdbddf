from __future__ import annotations


class StencilError(Exception):
    """Base class for errors raised by the upwind stencil package."""


class ConfigurationError(StencilError, ValueError):
    """Grid geometry is outside the supported range (e.g. more than 3 axes)."""


class OutOfMemoryError(StencilError, MemoryError):
    """Stencil arrays could not be allocated for the requested grid."""


class StencilStateError(StencilError, RuntimeError):
    """Operator called on a stencil that is released or has not been built."""
