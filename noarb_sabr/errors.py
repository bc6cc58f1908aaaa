"""Exceptions raised by the no-arbitrage SABR engine.

Each error also derives from the builtin it specialises, so callers that
catch ``ValueError`` / ``RuntimeError`` keep working.
"""

from __future__ import annotations


class NoArbSabrError(Exception):
    """Base class for all errors raised by this package."""


class OutOfDomainError(NoArbSabrError, ValueError):
    """A model parameter (or a derived quantity such as sigmaI) is out of range."""

    def __init__(self, name: str, value: float, bound: str):
        self.name = name
        self.value = value
        self.bound = bound
        super().__init__(f"{name} ({value!r}) must be {bound}")


class CalibrationFailure(NoArbSabrError, RuntimeError):
    """The model forward could not be matched to the requested forward."""

    def __init__(self, message: str, *, residual: float | None = None, iterations: int = 0):
        self.residual = residual
        self.iterations = iterations
        super().__init__(message)


class IntegrationFailure(NoArbSabrError, RuntimeError):
    """An adaptive integration did not reach its accuracy within its budget."""


class AbsorptionTableError(NoArbSabrError, ValueError):
    """An absorption table is malformed or inconsistent with the grid axes."""
