"""No-arbitrage SABR package exports."""

import logging

from .absorption_table import (
    AbsorptionMatrixReport,
    AbsorptionTable,
    AbsorptionViolation,
    build_effective_cev_table,
    check_absorption_matrix,
    default_absorption_table,
    load_absorption_table,
    save_absorption_table,
)
from .base import PricingModel
from .constants import DEFAULT_CONSTANTS, NoArbSabrConstants
from .d0_interpolator import D0Interpolator
from .errors import (
    AbsorptionTableError,
    CalibrationFailure,
    IntegrationFailure,
    NoArbSabrError,
    OutOfDomainError,
)
from .implied_vol import black_price, implied_black_vol
from .integrators import GaussLobattoIntegrator, Integrator, QuadIntegrator
from .model import NoArbSabrModel
from .simulation import absorbed_counts, simulate_absorption_table
from .smile_section import NoArbSabrSmileSection
from .validation import check_parameters

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "NoArbSabrModel",
    "NoArbSabrSmileSection",
    "PricingModel",
    "D0Interpolator",
    "NoArbSabrConstants",
    "DEFAULT_CONSTANTS",
    "Integrator",
    "QuadIntegrator",
    "GaussLobattoIntegrator",
    "AbsorptionTable",
    "AbsorptionViolation",
    "AbsorptionMatrixReport",
    "build_effective_cev_table",
    "check_absorption_matrix",
    "default_absorption_table",
    "load_absorption_table",
    "save_absorption_table",
    "simulate_absorption_table",
    "absorbed_counts",
    "check_parameters",
    "black_price",
    "implied_black_vol",
    "NoArbSabrError",
    "OutOfDomainError",
    "CalibrationFailure",
    "IntegrationFailure",
    "AbsorptionTableError",
]
