"""Parameter-domain checks for the no-arbitrage SABR model."""

from __future__ import annotations

import math

from .constants import DEFAULT_CONSTANTS, NoArbSabrConstants
from .errors import OutOfDomainError


def _require_positive(name: str, value: float) -> float:
    value = float(value)
    if not math.isfinite(value) or value <= 0.0:
        raise OutOfDomainError(name, value, "finite and > 0")
    return value


def _require_within(name: str, value: float, low: float, high: float) -> float:
    value = float(value)
    if not math.isfinite(value) or value < low or value > high:
        raise OutOfDomainError(name, value, f"in [{low}, {high}]")
    return value


def sigma_i(forward: float, alpha: float, beta: float) -> float:
    """Normalised volatility alpha * forward^(beta - 1)."""
    return float(alpha) * float(forward) ** (float(beta) - 1.0)


def check_parameters(
    expiry_time: float,
    forward: float,
    alpha: float,
    beta: float,
    nu: float,
    rho: float,
    constants: NoArbSabrConstants = DEFAULT_CONSTANTS,
) -> float:
    """Validate the model inputs and return the derived sigmaI.

    Raises
    ------
    OutOfDomainError
        Naming the first parameter found outside its admissible range.
    """
    c = constants
    forward = _require_positive("forward", forward)
    alpha = _require_positive("alpha", alpha)

    expiry_time = float(expiry_time)
    if not math.isfinite(expiry_time) or expiry_time <= 0.0 or expiry_time > c.expiry_time_max:
        raise OutOfDomainError("expiry_time", expiry_time, f"in (0.0, {c.expiry_time_max}]")

    beta = _require_within("beta", beta, c.beta_min, c.beta_max)
    _require_within("nu", nu, c.nu_min, c.nu_max)
    _require_within("rho", rho, c.rho_min, c.rho_max)

    s = sigma_i(forward, alpha, beta)
    if not (c.sigma_i_min <= s <= c.sigma_i_max):
        raise OutOfDomainError(
            "sigmaI = alpha * forward^(beta-1)", s, f"in [{c.sigma_i_min}, {c.sigma_i_max}]"
        )
    return s
