"""Absorption probability d0 = P(F_T = 0) from the tabulated grid.

Interpolation happens in the phi-space of the CEV absorption law,

    d0 = Q(gamma, phi / T),    gamma = 1 / (2 (1 - beta)),

where Q is the regularised upper incomplete gamma function. phi is close to
linear in the grid coordinates, so the table counts are converted node by node
to phi (using the model's own gamma), combined with multilinear weights over
the 32 corners of the enclosing cell, and mapped back to d0 at the actual
expiry.

Outside the tabulated region:

- expiry below the first node (or above the last) uses the edge phi, i.e. phi
  is held flat in tau;
- |rho| beyond the outermost rho nodes extrapolates linearly from the edge cell;
- beta above the last node interpolates towards an anchor at beta = 1 where
  d0 = tiny_prob; beta below the first node is held flat;
- nu below the first node interpolates towards the nu = 0 anchor, the CEV
  closed form phi = 1 / (2 sigmaI^2 (1 - beta)^2).

When a corner is both a nu = 0 and a beta = 1 anchor the nu = 0 value wins.
"""

from __future__ import annotations

import itertools
import logging
from typing import Optional, Tuple

import numpy as np
from scipy.special import gammaincc, gammainccinv, gammaln

from .absorption_table import AbsorptionTable, default_absorption_table
from .constants import DEFAULT_CONSTANTS, NoArbSabrConstants
from .numerics import locate
from .validation import sigma_i as _sigma_i

logger = logging.getLogger(__name__)

# below this d0 is treated as zero absorption
_D0_FLOOR = 1e-14
_NEWTON_STEPS = 8


# ---------------------------------------------------------------- #
# phi <-> d0
# ---------------------------------------------------------------- #
def phi_from_d0(d0: float, gamma: float, tau: float, constants: NoArbSabrConstants = DEFAULT_CONSTANTS) -> float:
    """Invert d0 = Q(gamma, phi / tau) for phi.

    Starts from scipy's inverse and polishes with Newton steps on Q until the
    correction in phi is below ``constants.phi_accuracy``.
    """
    cutoff = constants.phi_by_tau_cutoff
    if d0 < _D0_FLOOR:
        return cutoff * tau
    if d0 >= 1.0:
        return 0.0

    y = float(gammainccinv(gamma, d0))
    log_gamma = float(gammaln(gamma))
    for _ in range(_NEWTON_STEPS):
        if y <= 0.0:
            break
        # dQ/dy = -y^(gamma-1) e^-y / Gamma(gamma)
        slope = -np.exp((gamma - 1.0) * np.log(y) - y - log_gamma)
        if slope == 0.0:
            break
        step = (float(gammaincc(gamma, y)) - d0) / slope
        y = max(y - step, 0.5 * y)
        if abs(step) * tau < constants.phi_accuracy:
            break
    return min(y, cutoff) * tau


def d0_from_phi(phi: float, gamma: float, expiry_time: float, constants: NoArbSabrConstants = DEFAULT_CONSTANTS) -> float:
    """Absorption probability Q(gamma, phi / T); exactly 0 beyond the phi/T cutoff."""
    y = phi / expiry_time
    if y > constants.phi_by_tau_cutoff:
        return 0.0
    return float(gammaincc(gamma, y))


def cev_phi(sigma_i: float, beta: float) -> float:
    """phi of the nu = 0 (pure CEV) limit."""
    return 0.5 / (sigma_i * sigma_i * (1.0 - beta) ** 2)


# ---------------------------------------------------------------- #
# grid coordinates in the extrapolation regimes
# ---------------------------------------------------------------- #
def short_expiry_coordinate(expiry_time: float, tau_grid: np.ndarray) -> Tuple[int, float]:
    """Cell and weight on the expiry axis; phi is flat outside the tabulated expiries."""
    t = min(max(float(expiry_time), tau_grid[0]), tau_grid[-1])
    return locate(tau_grid, t)


def high_correlation_coordinate(rho: float, rho_grid: np.ndarray) -> Tuple[int, float]:
    """Cell and weight on the rho axis; linear extrapolation beyond the edge nodes."""
    return locate(rho_grid, rho)


def skew_tail_phi(gamma: float, tau: float, constants: NoArbSabrConstants = DEFAULT_CONSTANTS) -> float:
    """phi at the beta = 1 anchor, where the absorption probability is tiny_prob."""
    return phi_from_d0(constants.tiny_prob, gamma, tau, constants)


def _beta_coordinate(beta: float, beta_grid: np.ndarray) -> Tuple[int, float]:
    # nodes: beta_grid + [1.0]; index len(beta_grid) is the anchor
    nodes = np.append(beta_grid, 1.0)
    return locate(nodes, max(float(beta), beta_grid[0]))


def _nu_coordinate(nu: float, nu_grid: np.ndarray) -> Tuple[int, float]:
    # nodes: [0.0] + nu_grid; index 0 is the anchor
    nodes = np.insert(nu_grid, 0, 0.0)
    return locate(nodes, min(float(nu), nu_grid[-1]))


class D0Interpolator:
    """Absorption probability for one parameter set.

    Parameters
    ----------
    forward, expiry_time, alpha, beta, nu, rho
        SABR inputs; they are assumed to have been validated already.
    table
        Absorption table; defaults to the process-wide table.
    """

    def __init__(
        self,
        forward: float,
        expiry_time: float,
        alpha: float,
        beta: float,
        nu: float,
        rho: float,
        *,
        table: Optional[AbsorptionTable] = None,
        constants: NoArbSabrConstants = DEFAULT_CONSTANTS,
    ):
        self.forward = float(forward)
        self.expiry_time = float(expiry_time)
        self.alpha = float(alpha)
        self.beta = float(beta)
        self.nu = float(nu)
        self.rho = float(rho)
        self.constants = constants
        self.table = table if table is not None else default_absorption_table()
        self.sigma_i = _sigma_i(self.forward, self.alpha, self.beta)
        self.gamma = 0.5 / (1.0 - self.beta)

    def phi(self, d0: float, tau: float) -> float:
        return phi_from_d0(d0, self.gamma, tau, self.constants)

    def d0(self, phi: float) -> float:
        return d0_from_phi(phi, self.gamma, self.expiry_time, self.constants)

    def interpolated_phi(self) -> float:
        """phi at the model's parameters, floored at zero."""
        tbl = self.table
        it, wt = short_expiry_coordinate(self.expiry_time, tbl.tau)
        sig = min(max(self.sigma_i, tbl.sigma_i[0]), tbl.sigma_i[-1])
        js, ws = locate(tbl.sigma_i, sig)
        ir, wr = high_correlation_coordinate(self.rho, tbl.rho)
        inu, wn = _nu_coordinate(self.nu, tbl.nu)
        ib, wb = _beta_coordinate(self.beta, tbl.beta)

        beta_anchor = tbl.beta.size
        phi_cev = cev_phi(self.sigma_i, self.beta)

        phi = 0.0
        for dt, ds, dr, dn, db in itertools.product((0, 1), repeat=5):
            weight = (
                (wt if dt else 1.0 - wt)
                * (ws if ds else 1.0 - ws)
                * (wr if dr else 1.0 - wr)
                * (wn if dn else 1.0 - wn)
                * (wb if db else 1.0 - wb)
            )
            if weight == 0.0:
                continue
            k_tau = it + dt
            k_nu = inu + dn
            k_beta = ib + db
            if k_nu == 0:
                corner = phi_cev
            elif k_beta == beta_anchor:
                corner = skew_tail_phi(self.gamma, tbl.tau[k_tau], self.constants)
            else:
                d0 = tbl.probability((k_tau, js + ds, ir + dr, k_nu - 1, k_beta))
                corner = self.phi(d0, tbl.tau[k_tau])
            phi += weight * corner
        return max(phi, 0.0)

    def __call__(self) -> float:
        phi = self.interpolated_phi()
        d0 = self.d0(phi)
        logger.debug(
            "d0 interpolation: sigmaI=%.6g beta=%.4g nu=%.4g rho=%.4g T=%.4g -> phi=%.6g d0=%.6g",
            self.sigma_i, self.beta, self.nu, self.rho, self.expiry_time, phi, d0,
        )
        return d0
