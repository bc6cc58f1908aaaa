"""Numerical constants and parameter bounds of the no-arbitrage SABR model."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class NoArbSabrConstants:
    """Settings shared by the model, the d0 interpolator and the table checks.

    Instances are immutable; derive variants with ``dataclasses.replace``:

        strict = replace(DEFAULT_CONSTANTS, forward_accuracy=1e-7)
    """

    # accuracy when inverting d0 to get phi
    phi_accuracy: float = 1e-10

    # parameter bounds
    beta_min: float = 0.01
    beta_max: float = 0.99
    expiry_time_max: float = 30.0
    sigma_i_min: float = 0.05
    sigma_i_max: float = 1.00
    nu_min: float = 0.0001
    nu_max: float = 0.80
    rho_min: float = -0.9999
    rho_max: float = 0.9999

    # cutoff for phi(d0) / tau; the absorption integrand is below 1e-10
    # beyond this for beta = 0.99
    phi_by_tau_cutoff: float = 110.0

    # number of paths behind the tabulated absorption counts
    nsim: float = 2500000.0

    # absorption probability assumed at beta = 1 when extrapolating beta > 0.9
    tiny_prob: float = 1e-5

    strike_min: float = 0.00001

    # adaptive integration
    gl_accuracy: float = 1e-6
    gl_max_iterations: int = 10000

    # forward calibration
    forward_accuracy: float = 0.00001
    forward_search_step: float = 0.0010
    forward_max_iterations: int = 50

    # integration support: the kernel is cut where p(f) drops below this
    density_threshold: float = 1e-10
    # fmax never exceeds forward * 2^support_max_doublings
    support_max_doublings: int = 40
    # integration segments grow geometrically by this factor away from the forward
    segment_ratio: float = 16.0
    # bisection steps (in log f) locating the support ends
    support_bisections: int = 40

    # tolerance (in binomial standard errors) used by check_absorption_matrix
    absorption_check_sigmas: float = 4.0


DEFAULT_CONSTANTS = NoArbSabrConstants()
