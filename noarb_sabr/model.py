"""No-arbitrage SABR model (Doust 2012).

The terminal forward has an atom at zero of mass P (the absorption
probability, read from the tabulated grid) and on f > 0 the density

    (1 - P) * p(f; F) / N(F),

where p is the leading-order SABR kernel

    p(f; F) = J(z)^(-3/2) / (alpha f^beta sqrt(2 pi T)) * exp(-x(z)^2 / (2 T)),
    z = (F^(1-beta) - f^(1-beta)) / (alpha (1 - beta)),

and N(F) = integral of p over the support [fmin(F), fmax(F)], the range where
p(f; F) exceeds the density threshold. The internal forward F is calibrated so
that the model's mean (1 - P) M(F) / N(F), M the first moment of p, reproduces
the requested forward. Prices are integrals of the payoff against the
normalised density, so they are arbitrage free by construction.

Construction is eager and does all the work: validation, absorption
probability and forward calibration (with its support). A constructed model is
immutable and safe to share between threads.
"""

from __future__ import annotations

import logging
import math
from typing import Callable, List, Optional, Tuple

import numpy as np

from .absorption_table import AbsorptionTable, check_absorption_matrix
from .base import PricingModel
from .constants import DEFAULT_CONSTANTS, NoArbSabrConstants
from .d0_interpolator import D0Interpolator
from .errors import CalibrationFailure, IntegrationFailure, OutOfDomainError
from .integrators import Integrator, QuadIntegrator
from .numerics import bracket_root, brent_root, sabr_j_and_x
from .validation import check_parameters

logger = logging.getLogger(__name__)

_TINY = np.finfo(float).tiny

Support = Tuple[float, float]


class NoArbSabrModel(PricingModel):
    """
    Arbitrage-free SABR terminal distribution for one expiry.

    Parameters
    ----------
    expiry_time : float
        Time to expiry in years, in (0, 30].
    forward : float
        Forward the model must reproduce as its mean.
    alpha, beta, nu, rho : float
        SABR parameters.
    constants : NoArbSabrConstants, optional
        Accuracies and bounds.
    integrator : Integrator, optional
        Defaults to ``QuadIntegrator(constants.gl_accuracy, constants.gl_max_iterations)``.
    table : AbsorptionTable, optional
        Defaults to the process-wide absorption table.

    Raises
    ------
    OutOfDomainError, CalibrationFailure, IntegrationFailure
    """

    check_absorption_matrix = staticmethod(check_absorption_matrix)

    def __init__(self,
                 expiry_time: float,
                 forward: float,
                 alpha: float,
                 beta: float,
                 nu: float,
                 rho: float,
                 *,
                 constants: NoArbSabrConstants = DEFAULT_CONSTANTS,
                 integrator: Optional[Integrator] = None,
                 table: Optional[AbsorptionTable] = None):
        self._constants = constants
        self._sigma_i = check_parameters(expiry_time, forward, alpha, beta, nu, rho, constants)
        self._expiry_time = float(expiry_time)
        self._external_forward = float(forward)
        self._alpha = float(alpha)
        self._beta = float(beta)
        self._nu = float(nu)
        self._rho = float(rho)
        self._integrator = integrator if integrator is not None else QuadIntegrator(
            constants.gl_accuracy, constants.gl_max_iterations
        )
        self._sqrt_2pi_t = math.sqrt(2.0 * math.pi * self._expiry_time)

        self._abs_prob = D0Interpolator(
            forward, expiry_time, alpha, beta, nu, rho, table=table, constants=constants
        )()

        self._forward, self._normalization, self._mean, (self._fmin, self._fmax) = self._calibrate_forward()

        logger.debug(
            "NoArbSabrModel ready: %r absProb=%.6g support=[%.3g, %.3g] internal forward=%.8g N=%.8g",
            self, self._abs_prob, self._fmin, self._fmax, self._forward, self._normalization,
        )

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(expiry_time={self._expiry_time:g}, forward={self._external_forward:g}, "
            f"alpha={self._alpha:g}, beta={self._beta:g}, nu={self._nu:g}, rho={self._rho:g})"
        )

    # ---- accessors ---- #
    @property
    def forward(self) -> float:
        """The requested (external) forward."""
        return self._external_forward

    @property
    def expiry_time(self) -> float:
        return self._expiry_time

    @property
    def alpha(self) -> float:
        return self._alpha

    @property
    def beta(self) -> float:
        return self._beta

    @property
    def nu(self) -> float:
        return self._nu

    @property
    def rho(self) -> float:
        return self._rho

    @property
    def sigma_i(self) -> float:
        return self._sigma_i

    @property
    def absorption_probability(self) -> float:
        return self._abs_prob

    @property
    def internal_forward(self) -> float:
        """Kernel forward after calibration (differs from `forward` in general)."""
        return self._forward

    @property
    def mean(self) -> float:
        """Calibrated mean of the terminal forward; within forward_accuracy of `forward`."""
        return self._mean

    @property
    def support(self) -> Support:
        return self._fmin, self._fmax

    @property
    def normalization(self) -> float:
        return self._normalization

    @property
    def constants(self) -> NoArbSabrConstants:
        return self._constants

    # ---- kernel ---- #
    def _p(self, f, forward: float, support: Optional[Support] = None):
        """Unnormalised kernel p(f; forward); vectorised over f, zero outside `support` when given."""
        f_arr = np.asarray(f, dtype=float)
        one_m_beta = 1.0 - self._beta
        fs = np.maximum(f_arr, _TINY)
        z = (forward ** one_m_beta - fs ** one_m_beta) / (self._alpha * one_m_beta)
        j, x = sabr_j_and_x(z, self._rho, self._nu)
        res = j ** -1.5 / (self._alpha * fs ** self._beta * self._sqrt_2pi_t) * np.exp(
            -x * x / (2.0 * self._expiry_time)
        )
        mask = f_arr > 0.0
        if support is not None:
            mask = mask & (f_arr >= support[0]) & (f_arr <= support[1])
        res = np.where(mask, res, 0.0)
        return float(res) if res.ndim == 0 else res

    def _find_support(self, forward: float) -> Support:
        """[fmin, fmax] around `forward` outside of which p(f; forward) is below density_threshold.

        fmax doubles (at most support_max_doublings times) and fmin halves (down
        to strike_min) until the kernel drops below the threshold; the crossing
        is then refined by bisection in log f.
        """
        c = self._constants
        threshold = c.density_threshold

        def above(f: float) -> bool:
            return self._p(f, forward) > threshold

        fmax = forward
        doublings = 0
        while above(fmax) and doublings < c.support_max_doublings:
            fmax *= 2.0
            doublings += 1
        if above(fmax):
            logger.debug("upper support capped at %.6g (%d doublings of %.6g)", fmax, doublings, forward)
        elif doublings:
            fmax = self._bisect_log(above, 0.5 * fmax, fmax)

        fmin = forward
        halvings = 0
        while fmin > c.strike_min and above(fmin):
            fmin *= 0.5
            halvings += 1
        if halvings and fmin > c.strike_min:
            fmin = self._bisect_log(above, 2.0 * fmin, fmin)
        fmin = max(fmin, c.strike_min)

        return fmin, max(fmax, fmin)

    def _bisect_log(self, above: Callable[[float], bool], inside: float, outside: float) -> float:
        """Geometric bisection between a point where the kernel is above threshold and one where it is not."""
        for _ in range(self._constants.support_bisections):
            mid = math.sqrt(inside * outside)
            if above(mid):
                inside = mid
            else:
                outside = mid
        return outside

    # ---- integration ---- #
    def _segments(self, lo: float, hi: float, centre: float) -> List[float]:
        """Edges of [lo, hi] split at centre * segment_ratio**k."""
        ratio = self._constants.segment_ratio
        edges = [lo, hi]
        e = centre
        while e < hi:
            if e > lo:
                edges.append(e)
            e *= ratio
        e = centre / ratio
        while e > lo:
            if e < hi:
                edges.append(e)
            e /= ratio
        return sorted(edges)

    def _integrate(self, fn: Callable, lo: float, hi: float, centre: float) -> float:
        """Integrate over [lo, hi] segment by segment; segments widen geometrically away from `centre`."""
        if hi <= lo:
            return 0.0
        edges = self._segments(lo, hi, centre)
        return sum(self._integrator.integrate(fn, a, b) for a, b in zip(edges[:-1], edges[1:]))

    def _call_integral(self, strike: float, forward: float, support: Support) -> float:
        fmin, fmax = support
        return self._integrate(
            lambda f: (f - strike) * self._p(f, forward, support), max(strike, fmin), fmax, forward
        )

    def _put_integral(self, strike: float, forward: float, support: Support) -> float:
        fmin, fmax = support
        return self._integrate(
            lambda f: (strike - f) * self._p(f, forward, support), fmin, min(strike, fmax), forward
        )

    def _mass_above(self, strike: float, forward: float, support: Support) -> float:
        fmin, fmax = support
        return self._integrate(lambda f: self._p(f, forward, support), max(strike, fmin), fmax, forward)

    # ---- calibration ---- #
    def _calibrate_forward(self) -> Tuple[float, float, float, Support]:
        """Solve (1 - P) M(F) / N(F) = forward for the internal forward F.

        Each candidate F gets its own support, so the kernel can sit far from
        the requested forward when absorption is heavy. The search variable is x
        with F = x^2 + strike_min, which keeps F above strike_min. It starts at
        forward / (1 - P) (capped at 16 forward). Bounded Newton steps with a
        finite-difference slope come first; a bracketed Brent search takes over
        if Newton stalls.

        Returns (F, N(F), calibrated mean, support).
        """
        c = self._constants
        target = self._external_forward
        survival = 1.0 - self._abs_prob
        cache = {}

        def error(x: float) -> float:
            x = float(x)
            if x not in cache:
                fwd = x * x + c.strike_min
                support = self._find_support(fwd)
                norm = self._mass_above(0.0, fwd, support)
                if not norm > 0.0:
                    raise IntegrationFailure(f"kernel mass is {norm!r} for internal forward {fwd:.6g}")
                mean = survival * self._call_integral(0.0, fwd, support) / norm
                cache[x] = (mean - target, fwd, norm, mean, support)
            return cache[x][0]

        h = c.forward_search_step
        start = min(target / survival, 16.0 * target)
        x = math.sqrt(max(start - c.strike_min, 0.5 * start))
        err = error(x)
        iterations = 0
        while abs(err) >= c.forward_accuracy and iterations < c.forward_max_iterations:
            slope = (error(x + h) - err) / h
            if not math.isfinite(slope) or slope <= 0.0:
                logger.debug("forward search: non-increasing slope %.3g at x=%.6g", slope, x)
                break
            max_step = max(10.0 * h, 0.5 * x)
            step = min(max(-err / slope, -max_step), max_step)
            x = x + step if x + step > 0.0 else 0.5 * x
            err = error(x)
            iterations += 1

        if abs(err) >= c.forward_accuracy:
            logger.debug(
                "forward search: Newton stopped at residual %.3g after %d steps, bracketing", err, iterations
            )
            try:
                a, b = bracket_root(error, x, h, lower=0.0)
                x = brent_root(error, a, b, xtol=1e-3 * c.forward_accuracy)
            except IntegrationFailure:
                raise
            except RuntimeError as exc:
                raise CalibrationFailure(
                    f"forward calibration failed for {self!r}: {exc}", residual=err, iterations=iterations
                ) from exc
            err = error(x)
            if abs(err) >= c.forward_accuracy:
                raise CalibrationFailure(
                    f"forward calibration for {self!r} ended with residual {err:.3g}",
                    residual=err,
                    iterations=iterations,
                )

        _, fwd, norm, mean, support = cache[float(x)]
        logger.debug("forward calibrated: F=%.8g residual=%.3g steps=%d", fwd, err, iterations)
        return fwd, norm, mean, support

    # ---- pricing ---- #
    def _check_strike(self, strike: float) -> float:
        strike = float(strike)
        if not math.isfinite(strike) or strike < 0.0:
            raise OutOfDomainError("strike", strike, "finite and >= 0")
        return max(strike, self._constants.strike_min)

    def _option_price(self, strike: float, is_call: bool) -> float:
        k = self._check_strike(strike)
        scale = (1.0 - self._abs_prob) / self._normalization
        if is_call:
            return scale * self._call_integral(k, self._forward, self.support)
        return scale * self._put_integral(k, self._forward, self.support) + self._abs_prob * k

    def _digital_price(self, strike: float, is_call: bool) -> float:
        k = self._check_strike(strike)
        mass = self._mass_above(k, self._forward, self.support)
        call = min(max((1.0 - self._abs_prob) * mass / self._normalization, 0.0), 1.0)
        return call if is_call else 1.0 - call

    def option_price(self, strike, is_call: bool = True):
        """Undiscounted call (or put) price; accepts a scalar or an array of strikes.

        Strikes in [0, strike_min) are priced at strike_min, so a zero-strike call
        is mean - (1 - P) * strike_min. The put includes the absorbed mass, which
        pays K.
        """
        return self._map_strikes(strike, lambda k: self._option_price(k, is_call))

    def digital_option_price(self, strike, is_call: bool = True):
        """Undiscounted digital paying 1 if the forward ends above (call) or below (put) the strike."""
        return self._map_strikes(strike, lambda k: self._digital_price(k, is_call))

    def density(self, strike):
        """Continuous part of the terminal density, (1 - P) p(K) / N; zero outside the support."""
        return self._p(strike, self._forward, self.support) * ((1.0 - self._abs_prob) / self._normalization)
