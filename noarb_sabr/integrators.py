"""Adaptive 1-D integrators used to normalise and price against the SABR density.

All integrators share one contract: they are configured with an absolute
accuracy and an evaluation/iteration budget and expose

    integrate(fn, lo, hi) -> float

raising :class:`~noarb_sabr.errors.IntegrationFailure` instead of returning a
result that missed the accuracy target.
"""

from __future__ import annotations

import math
from typing import Callable, Optional

import numpy as np
from scipy.integrate import quad

from .errors import IntegrationFailure


class Integrator:
    """Base class; subclasses implement :meth:`integrate`."""

    def __init__(self, accuracy: float = 1e-6, max_iterations: int = 10000):
        if not accuracy > 0.0:
            raise ValueError("accuracy must be positive")
        if int(max_iterations) <= 0:
            raise ValueError("max_iterations must be positive")
        self.accuracy = float(accuracy)
        self.max_iterations = int(max_iterations)

    def integrate(self, fn: Callable, lo: float, hi: float) -> float:
        raise NotImplementedError

    def __call__(self, fn: Callable, lo: float, hi: float) -> float:
        return self.integrate(fn, lo, hi)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(accuracy={self.accuracy:g}, max_iterations={self.max_iterations})"


class QuadIntegrator(Integrator):
    """QUADPACK (scipy.integrate.quad) adaptive Gauss–Kronrod integration.

    `max_iterations` bounds the number of subintervals. A result is accepted
    when its error estimate is within max(accuracy, rel_accuracy * |result|),
    even if QUADPACK also reports roundoff or the subdivision limit.
    """

    def __init__(self, accuracy: float = 1e-6, max_iterations: int = 10000, rel_accuracy: float = 1e-8):
        super().__init__(accuracy, max_iterations)
        if not rel_accuracy >= 0.0:
            raise ValueError("rel_accuracy must be >= 0")
        self.rel_accuracy = float(rel_accuracy)

    def integrate(self, fn: Callable, lo: float, hi: float) -> float:
        lo = float(lo)
        hi = float(hi)
        if hi == lo:
            return 0.0
        y, abserr, _info, *message = quad(
            fn,
            lo,
            hi,
            epsabs=self.accuracy,
            epsrel=self.rel_accuracy,
            limit=self.max_iterations,
            full_output=1,
        )
        tolerance = max(self.accuracy, self.rel_accuracy * abs(y))
        if not (math.isfinite(y) and abserr <= tolerance):
            raise IntegrationFailure(
                f"quad on [{lo:.6g}, {hi:.6g}] missed tolerance {tolerance:g}: abserr={abserr:.3g}"
                + (f" ({message[0]})" if message else "")
            )
        return float(y)


class GaussLobattoIntegrator(Integrator):
    """Adaptive Gauss–Lobatto integration (Gander & Gautschi, 2000).

    Each step compares the 4-point Gauss–Lobatto rule with its 7-point Kronrod
    extension and splits the interval in six when they disagree at the level of
    the global tolerance. The global tolerance comes from a 13-point rule over
    the whole interval, optionally scaled by a convergence estimate.

    `max_iterations` bounds the number of function evaluations. `fn` is called
    with numpy arrays of abscissae and must return an array of the same length.
    """

    _ALPHA = math.sqrt(2.0 / 3.0)
    _BETA = 1.0 / math.sqrt(5.0)
    _X1 = 0.94288241569547971905
    _X2 = 0.64185334234578130578
    _X3 = 0.23638319966214988028

    def __init__(
        self,
        accuracy: float = 1e-6,
        max_iterations: int = 10000,
        rel_accuracy: Optional[float] = None,
        use_convergence_estimate: bool = True,
    ):
        super().__init__(accuracy, max_iterations)
        self.rel_accuracy = rel_accuracy
        self.use_convergence_estimate = bool(use_convergence_estimate)

    def integrate(self, fn: Callable, lo: float, hi: float) -> float:
        lo = float(lo)
        hi = float(hi)
        if hi == lo:
            return 0.0
        if hi < lo:
            return -self.integrate(fn, hi, lo)

        evaluations = [0]

        def f(xs) -> np.ndarray:
            xs = np.asarray(xs, dtype=float)
            evaluations[0] += xs.size
            if evaluations[0] > self.max_iterations:
                raise IntegrationFailure(
                    f"Gauss-Lobatto on [{lo:.6g}, {hi:.6g}] exceeded {self.max_iterations} evaluations"
                )
            return np.asarray(fn(xs), dtype=float).reshape(xs.shape)

        tol, fa, fb = self._tolerance(f, lo, hi)
        return self._step(f, lo, hi, fa, fb, tol)

    def _tolerance(self, f, a: float, b: float) -> tuple[float, float, float]:
        m = 0.5 * (a + b)
        h = 0.5 * (b - a)
        xs = np.array([
            a,
            m - self._X1 * h,
            m - self._ALPHA * h,
            m - self._X2 * h,
            m - self._BETA * h,
            m - self._X3 * h,
            m,
            m + self._X3 * h,
            m + self._BETA * h,
            m + self._X2 * h,
            m + self._ALPHA * h,
            m + self._X1 * h,
            b,
        ])
        y1, f1, y3, f3, y5, f5, y7, f6, y9, f4, y11, f2, y13 = f(xs)

        acc = h * (
            0.0158271919734801831 * (y1 + y13)
            + 0.0942738402188500455 * (f1 + f2)
            + 0.1550719873365853963 * (y3 + y11)
            + 0.1888215739601824544 * (f3 + f4)
            + 0.1997734052268585268 * (y5 + y9)
            + 0.2249264653333395270 * (f5 + f6)
            + 0.2426110719014077338 * y7
        )

        r = 1.0
        if self.use_convergence_estimate:
            integral2 = (h / 6.0) * (y1 + y13 + 5.0 * (y5 + y9))
            integral1 = (h / 1470.0) * (77.0 * (y1 + y13) + 432.0 * (y3 + y11) + 625.0 * (y5 + y9) + 672.0 * y7)
            if abs(integral2 - acc) != 0.0:
                r = abs(integral1 - acc) / abs(integral2 - acc)
            if r == 0.0 or r > 1.0:
                r = 1.0

        eps = np.finfo(float).eps
        if self.rel_accuracy is not None:
            tol = min(self.accuracy, abs(acc) * self.rel_accuracy) / (r * eps)
        else:
            tol = self.accuracy / (r * eps)
        return float(tol), float(y1), float(y13)

    def _step(self, f, a: float, b: float, fa: float, fb: float, tol: float) -> float:
        h = 0.5 * (b - a)
        m = 0.5 * (a + b)
        mll = m - self._ALPHA * h
        ml = m - self._BETA * h
        mr = m + self._BETA * h
        mrr = m + self._ALPHA * h

        fmll, fml, fm, fmr, fmrr = f([mll, ml, m, mr, mrr])

        integral2 = (h / 6.0) * (fa + fb + 5.0 * (fml + fmr))
        integral1 = (h / 1470.0) * (
            77.0 * (fa + fb) + 432.0 * (fmll + fmrr) + 625.0 * (fml + fmr) + 672.0 * fm
        )

        # tol is scaled by 1/eps, so this tests |integral1 - integral2| against
        # the requested accuracy at machine resolution
        dist = tol + (integral1 - integral2)
        if dist == tol or mll <= a or b <= mrr:
            if not (m > a and b > m):
                raise IntegrationFailure("Gauss-Lobatto interval contains no more machine numbers")
            return float(integral1)

        return (
            self._step(f, a, mll, fa, fmll, tol)
            + self._step(f, mll, ml, fmll, fml, tol)
            + self._step(f, ml, m, fml, fm, tol)
            + self._step(f, m, mr, fm, fmr, tol)
            + self._step(f, mr, mrr, fmr, fmrr, tol)
            + self._step(f, mrr, b, fmrr, fb, tol)
        )
