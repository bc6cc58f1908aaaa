"""Numerical helpers (grid lookup, bracketed root search)."""

from __future__ import annotations

from typing import Callable, Tuple

import numpy as np
import scipy.optimize as opt


def sabr_j_and_x(z: np.ndarray, rho: np.ndarray, nu: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """SABR distance functions J(z) and x(z).

        J(z) = sqrt(1 - 2 rho nu z + nu^2 z^2)
        x(z) = log((J(z) - rho + nu z) / (1 - rho)) / nu

    With a = nu z - rho we have J^2 = a^2 + 1 - rho^2, so for a < 0 the argument
    of the log is evaluated as (1 - rho^2) / (J - a) to avoid cancellation in the
    far right tail (large negative z).
    """
    z = np.asarray(z, dtype=float)
    a = nu * z - rho
    one_m_rho2 = 1.0 - rho * rho
    j = np.sqrt(a * a + one_m_rho2)
    num = np.where(a >= 0.0, j + a, one_m_rho2 / (j - np.minimum(a, 0.0)))
    x = np.log(num / (1.0 - rho)) / nu
    return j, x


def locate(grid: np.ndarray, x: float) -> Tuple[int, float]:
    """Return (i, w) such that x = (1 - w) * grid[i] + w * grid[i + 1].

    `grid` must be strictly increasing with at least two nodes. The cell index is
    clipped to the first/last cell, so for x outside the grid the weight falls
    outside [0, 1] and the caller gets linear extrapolation from the edge cell.
    """
    grid = np.asarray(grid, dtype=float)
    i = int(np.searchsorted(grid, x, side="right")) - 1
    i = min(max(i, 0), len(grid) - 2)
    w = (float(x) - grid[i]) / (grid[i + 1] - grid[i])
    return i, float(w)


def bracket_root(
    fn: Callable[[float], float],
    x0: float,
    step: float,
    *,
    lower: float = -np.inf,
    upper: float = np.inf,
    growth: float = 1.6,
    max_expansions: int = 50,
) -> Tuple[float, float]:
    """Grow an interval around x0 until `fn` changes sign.

    The side with the smaller |fn| is extended first, by a step that grows
    geometrically. Raises RuntimeError if no sign change is found.
    """
    step = float(step)
    a = max(lower, x0 - step)
    b = min(upper, x0 + step)
    fa, fb = fn(a), fn(b)
    trials = 0
    while fa * fb > 0.0 and trials < max_expansions:
        step *= growth
        if (abs(fa) < abs(fb) and a > lower) or b >= upper:
            a = max(lower, a - step)
            fa = fn(a)
        else:
            b = min(upper, b + step)
            fb = fn(b)
        trials += 1
    if fa * fb > 0.0:
        raise RuntimeError(f"Failed to bracket root around x0={x0} after {trials} expansions")
    return a, b


def brent_root(fn: Callable[[float], float], a: float, b: float, *, xtol: float, max_iter: int = 100) -> float:
    """Brent root on a sign-changing bracket [a, b]."""
    sol = opt.root_scalar(fn, bracket=[a, b], method="brentq", xtol=xtol, maxiter=max_iter)
    if not sol.converged:
        raise RuntimeError(f"Root-finding failed to converge: {sol.flag}")
    return float(sol.root)
