"""Black (lognormal forward) prices and volatility inversion."""

from __future__ import annotations

import math

import scipy.optimize as opt
from scipy.stats import norm


def black_price(forward: float,
                strike: float,
                T: float,
                vol: float,
                is_call: bool = True,
                discount: float = 1.0) -> float:
    """Black-76 price of a call (or put) on a forward."""
    forward = float(forward)
    strike = float(strike)
    intrinsic = max(forward - strike, 0.0) if is_call else max(strike - forward, 0.0)
    std = float(vol) * math.sqrt(T)
    if std <= 0.0 or strike <= 0.0:
        return discount * intrinsic
    d1 = (math.log(forward / strike) + 0.5 * std * std) / std
    d2 = d1 - std
    if is_call:
        price = forward * norm.cdf(d1) - strike * norm.cdf(d2)
    else:
        price = strike * norm.cdf(-d2) - forward * norm.cdf(-d1)
    return discount * float(price)


def implied_black_vol(price: float,
                      forward: float,
                      strike: float,
                      T: float,
                      is_call: bool = True,
                      discount: float = 1.0,
                      target_eps: float = 1e-10,
                      max_iter: int = 100) -> float:
    """
    Find the Black volatility that reproduces `price`.
    Uses a bracketed root-finding on vol (Brent).

    Returns 0.0 when the price equals intrinsic value; raises ValueError when the
    price is outside the no-arbitrage bounds of the Black model.
    """
    undiscounted = float(price) / discount
    forward = float(forward)
    strike = float(strike)
    if strike <= 0.0 or forward <= 0.0:
        raise ValueError("Black volatility needs positive forward and strike")
    intrinsic = max(forward - strike, 0.0) if is_call else max(strike - forward, 0.0)
    upper = forward if is_call else strike
    tol = 1e-14 * max(forward, strike)
    if undiscounted < intrinsic - tol or undiscounted >= upper:
        raise ValueError(
            f"price {undiscounted:.6g} outside Black bounds [{intrinsic:.6g}, {upper:.6g}) for strike {strike:.6g}"
        )
    if undiscounted <= intrinsic + tol:
        return 0.0

    def f(vol: float) -> float:
        return black_price(forward, strike, T, max(vol, 1e-12), is_call) - undiscounted

    # bracket find: start with small to moderate bounds
    lo, hi = 1e-6, 2.0
    flo, fhi = f(lo), f(hi)
    trials = 0
    while flo * fhi > 0 and trials < 30:
        hi *= 2.0
        fhi = f(hi)
        trials += 1
    if flo * fhi > 0:
        raise RuntimeError("Failed to bracket root for implied volatility")
    sol = opt.root_scalar(f, bracket=[lo, hi], method="brentq", xtol=target_eps, maxiter=max_iter)
    if not sol.converged:
        raise RuntimeError("Root-finding failed to converge")
    return float(sol.root)

