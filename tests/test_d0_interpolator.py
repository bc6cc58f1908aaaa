import numpy as np
import pytest
from scipy.special import gammaincc

from noarb_sabr import D0Interpolator, DEFAULT_CONSTANTS
from noarb_sabr.absorption_table import RHO_GRID, TAU_GRID
from noarb_sabr.d0_interpolator import (
    cev_phi,
    d0_from_phi,
    high_correlation_coordinate,
    phi_from_d0,
    short_expiry_coordinate,
    skew_tail_phi,
)
from noarb_sabr.numerics import sabr_j_and_x


def _d0(forward=0.03, expiry_time=5.0, alpha=0.05, beta=0.5, nu=0.3, rho=-0.2) -> float:
    return D0Interpolator(forward, expiry_time, alpha, beta, nu, rho)()


@pytest.mark.parametrize("gamma", [0.55, 1.0, 2.5, 50.0])
@pytest.mark.parametrize("d0", [1e-6, 0.01, 0.3, 0.9])
def test_phi_inverts_d0(gamma: float, d0: float) -> None:
    tau = 2.0
    phi = phi_from_d0(d0, gamma, tau)
    assert d0_from_phi(phi, gamma, tau) == pytest.approx(d0, rel=1e-8)


def test_phi_limits() -> None:
    c = DEFAULT_CONSTANTS
    assert phi_from_d0(0.0, 1.0, 3.0) == pytest.approx(c.phi_by_tau_cutoff * 3.0)
    assert phi_from_d0(1.0, 1.0, 3.0) == 0.0
    assert d0_from_phi(c.phi_by_tau_cutoff * 3.0 * 1.01, 1.0, 3.0) == 0.0


def test_reproduces_table_at_a_grid_node() -> None:
    # F = 1, alpha = 0.3 gives sigmaI = 0.3; beta, nu, rho and T all on grid nodes
    d0 = D0Interpolator(1.0, 5.0, 0.3, 0.5, 0.3, 0.0)()
    _, x = sabr_j_and_x(1.0 / (0.3 * 0.5), 0.0, 0.3)
    expected = gammaincc(1.0, 0.5 * float(x) ** 2 / 5.0)
    assert d0 == pytest.approx(expected, abs=2e-6)


def test_short_expiry_holds_phi_flat() -> None:
    i, w = short_expiry_coordinate(0.1, np.asarray(TAU_GRID))
    assert (i, w) == (0, 0.0)
    i, w = short_expiry_coordinate(40.0, np.asarray(TAU_GRID))
    assert i == len(TAU_GRID) - 2
    assert w == pytest.approx(1.0)


def test_high_correlation_extrapolates_linearly() -> None:
    i, w = high_correlation_coordinate(0.9, np.asarray(RHO_GRID))
    assert i == len(RHO_GRID) - 2
    assert w == pytest.approx(1.6)
    i, w = high_correlation_coordinate(-0.9, np.asarray(RHO_GRID))
    assert i == 0
    assert w == pytest.approx(-0.6)


def test_skew_tail_anchor_hits_tiny_prob() -> None:
    gamma = 0.5 / (1.0 - 0.95)
    phi = skew_tail_phi(gamma, 4.0)
    assert d0_from_phi(phi, gamma, 4.0) == pytest.approx(DEFAULT_CONSTANTS.tiny_prob, rel=1e-6)


@pytest.mark.parametrize(
    "name,edge,kw",
    [
        ("beta", 0.9, dict(alpha=0.2)),
        ("rho", 0.75, {}),
        ("rho", -0.75, {}),
        ("expiry_time", 0.25, {}),
        ("nu", 0.1, {}),
    ],
)
def test_continuous_across_regime_boundaries(name: str, edge: float, kw: dict) -> None:
    eps = 1e-8
    below = _d0(**{name: edge - eps}, **kw)
    above = _d0(**{name: edge + eps}, **kw)
    at = _d0(**{name: edge}, **kw)
    assert abs(below - at) < 1e-5
    assert abs(above - at) < 1e-5


def test_small_nu_approaches_cev() -> None:
    # sigmaI = 0.3, beta = 0.5
    beta, T = 0.5, 10.0
    d0 = _d0(forward=1.0, expiry_time=T, alpha=0.3, beta=beta, nu=1e-4, rho=0.0)
    gamma = 0.5 / (1.0 - beta)
    expected = gammaincc(gamma, cev_phi(0.3, beta) / T)
    assert d0 == pytest.approx(expected, rel=1e-2)


def test_probability_in_unit_interval_across_domain() -> None:
    rng = np.random.default_rng(7)
    for _ in range(50):
        beta = rng.uniform(0.01, 0.99)
        s = rng.uniform(0.05, 1.0)
        forward = 0.03
        alpha = s * forward ** (1.0 - beta)
        d0 = _d0(
            forward=forward,
            expiry_time=rng.uniform(0.01, 30.0),
            alpha=alpha,
            beta=beta,
            nu=rng.uniform(1e-4, 0.8),
            rho=rng.uniform(-0.9999, 0.9999),
        )
        assert 0.0 <= d0 <= 1.0


def test_absorption_grows_with_expiry() -> None:
    values = [_d0(expiry_time=t) for t in (0.5, 1.0, 2.0, 5.0, 10.0, 20.0)]
    assert all(b >= a for a, b in zip(values, values[1:]))
