import numpy as np
import pytest
from scipy.special import gammaincc

from noarb_sabr import (
    D0Interpolator,
    absorbed_counts,
    build_effective_cev_table,
    check_absorption_matrix,
    simulate_absorption_table,
)

GRID = dict(tau=(0.5, 1.0), sigma_i=(0.6, 1.0), rho=(-0.5, 0.5), nu=(1e-4, 2e-4), beta=(0.3, 0.5))
N_PATHS = 2000


@pytest.fixture(scope="module")
def simulated():
    return simulate_absorption_table(N_PATHS, steps_per_year=500, seed=7, chunk=N_PATHS, **GRID)


def test_counts_are_cumulative_in_expiry() -> None:
    rng = np.random.default_rng(1)
    counts = absorbed_counts(1.0, 0.0, 0.3, 0.3, np.array([0.25, 0.5, 1.0]), 1000, 200, rng)
    assert counts.shape == (3,)
    assert np.all(np.diff(counts) >= 0)
    assert 0 <= counts[0] and counts[-1] <= 1000


def test_seed_reproduces_counts() -> None:
    a = simulate_absorption_table(200, steps_per_year=50, seed=3, **GRID)
    b = simulate_absorption_table(200, steps_per_year=50, seed=3, **GRID)
    np.testing.assert_array_equal(a.counts, b.counts)
    assert a.nsim == 200.0
    assert a.source.startswith("monte-carlo")


def test_simulated_table_passes_self_check(simulated) -> None:
    report = check_absorption_matrix(simulated)
    assert report.ok, report.summary()


def test_simulated_cev_limit_matches_closed_form(simulated) -> None:
    # with nu ~ 0 the forward is CEV: P(absorbed by T) = Q(1 / (2 (1 - beta)), 1 / (2 sigma^2 (1 - beta)^2 T))
    t = np.asarray(GRID["tau"])[:, None, None, None, None]
    s = np.asarray(GRID["sigma_i"])[None, :, None, None, None]
    b = np.asarray(GRID["beta"])[None, None, None, None, :]
    exact = np.broadcast_to(
        gammaincc(0.5 / (1.0 - b), 1.0 / (2.0 * s * s * (1.0 - b) ** 2 * t)), simulated.shape
    )
    p = simulated.counts / simulated.nsim
    stderr = np.sqrt(exact * (1.0 - exact) / simulated.nsim)
    assert np.all(np.abs(p - exact) <= 5.0 * stderr + 0.01)


def test_effective_cev_table_agrees_with_simulation(simulated) -> None:
    cev = build_effective_cev_table(**GRID)
    p_sim = simulated.counts / simulated.nsim
    p_cev = cev.counts / cev.nsim
    stderr = np.sqrt(p_cev * (1.0 - p_cev) / simulated.nsim)
    assert np.all(np.abs(p_sim - p_cev) <= 5.0 * stderr + 0.01)


def test_interpolator_reads_simulated_table(simulated) -> None:
    # on a grid node the interpolated probability is the tabulated one
    forward, beta, sigma_i = 1.0, 0.5, 1.0
    d0 = D0Interpolator(forward, 1.0, sigma_i * forward ** (1.0 - beta), beta, 1e-4, -0.5, table=simulated)()
    assert d0 == pytest.approx(simulated.probability((1, 1, 0, 0, 1)), abs=2e-3)


def test_rejects_empty_simulation() -> None:
    with pytest.raises(ValueError):
        simulate_absorption_table(0, **GRID)
