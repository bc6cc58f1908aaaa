import math

import numpy as np
import pytest

from noarb_sabr import GaussLobattoIntegrator, IntegrationFailure, QuadIntegrator


INTEGRATORS = [QuadIntegrator(1e-10, 1000), GaussLobattoIntegrator(1e-10, 100000)]


@pytest.mark.parametrize("integrator", INTEGRATORS, ids=lambda i: type(i).__name__)
def test_known_integrals(integrator) -> None:
    np.testing.assert_allclose(integrator.integrate(np.sin, 0.0, math.pi), 2.0, atol=1e-8)
    np.testing.assert_allclose(integrator.integrate(np.exp, 0.0, 1.0), math.e - 1.0, atol=1e-8)
    np.testing.assert_allclose(integrator.integrate(lambda x: x * x, -1.0, 2.0), 3.0, atol=1e-8)
    # integrable peak
    np.testing.assert_allclose(
        integrator.integrate(lambda x: np.exp(-0.5 * (x / 0.01) ** 2), -1.0, 1.0),
        0.01 * math.sqrt(2.0 * math.pi),
        atol=1e-8,
    )


@pytest.mark.parametrize("integrator", INTEGRATORS, ids=lambda i: type(i).__name__)
def test_degenerate_and_reversed_intervals(integrator) -> None:
    assert integrator.integrate(np.exp, 1.0, 1.0) == 0.0
    np.testing.assert_allclose(integrator(np.exp, 1.0, 0.0), 1.0 - math.e, atol=1e-8)


def test_gauss_lobatto_evaluation_budget() -> None:
    with pytest.raises(IntegrationFailure):
        GaussLobattoIntegrator(1e-12, 20).integrate(lambda x: np.exp(-0.5 * (x / 1e-3) ** 2), -1.0, 1.0)


def test_quad_failure_is_reported() -> None:
    with pytest.raises(IntegrationFailure):
        QuadIntegrator(1e-14, 1).integrate(lambda x: np.sin(50.0 * x) ** 2, 0.0, 10.0)


def test_gauss_lobatto_relative_accuracy() -> None:
    integ = GaussLobattoIntegrator(1.0, 100000, rel_accuracy=1e-10)
    np.testing.assert_allclose(integ.integrate(lambda x: 1e6 * np.cos(x), 0.0, 1.0), 1e6 * math.sin(1.0), rtol=1e-8)


def test_invalid_configuration() -> None:
    with pytest.raises(ValueError):
        QuadIntegrator(0.0, 100)
    with pytest.raises(ValueError):
        GaussLobattoIntegrator(1e-6, 0)


def test_quad_accepts_result_within_accuracy_despite_message() -> None:
    # one subinterval: QUADPACK flags the subdivision limit, but the estimate is exact
    value = QuadIntegrator(1e-6, 1).integrate(np.exp, 0.0, 1.0)
    np.testing.assert_allclose(value, math.e - 1.0, rtol=1e-12)


def test_quad_relative_accuracy_is_honoured() -> None:
    # roundoff alone puts abserr near 50 * eps * 1e6, far above 1e-12
    fn = lambda x: 1e6 * np.cos(x)  # noqa: E731
    value = QuadIntegrator(1e-12, 1, rel_accuracy=1e-10).integrate(fn, 0.0, 1.0)
    np.testing.assert_allclose(value, 1e6 * math.sin(1.0), rtol=1e-12)
    with pytest.raises(IntegrationFailure):
        QuadIntegrator(1e-12, 1, rel_accuracy=0.0).integrate(fn, 0.0, 1.0)


def test_quad_rejects_negative_relative_accuracy() -> None:
    with pytest.raises(ValueError):
        QuadIntegrator(1e-6, 100, rel_accuracy=-1e-8)
